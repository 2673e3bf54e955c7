from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, ForeignKey, Float, BigInteger,
    Enum as SQLEnum, UniqueConstraint, CheckConstraint, Index, text
)
from sqlalchemy.orm import declarative_base, relationship, validates
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple
import re

from ranks.config import Config

Base = declarative_base()

USERNAME_PATTERN = re.compile(r'^[a-z0-9_.]+$')


def utc_now() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UserRole(Enum):
    USER = "user"
    ORGANIZER = "organizer"
    ADMIN = "admin"

class RatingTrack(Enum):
    """Which rating a leaderboard or history refers to"""
    LIFETIME = "lifetime"
    SEASONAL = "seasonal"

class MatchFormat(Enum):
    """Format of a match; drives total games and win threshold"""
    BEST_OF_1 = "best-of-1"
    BEST_OF_3 = "best-of-3"

class ProposedFormat(Enum):
    """Format token used when proposing a challenge"""
    BO1 = "bo1"
    BO3 = "bo3"

    def to_match_format(self) -> MatchFormat:
        return MatchFormat.BEST_OF_1 if self is ProposedFormat.BO1 else MatchFormat.BEST_OF_3

class MatchSide(Enum):
    PLAYER1 = 1
    PLAYER2 = 2

class ChallengeStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    LOCKED = "locked"        # Accepted, waiting for conversion into a Match
    EXPIRED = "expired"

class MatchStatus(Enum):
    """Status of a match from creation to completion"""
    PENDING = "pending"      # Waiting for both participants to report
    DISPUTED = "disputed"    # Reports disagree, waiting for an admin
    COMPLETED = "completed"  # Result resolved and ratings applied


def challenge_pair_key(player_a_id: int, player_b_id: int) -> str:
    """Order-independent key for the pair of players in a challenge"""
    low, high = sorted((player_a_id, player_b_id))
    return f"{low}:{high}"


class Player(Base):
    __tablename__ = 'players'

    id = Column(Integer, primary_key=True)
    discord_id = Column(BigInteger, unique=True, nullable=True, index=True)
    username = Column(String(32), nullable=False, unique=True, index=True)
    display_name = Column(String(100))

    # Ratings
    elo_lifetime = Column(Float, nullable=False, default=Config.STARTING_ELO_LIFETIME)
    elo_seasonal = Column(Float, nullable=False, default=Config.STARTING_ELO_SEASONAL)
    matches_played = Column(Integer, nullable=False, default=0)
    wins = Column(Integer, nullable=False, default=0)

    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.USER)

    # Metadata
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now)
    ratings_reset_at = Column(DateTime, nullable=True)  # Last admin rating reset

    def __init__(self, **kwargs):
        kwargs.setdefault('elo_lifetime', Config.STARTING_ELO_LIFETIME)
        kwargs.setdefault('elo_seasonal', Config.STARTING_ELO_SEASONAL)
        kwargs.setdefault('matches_played', 0)
        kwargs.setdefault('wins', 0)
        kwargs.setdefault('role', UserRole.USER)
        now = utc_now()
        kwargs.setdefault('created_at', now)
        kwargs.setdefault('updated_at', now)
        super().__init__(**kwargs)
        if not self.display_name:
            self.display_name = self.username

    @validates('username')
    def _normalize_username(self, key, value: str) -> str:
        if value is None:
            raise ValueError("username is required")
        normalized = value.strip().lower()
        if not 2 <= len(normalized) <= 32:
            raise ValueError("username must be between 2 and 32 characters")
        if not USERNAME_PATTERN.match(normalized):
            raise ValueError("username may only contain letters, digits, '_' and '.'")
        return normalized

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def win_rate(self) -> float:
        if not self.matches_played:
            return 0.0
        return (self.wins / self.matches_played) * 100

    def rating(self, track: RatingTrack) -> float:
        return self.elo_lifetime if track == RatingTrack.LIFETIME else self.elo_seasonal

    def touch(self):
        self.updated_at = utc_now()

    def __repr__(self):
        return f"<Player(id={self.id}, username='{self.username}', lifetime={self.elo_lifetime:.1f})>"


class Challenge(Base):
    __tablename__ = 'challenges'

    id = Column(Integer, primary_key=True)
    challenger_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    challenged_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    pair_key = Column(String(64), nullable=False)

    proposed_format = Column(SQLEnum(ProposedFormat), nullable=False)
    challenger_deck = Column(String(100), nullable=False)
    challenged_deck = Column(String(100), nullable=True)  # Chosen on acceptance
    status = Column(SQLEnum(ChallengeStatus), nullable=False, default=ChallengeStatus.PENDING)

    # Timestamps
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now)
    expires_at = Column(DateTime)

    challenger = relationship("Player", foreign_keys=[challenger_id])
    challenged = relationship("Player", foreign_keys=[challenged_id])

    # At most one pending challenge per unordered pair of players
    __table_args__ = (
        CheckConstraint('challenger_id != challenged_id', name='no_self_challenge_check'),
        Index(
            'uq_pending_challenge_pair', 'pair_key', unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'")
        ),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if not self.expires_at:
            return False
        return (now or utc_now()) > self.expires_at

    def __repr__(self):
        return f"<Challenge(id={self.id}, {self.challenger_id}->{self.challenged_id}, status={self.status.value})>"


class Match(Base):
    """
    A head-to-head match between two players.

    player1 is always the player with the smaller id. The four rating
    snapshots are taken at creation and are the only ratings used to
    settle the match.
    """
    __tablename__ = 'matches'

    id = Column(Integer, primary_key=True)
    player1_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    player2_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    deck1 = Column(String(100), nullable=False)
    deck2 = Column(String(100), nullable=False)
    match_format = Column(SQLEnum(MatchFormat), nullable=False)
    status = Column(SQLEnum(MatchStatus), nullable=False, default=MatchStatus.PENDING, index=True)

    # Resolution
    winner_id = Column(Integer, ForeignKey('players.id'), nullable=True)
    resolved_p1_games_won = Column(Integer, nullable=True)
    resolved_by_admin = Column(Boolean, nullable=False, default=False)

    # Rating snapshots at creation
    elo_lifetime_start_p1 = Column(Float, nullable=False)
    elo_lifetime_start_p2 = Column(Float, nullable=False)
    elo_seasonal_start_p1 = Column(Float, nullable=False)
    elo_seasonal_start_p2 = Column(Float, nullable=False)

    # Bumped by every compare-and-swap on this row
    version = Column(Integer, nullable=False, default=0)

    created_by = Column(Integer, ForeignKey('players.id'), nullable=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now)
    completed_at = Column(DateTime, nullable=True)

    player1 = relationship("Player", foreign_keys=[player1_id])
    player2 = relationship("Player", foreign_keys=[player2_id])
    winner = relationship("Player", foreign_keys=[winner_id])
    reports = relationship(
        "MatchReport", back_populates="match",
        order_by="MatchReport.id", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint('player1_id < player2_id', name='canonical_player_order_check'),
    )

    def is_participant(self, player_id: int) -> bool:
        return player_id in (self.player1_id, self.player2_id)

    def player_id_for(self, side: MatchSide) -> int:
        return self.player1_id if side == MatchSide.PLAYER1 else self.player2_id

    def rating_snapshot(self, track: RatingTrack) -> Tuple[float, float]:
        if track == RatingTrack.LIFETIME:
            return self.elo_lifetime_start_p1, self.elo_lifetime_start_p2
        return self.elo_seasonal_start_p1, self.elo_seasonal_start_p2

    def report_by(self, reporter_id: int) -> Optional['MatchReport']:
        for report in self.reports:
            if report.reporter_id == reporter_id:
                return report
        return None

    def __repr__(self):
        return f"<Match(id={self.id}, {self.player1_id} vs {self.player2_id}, format={self.match_format.value}, status={self.status.value})>"


class MatchReport(Base):
    """One participant's claim about a match result"""
    __tablename__ = 'match_reports'

    id = Column(Integer, primary_key=True)
    match_id = Column(Integer, ForeignKey('matches.id'), nullable=False, index=True)
    reporter_id = Column(Integer, ForeignKey('players.id'), nullable=False)
    reported_winner_id = Column(Integer, ForeignKey('players.id'), nullable=False)
    reported_p1_games_won = Column(Integer, nullable=False)
    reported_at = Column(DateTime, default=utc_now)

    match = relationship("Match", back_populates="reports")

    __table_args__ = (
        UniqueConstraint('match_id', 'reporter_id', name='unique_report_per_reporter'),
        CheckConstraint('reported_p1_games_won >= 0', name='non_negative_games_check'),
    )

    def agrees_with(self, other: 'MatchReport') -> bool:
        return (
            str(self.reported_winner_id) == str(other.reported_winner_id)
            and self.reported_p1_games_won == other.reported_p1_games_won
        )

    def __repr__(self):
        return f"<MatchReport(match_id={self.match_id}, reporter={self.reporter_id}, winner={self.reported_winner_id}, p1_games={self.reported_p1_games_won})>"


class Season(Base):
    __tablename__ = 'seasons'

    id = Column(Integer, primary_key=True)
    season_num = Column(Integer, nullable=False, unique=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utc_now)

    # Exactly one active season
    __table_args__ = (
        Index(
            'uq_single_active_season', 'is_active', unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active")
        ),
    )

    def __repr__(self):
        return f"<Season(num={self.season_num}, active={self.is_active})>"
