"""
Match Operations Module

Match lifecycle for head-to-head ranked matches:
- Creation with canonical player ordering and rating snapshots
- Report reconciliation: two agreeing reports complete the match, two
  disagreeing reports put it in dispute
- Admin resolution of pending or disputed matches
- Exactly-once application of rating changes

Every mutation starts with a compare-and-swap on Match.version inside a
single transaction. Losing the swap raises StaleMatchError and the whole
unit is retried against fresh state.
"""

from typing import Callable, List, Optional, Sequence, Tuple, TypeVar, Awaitable
from datetime import datetime
from contextlib import asynccontextmanager
from sqlalchemy import select, update, or_
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.ext.asyncio import AsyncSession

from ranks.database.models import (
    Match, MatchReport, MatchStatus, MatchFormat, MatchSide, Player, UserRole, utc_now
)
from ranks.data_models.commands import SubmitReport, AdminResolve
from ranks.utils.elo import EloCalculator
from ranks.utils.exceptions import (
    MatchNotFoundError, PlayerNotFoundError, NotParticipantError,
    NotAdminError, InvalidGamesWonError, InvalidWinnerError, InvalidResultError,
    InvalidCommandError, DeckRequiredError, MatchAlreadyCompletedError, MatchDisputedError,
    StaleMatchError
)
from ranks.utils.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar('T')


def canonical_order(player_a_id, player_b_id) -> Tuple:
    """Return the two identifiers with the smaller one first (player1)."""
    if player_a_id == player_b_id:
        raise ValueError("A match needs two different players")
    return (player_a_id, player_b_id) if player_a_id < player_b_id else (player_b_id, player_a_id)


def build_match(
    player_a: Player,
    player_b: Player,
    deck_a: str,
    deck_b: str,
    match_format: MatchFormat,
    created_by: Optional[int] = None,
    now: Optional[datetime] = None
) -> Match:
    """
    Build a pending Match between two loaded players.

    Decks follow their owners into the canonical ordering, and all four
    ratings are snapshotted from the players as they are right now.
    """
    player1_id, _ = canonical_order(player_a.id, player_b.id)
    if player1_id == player_a.id:
        player1, player2, deck1, deck2 = player_a, player_b, deck_a, deck_b
    else:
        player1, player2, deck1, deck2 = player_b, player_a, deck_b, deck_a

    now = now or utc_now()
    return Match(
        player1_id=player1.id,
        player2_id=player2.id,
        deck1=deck1,
        deck2=deck2,
        match_format=match_format,
        status=MatchStatus.PENDING,
        elo_lifetime_start_p1=player1.elo_lifetime,
        elo_lifetime_start_p2=player2.elo_lifetime,
        elo_seasonal_start_p1=player1.elo_seasonal,
        elo_seasonal_start_p2=player2.elo_seasonal,
        version=0,
        resolved_by_admin=False,
        created_by=created_by,
        created_at=now,
        updated_at=now
    )


class MatchOperations:
    """
    Core service class for the match lifecycle.

    Provides transactional operations for match creation, report
    reconciliation and resolution.
    """

    def __init__(self, database, clock: Callable[[], datetime] = utc_now):
        """Initialize with database instance and an optional wall-clock source"""
        self.db = database
        self.clock = clock
        self.logger = logger

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        """
        Provides a session context. Uses the provided session if available,
        otherwise creates and manages a new session.
        """
        if session:
            yield session
        else:
            async with self.db.get_session() as new_session:
                yield new_session

    async def _run_with_retry(self, description: str, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """
        Run operation in its own transaction, retrying when it loses a
        compare-and-swap or the storage reports a transient lock.
        """
        return await self.db.run_in_transaction(
            description, operation, retry_on=(StaleMatchError, OperationalError)
        )

    # ============================================================================
    # Creation
    # ============================================================================

    async def create_match(
        self,
        actor_role: UserRole,
        player_a_id: int,
        player_b_id: int,
        deck_a: str,
        deck_b: str,
        match_format: MatchFormat,
        created_by: Optional[int] = None
    ) -> Match:
        """
        Create a pending match directly, bypassing the challenge flow (admin only).

        Args:
            actor_role: Role of the acting user
            player_a_id, player_b_id: The two players in any order
            deck_a, deck_b: Decks of player_a and player_b respectively
            match_format: Format of the match
            created_by: Optional player id of the admin

        Returns:
            The created Match

        Raises:
            NotAdminError: If the actor is not an admin
            InvalidCommandError: If both ids refer to the same player
            DeckRequiredError: If a deck is missing
            PlayerNotFoundError: If either player does not exist
        """
        if actor_role != UserRole.ADMIN:
            raise NotAdminError("match creation")
        if player_a_id == player_b_id:
            raise InvalidCommandError("Players cannot be the same")
        if not isinstance(match_format, MatchFormat):
            raise InvalidCommandError("Invalid match format")
        if not deck_a or not deck_a.strip() or not deck_b or not deck_b.strip():
            raise DeckRequiredError()

        async def _create(session: AsyncSession) -> Match:
            player_a = await session.get(Player, player_a_id)
            if not player_a:
                raise PlayerNotFoundError(player_a_id)
            player_b = await session.get(Player, player_b_id)
            if not player_b:
                raise PlayerNotFoundError(player_b_id)

            match = build_match(
                player_a, player_b, deck_a.strip(), deck_b.strip(), match_format,
                created_by=created_by, now=self.clock()
            )
            session.add(match)
            await session.flush()

            self.logger.info(
                f"Admin created Match {match.id}: {match.player1_id} vs {match.player2_id} "
                f"({match_format.value})"
            )
            return match

        return await self._run_with_retry("match creation", _create)

    # ============================================================================
    # Queries
    # ============================================================================

    @staticmethod
    def _match_query():
        return select(Match).options(
            selectinload(Match.reports),
            selectinload(Match.player1),
            selectinload(Match.player2),
            selectinload(Match.winner)
        )

    async def get_match_by_id(self, match_id: int, session: Optional[AsyncSession] = None) -> Optional[Match]:
        """Get a match with its reports and players loaded"""
        async with self._get_session_context(session) as s:
            result = await s.execute(self._match_query().where(Match.id == match_id))
            return result.scalar_one_or_none()

    async def get_recent_matches(self, limit: int = 20) -> List[Match]:
        async with self.db.get_session() as session:
            result = await session.execute(
                self._match_query().order_by(Match.created_at.desc(), Match.id.desc()).limit(limit)
            )
            return list(result.scalars().all())

    async def get_open_matches_for_player(self, player_id: int) -> List[Match]:
        """Pending and disputed matches the player takes part in"""
        async with self.db.get_session() as session:
            result = await session.execute(
                self._match_query()
                .where(
                    or_(Match.player1_id == player_id, Match.player2_id == player_id),
                    Match.status.in_([MatchStatus.PENDING, MatchStatus.DISPUTED])
                )
                .order_by(Match.created_at, Match.id)
            )
            return list(result.scalars().all())

    async def get_disputed_matches(self) -> List[Match]:
        async with self.db.get_session() as session:
            result = await session.execute(
                self._match_query()
                .where(Match.status == MatchStatus.DISPUTED)
                .order_by(Match.updated_at, Match.id)
            )
            return list(result.scalars().all())

    # ============================================================================
    # Reports
    # ============================================================================

    async def submit_report(self, command: SubmitReport) -> MatchStatus:
        """
        Store a participant's report and reconcile it with the opponent's.

        A reporter may replace their own report while the match is pending.
        The second distinct report either completes the match (both reports
        name the same winner and the same games split) or disputes it.

        Returns:
            The match status after the report

        Raises:
            MatchNotFoundError, NotParticipantError, MatchAlreadyCompletedError,
            MatchDisputedError, InvalidGamesWonError, InvalidWinnerError,
            InvalidResultError
        """
        async def _submit(session: AsyncSession) -> MatchStatus:
            match = await self._load_match(session, command.match_id)

            if not match.is_participant(command.reporter_id):
                raise NotParticipantError(match.id, command.reporter_id)
            self._ensure_open(match)
            if match.status == MatchStatus.DISPUTED:
                raise MatchDisputedError(match.id)

            if not EloCalculator.is_valid_games_won(command.reported_p1_games_won, match.match_format):
                raise InvalidGamesWonError(command.reported_p1_games_won, match.match_format)
            if not match.is_participant(command.reported_winner_id):
                raise InvalidWinnerError(match.id, command.reported_winner_id)
            side = EloCalculator.determine_winner(command.reported_p1_games_won, match.match_format)
            if side is None or match.player_id_for(side) != command.reported_winner_id:
                raise InvalidResultError("the reported winner does not match the games won")

            await self._claim_match(session, match, (MatchStatus.PENDING,))
            now = self.clock()

            report = match.report_by(command.reporter_id)
            if report:
                report.reported_winner_id = command.reported_winner_id
                report.reported_p1_games_won = command.reported_p1_games_won
                report.reported_at = now
                self.logger.info(f"Player {command.reporter_id} replaced their report for Match {match.id}")
            else:
                match.reports.append(MatchReport(
                    reporter_id=command.reporter_id,
                    reported_winner_id=command.reported_winner_id,
                    reported_p1_games_won=command.reported_p1_games_won,
                    reported_at=now
                ))
                self.logger.info(f"Player {command.reporter_id} reported Match {match.id}")
            match.updated_at = now

            player1_report = match.report_by(match.player1_id)
            player2_report = match.report_by(match.player2_id)
            if not (player1_report and player2_report):
                await session.flush()
                return MatchStatus.PENDING

            if player1_report.agrees_with(player2_report):
                await self._complete_match(session, match, player1_report.reported_p1_games_won, now)
                return MatchStatus.COMPLETED

            match.status = MatchStatus.DISPUTED
            await session.flush()
            self.logger.info(
                f"Match {match.id} disputed: player1 reported {player1_report.reported_p1_games_won}, "
                f"player2 reported {player2_report.reported_p1_games_won} games for player1"
            )
            return MatchStatus.DISPUTED

        return await self._run_with_retry(f"report for Match {command.match_id}", _submit)

    # ============================================================================
    # Admin resolution
    # ============================================================================

    async def admin_resolve(self, command: AdminResolve) -> MatchStatus:
        """
        Resolve a pending or disputed match with an authoritative result.

        Raises:
            NotAdminError, MatchNotFoundError, MatchAlreadyCompletedError,
            InvalidGamesWonError, InvalidResultError
        """
        if command.actor_role != UserRole.ADMIN:
            raise NotAdminError("match resolution")

        async def _resolve(session: AsyncSession) -> MatchStatus:
            match = await self._load_match(session, command.match_id)
            self._ensure_open(match)

            if not EloCalculator.is_valid_games_won(command.p1_games_won, match.match_format):
                raise InvalidGamesWonError(command.p1_games_won, match.match_format)
            if EloCalculator.determine_winner(command.p1_games_won, match.match_format) is None:
                raise InvalidResultError(f"{command.p1_games_won} games does not decide a winner")

            await self._claim_match(session, match, (MatchStatus.PENDING, MatchStatus.DISPUTED))
            await self._complete_match(session, match, command.p1_games_won, self.clock(), by_admin=True)
            return MatchStatus.COMPLETED

        return await self._run_with_retry(f"admin resolution of Match {command.match_id}", _resolve)

    # ============================================================================
    # Internals
    # ============================================================================

    async def _load_match(self, session: AsyncSession, match_id: int) -> Match:
        result = await session.execute(
            select(Match)
            .options(selectinload(Match.reports))
            .where(Match.id == match_id)
            .execution_options(populate_existing=True)
        )
        match = result.scalar_one_or_none()
        if not match:
            raise MatchNotFoundError(match_id)
        return match

    @staticmethod
    def _ensure_open(match: Match) -> None:
        if match.status == MatchStatus.COMPLETED:
            raise MatchAlreadyCompletedError(match.id)

    async def _claim_match(self, session: AsyncSession, match: Match,
                           allowed_statuses: Sequence[MatchStatus]) -> None:
        """
        Compare-and-swap the match version. Succeeds only if nobody changed
        the row since it was loaded and it is still in an allowed status.
        """
        observed = match.version
        result = await session.execute(
            update(Match)
            .where(
                Match.id == match.id,
                Match.version == observed,
                Match.status.in_(list(allowed_statuses))
            )
            .values(version=observed + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleMatchError(match.id)
        set_committed_value(match, 'version', observed + 1)

    async def _complete_match(self, session: AsyncSession, match: Match, p1_games_won: int,
                              now: datetime, by_admin: bool = False) -> None:
        """Mark the match completed and apply both players' rating changes."""
        side = EloCalculator.determine_winner(p1_games_won, match.match_format)
        if side is None:
            raise InvalidResultError(f"{p1_games_won} games does not decide a winner")

        total_games = EloCalculator.get_total_games(match.match_format)
        lifetime_changes = EloCalculator.calculate_match_elo_changes(
            match.elo_lifetime_start_p1, match.elo_lifetime_start_p2, p1_games_won, total_games
        )
        seasonal_changes = EloCalculator.calculate_match_elo_changes(
            match.elo_seasonal_start_p1, match.elo_seasonal_start_p2, p1_games_won, total_games
        )

        match.status = MatchStatus.COMPLETED
        match.winner_id = match.player_id_for(side)
        match.resolved_p1_games_won = p1_games_won
        match.resolved_by_admin = by_admin
        match.completed_at = now
        match.updated_at = now

        await self._apply_rating_changes(
            session, match.player1_id, lifetime_changes.player1_change,
            seasonal_changes.player1_change, won=side == MatchSide.PLAYER1, now=now
        )
        await self._apply_rating_changes(
            session, match.player2_id, lifetime_changes.player2_change,
            seasonal_changes.player2_change, won=side == MatchSide.PLAYER2, now=now
        )
        await session.flush()

        self.logger.info(
            f"Match {match.id} completed ({p1_games_won} games to player1, winner {match.winner_id}"
            f"{', admin' if by_admin else ''}). "
            f"P1 {EloCalculator.format_elo_change(lifetime_changes.player1_change)} lifetime / "
            f"{EloCalculator.format_elo_change(seasonal_changes.player1_change)} seasonal, "
            f"P2 {EloCalculator.format_elo_change(lifetime_changes.player2_change)} lifetime / "
            f"{EloCalculator.format_elo_change(seasonal_changes.player2_change)} seasonal"
        )

    async def _apply_rating_changes(self, session: AsyncSession, player_id: int, lifetime_change: float,
                                    seasonal_change: float, won: bool, now: datetime) -> None:
        result = await session.execute(
            update(Player)
            .where(Player.id == player_id)
            .values(
                elo_lifetime=Player.elo_lifetime + lifetime_change,
                elo_seasonal=Player.elo_seasonal + seasonal_change,
                matches_played=Player.matches_played + 1,
                wins=Player.wins + (1 if won else 0),
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise PlayerNotFoundError(player_id)
