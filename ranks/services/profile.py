"""
Profile service.

Aggregates a player's ratings, ranks, record and recent matches into a
ProfileData snapshot. Per-match Elo changes are recomputed from the
match's rating snapshots, the same way the match was settled.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from ranks.config import Config
from ranks.data_models.profile import MatchRecord, ProfileData
from ranks.database.models import Match, MatchStatus, Player, RatingTrack
from ranks.services.base import BaseService
from ranks.services.rating_history import player_rating_change
from ranks.utils.elo import EloCalculator
from ranks.utils.exceptions import PlayerNotFoundError

logger = logging.getLogger(__name__)


class ProfileService(BaseService):
    """Service for profile data aggregation."""

    async def get_profile_data(self, player_id: int, recent_limit: Optional[int] = None) -> ProfileData:
        """
        Build the profile of a player.

        Raises:
            PlayerNotFoundError: If the player does not exist
        """
        recent_limit = Config.RECENT_MATCHES_LIMIT if recent_limit is None else recent_limit

        async def _load() -> ProfileData:
            async with self.get_session() as session:
                player = await session.get(Player, player_id)
                if not player:
                    raise PlayerNotFoundError(player_id)

                total_players = await session.scalar(select(func.count(Player.id))) or 0
                lifetime_rank = await self._rank(session, Player.elo_lifetime, player.elo_lifetime)
                seasonal_rank = await self._rank(session, Player.elo_seasonal, player.elo_seasonal)

                recent_matches = await self._fetch_recent_matches(session, player, recent_limit)
                open_matches = await session.scalar(
                    select(func.count(Match.id)).where(
                        or_(Match.player1_id == player.id, Match.player2_id == player.id),
                        Match.status.in_([MatchStatus.PENDING, MatchStatus.DISPUTED])
                    )
                ) or 0

                return ProfileData(
                    player_id=player.id,
                    username=player.username,
                    display_name=player.display_name or player.username,
                    role=player.role.value,
                    elo_lifetime=round(player.elo_lifetime),
                    elo_seasonal=round(player.elo_seasonal),
                    lifetime_rank=lifetime_rank,
                    seasonal_rank=seasonal_rank,
                    total_players=total_players,
                    total_matches=player.matches_played,
                    wins=player.wins,
                    losses=player.matches_played - player.wins,
                    win_rate=round(player.win_rate, 1),
                    current_streak=self._format_current_streak(recent_matches),
                    recent_matches=recent_matches,
                    open_matches=open_matches,
                    created_at=player.created_at
                )

        return await self.execute_with_retry(_load)

    @staticmethod
    async def _rank(session: AsyncSession, column, value: float) -> int:
        higher = await session.scalar(select(func.count(Player.id)).where(column > value))
        return (higher or 0) + 1

    async def _fetch_recent_matches(self, session: AsyncSession, player: Player, limit: int) -> List[MatchRecord]:
        """Most recent completed matches, newest first."""
        result = await session.execute(
            select(Match)
            .options(selectinload(Match.player1), selectinload(Match.player2))
            .where(
                or_(Match.player1_id == player.id, Match.player2_id == player.id),
                Match.status == MatchStatus.COMPLETED
            )
            .order_by(Match.completed_at.desc(), Match.id.desc())
            .limit(limit)
        )

        records = []
        for match in result.scalars().all():
            is_player1 = match.player1_id == player.id
            opponent = match.player2 if is_player1 else match.player1
            total_games = EloCalculator.get_total_games(match.match_format)
            p1_games = match.resolved_p1_games_won
            games_won = p1_games if is_player1 else total_games - p1_games
            records.append(MatchRecord(
                match_id=match.id,
                opponent_name=opponent.display_name or opponent.username,
                opponent_id=opponent.id,
                result='win' if match.winner_id == player.id else 'loss',
                games_won=games_won,
                games_lost=total_games - games_won,
                deck=match.deck1 if is_player1 else match.deck2,
                opponent_deck=match.deck2 if is_player1 else match.deck1,
                elo_change_lifetime=round(player_rating_change(match, player.id, RatingTrack.LIFETIME), 1),
                elo_change_seasonal=round(player_rating_change(match, player.id, RatingTrack.SEASONAL), 1),
                resolved_by_admin=match.resolved_by_admin,
                played_at=match.completed_at
            ))
        return records

    @staticmethod
    def _format_current_streak(recent_matches: List[MatchRecord]) -> Optional[str]:
        """W3, L1, etc. from the newest matches; None without matches."""
        if not recent_matches:
            return None
        streak_result = recent_matches[0].result
        count = 0
        for record in recent_matches:
            if record.result != streak_result:
                break
            count += 1
        return f"{'W' if streak_result == 'win' else 'L'}{count}"
