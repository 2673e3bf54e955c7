"""
Leaderboard service.

Ranks players by lifetime or seasonal Elo.
"""

import logging
from typing import Optional

from sqlalchemy import select, func

from ranks.config import Config
from ranks.data_models.leaderboard import LeaderboardEntry, LeaderboardPage
from ranks.database.models import Player, RatingTrack
from ranks.services.base import BaseService

logger = logging.getLogger(__name__)


def rating_column(track: RatingTrack):
    return Player.elo_lifetime if track == RatingTrack.LIFETIME else Player.elo_seasonal


class LeaderboardService(BaseService):
    """Service for leaderboard queries and ranking."""

    async def get_leaderboard(
        self,
        track: RatingTrack = RatingTrack.LIFETIME,
        limit: Optional[int] = None
    ) -> LeaderboardPage:
        """
        Top players on a rating track.

        Players with equal rating share a rank (1, 2, 2, 4); ties are listed
        by registration order.
        """
        limit = Config.LEADERBOARD_LIMIT if limit is None else limit
        if not isinstance(limit, int) or limit < 1:
            raise ValueError("limit must be a positive integer")

        column = rating_column(track)

        async def _load() -> LeaderboardPage:
            async with self.get_session() as session:
                total_players = await session.scalar(select(func.count(Player.id)))

                result = await session.execute(
                    select(Player).order_by(column.desc(), Player.id).limit(limit)
                )
                players = result.scalars().all()

                entries = []
                previous_rating = None
                rank = 0
                for position, player in enumerate(players, start=1):
                    rating = player.rating(track)
                    if rating != previous_rating:
                        rank = position
                        previous_rating = rating
                    entries.append(LeaderboardEntry(
                        rank=rank,
                        player_id=player.id,
                        username=player.username,
                        display_name=player.display_name or player.username,
                        elo=round(rating),
                        matches_played=player.matches_played,
                        wins=player.wins,
                        win_rate=round(player.win_rate, 1)
                    ))

                logger.debug(f"Built {track.value} leaderboard with {len(entries)} entries")
                return LeaderboardPage(entries=entries, track=track.value, total_players=total_players or 0)

        return await self.execute_with_retry(_load)

    async def get_player_rank(self, player: Player, track: RatingTrack = RatingTrack.LIFETIME) -> int:
        """1-based rank of a player on a track"""
        column = rating_column(track)
        async with self.get_session() as session:
            higher = await session.scalar(
                select(func.count(Player.id)).where(column > player.rating(track))
            )
            return (higher or 0) + 1
