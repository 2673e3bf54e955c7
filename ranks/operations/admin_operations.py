"""
Administrative Operations Module

Admin-only maintenance of player records:
- reset_player_ratings(): put a single player back on both baselines
- set_player_role(): promote or demote a player

Match resolution and season rollover live with their own lifecycles in
MatchOperations and SeasonOperations.
"""

from typing import Any, Callable, Dict, Optional
from datetime import datetime
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession

from ranks.config import Config
from ranks.database.models import Player, UserRole, utc_now
from ranks.utils.exceptions import NotAdminError, PlayerNotFoundError, InvalidCommandError
from ranks.utils.logger import setup_logger

logger = setup_logger(__name__)


class AdminOperations:
    """
    Business logic operations for administrative player management.
    """

    def __init__(self, database, clock: Callable[[], datetime] = utc_now):
        """Initialize with database instance"""
        self.db = database
        self.clock = clock
        self.logger = logger

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        """
        Provides a session context. Uses the provided session if available,
        otherwise creates and manages a new transaction.
        """
        if session:
            yield session
        else:
            async with self.db.transaction() as new_session:
                yield new_session

    @staticmethod
    def _require_admin(actor_role: UserRole, action: str) -> None:
        if actor_role != UserRole.ADMIN:
            raise NotAdminError(action)

    async def reset_player_ratings(
        self,
        actor_role: UserRole,
        player_id: int,
        session: Optional[AsyncSession] = None
    ) -> Dict[str, Any]:
        """
        Reset a single player's ratings and statistics.

        Both ratings go back to their baselines, matches_played and wins to
        zero, and ratings_reset_at is stamped so rating history restarts
        from this point. Stored matches are left untouched.

        Args:
            actor_role: Role of the acting user
            player_id: Player to reset
            session: Optional database session

        Returns:
            Dictionary with the old and new values

        Raises:
            NotAdminError: If the actor is not an admin
            PlayerNotFoundError: If the player does not exist
        """
        self._require_admin(actor_role, "rating reset")

        async with self._get_session_context(session) as s:
            player = await s.get(Player, player_id)
            if not player:
                raise PlayerNotFoundError(player_id)

            now = self.clock()
            result = {
                'player_id': player.id,
                'username': player.username,
                'old_elo_lifetime': player.elo_lifetime,
                'old_elo_seasonal': player.elo_seasonal,
                'old_matches_played': player.matches_played,
                'old_wins': player.wins,
                'new_elo_lifetime': Config.STARTING_ELO_LIFETIME,
                'new_elo_seasonal': Config.STARTING_ELO_SEASONAL,
                'reset_at': now
            }

            player.elo_lifetime = Config.STARTING_ELO_LIFETIME
            player.elo_seasonal = Config.STARTING_ELO_SEASONAL
            player.matches_played = 0
            player.wins = 0
            player.ratings_reset_at = now
            player.updated_at = now
            await s.flush()

            self.logger.info(
                f"Reset ratings for Player {player.id} ({player.username}): "
                f"lifetime {result['old_elo_lifetime']:.1f} -> {Config.STARTING_ELO_LIFETIME}, "
                f"seasonal {result['old_elo_seasonal']:.1f} -> {Config.STARTING_ELO_SEASONAL}"
            )
            return result

    async def set_player_role(
        self,
        actor_role: UserRole,
        player_id: int,
        role: UserRole,
        session: Optional[AsyncSession] = None
    ) -> Player:
        """
        Change a player's role.

        Raises:
            NotAdminError: If the actor is not an admin
            InvalidCommandError: If role is not a UserRole
            PlayerNotFoundError: If the player does not exist
        """
        self._require_admin(actor_role, "role change")
        if not isinstance(role, UserRole):
            raise InvalidCommandError("Role must be user, organizer or admin")

        async with self._get_session_context(session) as s:
            player = await s.get(Player, player_id)
            if not player:
                raise PlayerNotFoundError(player_id)

            old_role = player.role
            player.role = role
            player.updated_at = self.clock()
            await s.flush()

            self.logger.info(f"Player {player.id} ({player.username}) role {old_role.value} -> {role.value}")
            return player
