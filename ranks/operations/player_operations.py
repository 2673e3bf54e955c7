"""
Player Operations Module

Business logic for Player registration and lookup, focused on turning
Discord users into Player records.

Key functionality:
- get_or_create_player(): Discord user -> Player conversion
- register_player(): explicit registration by username
- resolve_role(): effective role of the acting user
"""

import re
import discord
from typing import Optional, Union
from contextlib import asynccontextmanager
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ranks.config import Config
from ranks.database.models import Player, UserRole
from ranks.utils.exceptions import PlayerNotFoundError, InvalidCommandError, RankedOperationError
from ranks.utils.logger import setup_logger

logger = setup_logger(__name__)

_DISALLOWED_USERNAME_CHARS = re.compile(r'[^a-z0-9_.]')


class PlayerOperations:
    """
    Business logic operations for Player management and Discord integration.
    """

    def __init__(self, database):
        """Initialize with database instance"""
        self.db = database
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

    async def get_or_create_player(
        self,
        discord_user: Union[discord.User, discord.Member],
        session: Optional[AsyncSession] = None
    ) -> Player:
        """
        Get existing Player or create new one from Discord user.

        Idempotent: calling it again for the same Discord user returns the
        same Player. New players start at the configured lifetime and
        seasonal baselines.

        Args:
            discord_user: Discord User or Member object

        Returns:
            Player: Existing or newly created Player record

        Raises:
            InvalidCommandError: If the Discord user cannot be registered
        """
        self._validate_discord_user(discord_user)

        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Player).where(Player.discord_id == discord_user.id)
            )
            existing_player = result.scalar_one_or_none()
            if existing_player:
                self.logger.debug(f"Found existing Player {existing_player.id} for Discord user {discord_user.id}")
                return existing_player

            username = await self._available_username(s, discord_user)
            display_name = discord_user.display_name or discord_user.name
            if len(display_name) > 100:
                display_name = display_name[:97] + "..."

            new_player = Player(
                discord_id=discord_user.id,
                username=username,
                display_name=display_name
            )
            s.add(new_player)
            try:
                await s.flush()
            except IntegrityError as e:
                raise RankedOperationError(
                    f"Could not register Discord user {discord_user.id}: {e}",
                    "❌ Registration failed. Please try again."
                ) from e

            self.logger.info(
                f"Created new Player {new_player.id} ({new_player.username}) for Discord user {discord_user.id}"
            )
            return new_player

    async def register_player(
        self,
        username: str,
        display_name: Optional[str] = None,
        discord_id: Optional[int] = None,
        session: Optional[AsyncSession] = None
    ) -> Player:
        """
        Register a player by username.

        Raises:
            InvalidCommandError: If the username is malformed or already taken
        """
        try:
            player = Player(username=username, display_name=display_name, discord_id=discord_id)
        except ValueError as e:
            raise InvalidCommandError(str(e))

        async with self._get_session_context(session) as s:
            existing = await s.execute(select(Player).where(Player.username == player.username))
            if existing.scalar_one_or_none():
                raise InvalidCommandError(f"Username '{player.username}' is already taken")

            player.touch()
            s.add(player)
            await s.flush()
            self.logger.info(f"Registered Player {player.id} ({player.username})")
            return player

    async def get_player_by_username(self, username: str) -> Player:
        """Look up a player by (normalized) username, raising if missing"""
        player = await self.db.get_player_by_username(username)
        if not player:
            raise PlayerNotFoundError(username)
        return player

    async def get_player_by_discord_user(
        self,
        discord_user: Union[discord.User, discord.Member]
    ) -> Optional[Player]:
        """Get existing Player by Discord user (no auto-creation)"""
        return await self.db.get_player_by_discord_id(discord_user.id)

    @staticmethod
    def resolve_role(player: Optional[Player], discord_id: Optional[int] = None) -> UserRole:
        """
        Effective role of the acting user.

        The configured bot owner is always an admin, even before they have
        a Player record.
        """
        if discord_id is not None and Config.OWNER_DISCORD_ID and discord_id == Config.OWNER_DISCORD_ID:
            return UserRole.ADMIN
        if player is None:
            return UserRole.USER
        return player.role

    def _validate_discord_user(self, discord_user) -> None:
        """Validate Discord user data for Player creation"""
        if not discord_user or not discord_user.id:
            raise InvalidCommandError("Discord user has no ID")
        if getattr(discord_user, 'bot', False):
            raise InvalidCommandError("Bots cannot be registered as players")
        if not discord_user.name or not discord_user.name.strip():
            raise InvalidCommandError("Discord user has no username")

    async def _available_username(self, session: AsyncSession, discord_user) -> str:
        """
        Derive a valid, unused username from the Discord name, falling back
        to a suffix with the Discord id on collision.
        """
        base = _DISALLOWED_USERNAME_CHARS.sub('_', discord_user.name.strip().lower())[:32]
        if len(base) < 2:
            base = f"user_{discord_user.id}"[:32]

        candidate = base
        result = await session.execute(select(Player.id).where(Player.username == candidate))
        if result.scalar_one_or_none() is None:
            return candidate

        suffix = f"_{discord_user.id}"
        return (base[:32 - len(suffix)] + suffix)[-32:]
