"""Pytest configuration and fixtures."""

import pytest
from typing import AsyncGenerator

from ranks.database.database import Database
from ranks.database.match_operations import MatchOperations
from ranks.database.models import MatchFormat, UserRole
from ranks.operations.player_operations import PlayerOperations


@pytest.fixture
async def db(tmp_path) -> AsyncGenerator[Database, None]:
    """Create a file-backed test database with the first season."""
    database = Database(f"sqlite:///{tmp_path / 'ranks_test.db'}", echo=False)
    await database.initialize()

    yield database

    await database.close()


@pytest.fixture
def player_ops(db) -> PlayerOperations:
    return PlayerOperations(db)


@pytest.fixture
def match_ops(db) -> MatchOperations:
    return MatchOperations(db)


@pytest.fixture
def make_player(player_ops):
    """Factory registering players by username."""
    async def _make(username: str, **kwargs):
        return await player_ops.register_player(username, **kwargs)
    return _make


@pytest.fixture
async def alice(make_player):
    return await make_player("alice")


@pytest.fixture
async def bob(make_player):
    return await make_player("bob")


@pytest.fixture
def make_match(match_ops):
    """Factory creating a pending match directly as an admin."""
    async def _make(player_a, player_b, match_format=MatchFormat.BEST_OF_1,
                    deck_a="Red Aggro", deck_b="Blue Control"):
        return await match_ops.create_match(
            UserRole.ADMIN, player_a.id, player_b.id, deck_a, deck_b, match_format
        )
    return _make


class MockDiscordUser:
    """Minimal stand-in for discord.User"""

    def __init__(self, id, name, display_name=None, bot=False):
        self.id = id
        self.name = name
        self.display_name = display_name or name
        self.bot = bot


@pytest.fixture
def mock_discord_user():
    return MockDiscordUser
