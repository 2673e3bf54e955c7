"""Tests for leaderboard and profile read models."""

import pytest

from ranks.database.models import MatchFormat, RatingTrack, UserRole
from ranks.data_models.commands import AdminResolve
from ranks.operations.season_operations import SeasonOperations
from ranks.services.leaderboard import LeaderboardService
from ranks.services.profile import ProfileService
from ranks.utils.exceptions import PlayerNotFoundError


@pytest.fixture
def leaderboard_service(db):
    return LeaderboardService(db.session_factory)


@pytest.fixture
def profile_service(db):
    return ProfileService(db.session_factory)


async def resolve(match_ops, match, p1_games_won):
    await match_ops.admin_resolve(
        AdminResolve(match_id=match.id, actor_role=UserRole.ADMIN, p1_games_won=p1_games_won)
    )


class TestLeaderboard:
    async def test_ordered_by_rating(self, leaderboard_service, match_ops, make_match, make_player, alice, bob):
        await make_player("carol")
        await resolve(match_ops, await make_match(alice, bob), 0)

        page = await leaderboard_service.get_leaderboard(RatingTrack.LIFETIME)

        assert page.track == "lifetime"
        assert page.total_players == 3
        assert [e.username for e in page.entries] == ["bob", "carol", "alice"]
        assert [e.rank for e in page.entries] == [1, 2, 3]
        top = page.entries[0]
        assert (top.elo, top.matches_played, top.wins, top.win_rate) == (1516, 1, 1, 100.0)
        assert page.entries[1].win_rate == 0.0

    async def test_ties_share_rank(self, leaderboard_service, make_player, alice, bob):
        await make_player("carol")
        page = await leaderboard_service.get_leaderboard()
        assert [e.rank for e in page.entries] == [1, 1, 1]
        assert [e.username for e in page.entries] == ["alice", "bob", "carol"]

    async def test_seasonal_track(self, db, leaderboard_service, match_ops, make_match, alice, bob):
        await resolve(match_ops, await make_match(alice, bob), 1)
        await SeasonOperations(db).rollover_season(UserRole.ADMIN)

        seasonal = await leaderboard_service.get_leaderboard(RatingTrack.SEASONAL)
        lifetime = await leaderboard_service.get_leaderboard(RatingTrack.LIFETIME)

        assert {e.elo for e in seasonal.entries} == {1200}
        assert lifetime.entries[0].username == "alice"
        assert lifetime.entries[0].elo == 1516

    async def test_limit(self, leaderboard_service, alice, bob):
        page = await leaderboard_service.get_leaderboard(limit=1)
        assert len(page.entries) == 1
        assert page.total_players == 2

        with pytest.raises(ValueError):
            await leaderboard_service.get_leaderboard(limit=0)

    async def test_player_rank(self, db, leaderboard_service, match_ops, make_match, alice, bob):
        await resolve(match_ops, await make_match(alice, bob), 0)
        loser = await db.get_player_by_id(alice.id)
        assert await leaderboard_service.get_player_rank(loser) == 2


class TestProfile:
    async def test_profile_with_matches(self, profile_service, match_ops, make_match, alice, bob):
        await resolve(match_ops, await make_match(alice, bob, match_format=MatchFormat.BEST_OF_3), 2)
        await resolve(match_ops, await make_match(alice, bob), 1)
        await make_match(alice, bob)

        profile = await profile_service.get_profile_data(alice.id)

        assert profile.username == "alice"
        assert profile.role == "user"
        assert profile.total_matches == 2
        assert (profile.wins, profile.losses) == (2, 0)
        assert profile.win_rate == 100.0
        assert profile.current_streak == "W2"
        assert profile.lifetime_rank == 1
        assert profile.total_players == 2
        assert profile.open_matches == 1

        latest, earlier = profile.recent_matches
        assert latest.opponent_name == "bob"
        assert latest.result == "win"
        assert (earlier.games_won, earlier.games_lost) == (2, 1)
        assert earlier.elo_change_lifetime == pytest.approx(16.0)
        assert earlier.elo_change_seasonal == pytest.approx(16.0)
        assert earlier.deck == "Red Aggro"
        assert earlier.opponent_deck == "Blue Control"
        assert earlier.resolved_by_admin is True

    async def test_profile_loser_perspective(self, profile_service, match_ops, make_match, alice, bob):
        await resolve(match_ops, await make_match(alice, bob), 1)

        profile = await profile_service.get_profile_data(bob.id)

        assert profile.current_streak == "L1"
        assert profile.recent_matches[0].elo_change_lifetime == pytest.approx(-16.0)
        assert profile.recent_matches[0].deck == "Blue Control"
        assert profile.elo_lifetime == 1484

    async def test_profile_without_matches(self, profile_service, alice):
        profile = await profile_service.get_profile_data(alice.id)
        assert profile.current_streak is None
        assert profile.recent_matches == []
        assert profile.elo_seasonal == 1200

    async def test_unknown_player(self, profile_service):
        with pytest.raises(PlayerNotFoundError):
            await profile_service.get_profile_data(12345)
