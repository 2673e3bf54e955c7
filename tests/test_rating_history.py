"""Tests for rating history reconstruction."""

from datetime import datetime, timedelta

import pytest

from ranks.database.models import Match, MatchFormat, MatchStatus, RatingTrack, UserRole
from ranks.data_models.commands import AdminResolve
from ranks.operations.admin_operations import AdminOperations
from ranks.operations.season_operations import SeasonOperations
from ranks.services.rating_history import RatingHistoryService, replay_rating_history
from ranks.utils.exceptions import PlayerNotFoundError

T0 = datetime(2025, 1, 1, 12, 0, 0)


def completed_match(match_id, p1_games_won, completed_at, start_p1=1500.0, start_p2=1500.0,
                    match_format=MatchFormat.BEST_OF_1):
    return Match(
        id=match_id,
        player1_id=1,
        player2_id=2,
        deck1="A",
        deck2="B",
        match_format=match_format,
        status=MatchStatus.COMPLETED,
        resolved_p1_games_won=p1_games_won,
        elo_lifetime_start_p1=start_p1,
        elo_lifetime_start_p2=start_p2,
        elo_seasonal_start_p1=start_p1 - 300,
        elo_seasonal_start_p2=start_p2 - 300,
        completed_at=completed_at
    )


class TestReplay:
    def test_starts_at_baseline(self):
        points = list(replay_rating_history(1, [], RatingTrack.LIFETIME, T0))
        assert len(points) == 1
        assert points[0].timestamp == T0
        assert points[0].rating == 1500

    def test_accumulates_in_completion_order(self):
        matches = [
            completed_match(2, 0, T0 + timedelta(hours=2), start_p1=1516, start_p2=1484),
            completed_match(1, 1, T0 + timedelta(hours=1)),
        ]

        points = list(replay_rating_history(1, matches, RatingTrack.LIFETIME, T0))

        assert [p.timestamp for p in points] == [T0, T0 + timedelta(hours=1), T0 + timedelta(hours=2)]
        assert points[1].rating == pytest.approx(1516)
        assert points[2].rating < points[1].rating

    def test_player2_perspective(self):
        matches = [completed_match(1, 1, T0 + timedelta(hours=1))]
        points = list(replay_rating_history(2, matches, RatingTrack.LIFETIME, T0))
        assert points[-1].rating == pytest.approx(1484)

    def test_seasonal_track_uses_seasonal_snapshots(self):
        matches = [completed_match(1, 1, T0 + timedelta(hours=1))]
        points = list(replay_rating_history(1, matches, RatingTrack.SEASONAL, T0))
        assert points[0].rating == 1200
        assert points[-1].rating == pytest.approx(1216)

    def test_seasonal_track_resets_at_season_start(self):
        matches = [
            completed_match(1, 1, T0 + timedelta(hours=1)),
            completed_match(2, 1, T0 + timedelta(hours=3)),
        ]
        season_start = T0 + timedelta(hours=2)
        later_season = T0 + timedelta(hours=5)

        points = list(replay_rating_history(
            1, matches, RatingTrack.SEASONAL, T0, [T0 - timedelta(days=1), season_start, later_season]
        ))

        assert [p.timestamp for p in points] == [
            T0, T0 + timedelta(hours=1), season_start, T0 + timedelta(hours=3), later_season
        ]
        assert [round(p.rating) for p in points] == [1200, 1216, 1200, 1216, 1200]

    def test_lifetime_track_ignores_seasons(self):
        matches = [completed_match(1, 1, T0 + timedelta(hours=1))]
        points = list(replay_rating_history(1, matches, RatingTrack.LIFETIME, T0, [T0 + timedelta(minutes=30)]))
        assert len(points) == 2

    def test_matches_before_start_are_skipped(self):
        matches = [
            completed_match(1, 1, T0 - timedelta(hours=1)),
            completed_match(2, 1, T0 + timedelta(hours=1)),
        ]
        points = list(replay_rating_history(1, matches, RatingTrack.LIFETIME, T0))
        assert len(points) == 2
        assert points[-1].rating == pytest.approx(1516)

    def test_pending_matches_are_skipped(self):
        pending = completed_match(1, 1, T0 + timedelta(hours=1))
        pending.status = MatchStatus.PENDING
        assert len(list(replay_rating_history(1, [pending], RatingTrack.LIFETIME, T0))) == 1

    def test_restartable(self):
        matches = [completed_match(1, 2, T0 + timedelta(hours=1), match_format=MatchFormat.BEST_OF_3)]
        first = list(replay_rating_history(1, matches, RatingTrack.LIFETIME, T0))
        second = list(replay_rating_history(1, matches, RatingTrack.LIFETIME, T0))
        assert first == second


class TestRatingHistoryService:
    @pytest.fixture
    def history_service(self, db):
        return RatingHistoryService(db.session_factory)

    async def resolve(self, match_ops, match, p1_games_won):
        await match_ops.admin_resolve(
            AdminResolve(match_id=match.id, actor_role=UserRole.ADMIN, p1_games_won=p1_games_won)
        )

    async def test_history_matches_committed_rating(self, db, history_service, match_ops, make_match,
                                                   make_player, alice, bob):
        carol = await make_player("carol")
        await self.resolve(match_ops, await make_match(alice, bob, match_format=MatchFormat.BEST_OF_3), 2)
        await self.resolve(match_ops, await make_match(alice, carol), 0)
        await self.resolve(match_ops, await make_match(bob, alice), 1)

        for track in (RatingTrack.LIFETIME, RatingTrack.SEASONAL):
            points = await history_service.get_rating_history("alice", track)
            player = await db.get_player_by_id(alice.id)
            assert len(points) == 4
            assert points[-1].rating == pytest.approx(player.rating(track))
            assert [p.timestamp for p in points] == sorted(p.timestamp for p in points)

    async def test_seasonal_history_follows_rollover(self, db, history_service, match_ops, make_match, alice, bob):
        await self.resolve(match_ops, await make_match(alice, bob), 1)
        await SeasonOperations(db).rollover_season(UserRole.ADMIN)
        await self.resolve(match_ops, await make_match(alice, bob), 0)

        points = await history_service.get_rating_history("alice", RatingTrack.SEASONAL)
        player = await db.get_player_by_id(alice.id)

        assert [round(p.rating) for p in points][:3] == [1200, 1216, 1200]
        assert points[-1].rating == pytest.approx(player.elo_seasonal)

        lifetime = await history_service.get_rating_history("alice", RatingTrack.LIFETIME)
        assert lifetime[-1].rating == pytest.approx(player.elo_lifetime)

    async def test_history_restarts_after_admin_reset(self, db, history_service, match_ops, make_match, alice, bob):
        await self.resolve(match_ops, await make_match(alice, bob), 1)
        await AdminOperations(db).reset_player_ratings(UserRole.ADMIN, alice.id)

        points = await history_service.get_rating_history("alice", RatingTrack.LIFETIME)
        assert len(points) == 1
        assert points[0].rating == 1500

    async def test_username_lookup_is_normalized(self, history_service, alice):
        points = await history_service.get_rating_history("  ALICE ", RatingTrack.LIFETIME)
        assert points[0].rating == 1500

    async def test_unknown_player(self, history_service):
        with pytest.raises(PlayerNotFoundError):
            await history_service.get_rating_history("nobody", RatingTrack.LIFETIME)
