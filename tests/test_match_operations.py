"""Tests for the match lifecycle: reports, disputes and resolution."""

import asyncio

import pytest

from ranks.database.models import MatchFormat, MatchStatus, UserRole
from ranks.data_models.commands import AdminResolve, SubmitReport
from ranks.utils.exceptions import (
    DeckRequiredError, InvalidCommandError, InvalidGamesWonError, InvalidResultError,
    InvalidWinnerError, MatchAlreadyCompletedError, MatchDisputedError, MatchNotFoundError,
    NotAdminError, NotParticipantError, PlayerNotFoundError
)


def report(match, reporter, winner, p1_games_won):
    return SubmitReport(
        match_id=match.id,
        reporter_id=reporter.id,
        reported_winner_id=winner.id,
        reported_p1_games_won=p1_games_won
    )


class TestCreateMatch:
    async def test_canonical_order_and_snapshots(self, match_ops, make_match, alice, bob):
        created = await make_match(bob, alice, deck_a="Bob Deck", deck_b="Alice Deck")
        match = await match_ops.get_match_by_id(created.id)

        assert (match.player1_id, match.deck1) == (alice.id, "Alice Deck")
        assert (match.player2_id, match.deck2) == (bob.id, "Bob Deck")
        assert match.status == MatchStatus.PENDING
        assert match.version == 0
        assert (match.elo_lifetime_start_p1, match.elo_lifetime_start_p2) == (1500, 1500)
        assert (match.elo_seasonal_start_p1, match.elo_seasonal_start_p2) == (1200, 1200)

    async def test_admin_only(self, match_ops, alice, bob):
        with pytest.raises(NotAdminError):
            await match_ops.create_match(UserRole.USER, alice.id, bob.id, "A", "B", MatchFormat.BEST_OF_1)
        with pytest.raises(NotAdminError):
            await match_ops.create_match(UserRole.ORGANIZER, alice.id, bob.id, "A", "B", MatchFormat.BEST_OF_1)

    async def test_validation(self, match_ops, alice, bob):
        with pytest.raises(InvalidCommandError):
            await match_ops.create_match(UserRole.ADMIN, alice.id, alice.id, "A", "B", MatchFormat.BEST_OF_1)
        with pytest.raises(DeckRequiredError):
            await match_ops.create_match(UserRole.ADMIN, alice.id, bob.id, "A", " ", MatchFormat.BEST_OF_1)
        with pytest.raises(PlayerNotFoundError):
            await match_ops.create_match(UserRole.ADMIN, alice.id, 404, "A", "B", MatchFormat.BEST_OF_1)


class TestReports:
    async def test_first_report_keeps_match_pending(self, db, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob)

        status = await match_ops.submit_report(report(match, alice, alice, 1))

        assert status == MatchStatus.PENDING
        stored = await match_ops.get_match_by_id(match.id)
        assert len(stored.reports) == 1
        assert stored.winner_id is None
        assert (await db.get_player_by_id(alice.id)).elo_lifetime == 1500
        assert (await db.get_player_by_id(alice.id)).matches_played == 0

    async def test_identical_resubmission_stores_one_report(self, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob)

        await match_ops.submit_report(report(match, alice, alice, 1))
        await match_ops.submit_report(report(match, alice, alice, 1))

        stored = await match_ops.get_match_by_id(match.id)
        assert len(stored.reports) == 1
        assert stored.status == MatchStatus.PENDING

    async def test_reporter_may_replace_own_report(self, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob)

        await match_ops.submit_report(report(match, alice, alice, 1))
        await match_ops.submit_report(report(match, alice, bob, 0))

        stored = await match_ops.get_match_by_id(match.id)
        assert len(stored.reports) == 1
        assert stored.reports[0].reported_winner_id == bob.id
        assert stored.reports[0].reported_p1_games_won == 0

    async def test_agreeing_reports_complete_match(self, db, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob)

        assert await match_ops.submit_report(report(match, alice, alice, 1)) == MatchStatus.PENDING
        assert await match_ops.submit_report(report(match, bob, alice, 1)) == MatchStatus.COMPLETED

        stored = await match_ops.get_match_by_id(match.id)
        assert stored.status == MatchStatus.COMPLETED
        assert stored.winner_id == alice.id
        assert stored.resolved_p1_games_won == 1
        assert stored.resolved_by_admin is False
        assert stored.completed_at is not None

        winner = await db.get_player_by_id(alice.id)
        loser = await db.get_player_by_id(bob.id)
        assert winner.elo_lifetime == pytest.approx(1516)
        assert loser.elo_lifetime == pytest.approx(1484)
        assert winner.elo_seasonal == pytest.approx(1216)
        assert loser.elo_seasonal == pytest.approx(1184)
        assert (winner.matches_played, winner.wins) == (1, 1)
        assert (loser.matches_played, loser.wins) == (1, 0)

    async def test_bo3_result_from_player2_perspective(self, db, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob, match_format=MatchFormat.BEST_OF_3)

        await match_ops.submit_report(report(match, bob, bob, 1))
        status = await match_ops.submit_report(report(match, alice, bob, 1))

        assert status == MatchStatus.COMPLETED
        assert (await db.get_player_by_id(bob.id)).elo_lifetime == pytest.approx(1516)
        assert (await db.get_player_by_id(alice.id)).elo_lifetime == pytest.approx(1484)

    async def test_disagreeing_reports_dispute_match(self, db, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob, match_format=MatchFormat.BEST_OF_3)

        await match_ops.submit_report(report(match, alice, alice, 2))
        status = await match_ops.submit_report(report(match, bob, alice, 3))

        assert status == MatchStatus.DISPUTED
        stored = await match_ops.get_match_by_id(match.id)
        assert stored.status == MatchStatus.DISPUTED
        assert stored.winner_id is None
        assert (await db.get_player_by_id(alice.id)).elo_lifetime == 1500
        assert (await db.get_player_by_id(bob.id)).matches_played == 0

        disputed = await match_ops.get_disputed_matches()
        assert [m.id for m in disputed] == [match.id]

    async def test_reports_rejected_while_disputed(self, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob)
        await match_ops.submit_report(report(match, alice, alice, 1))
        await match_ops.submit_report(report(match, bob, bob, 0))

        with pytest.raises(MatchDisputedError):
            await match_ops.submit_report(report(match, bob, alice, 1))

    async def test_report_after_completion_rejected(self, db, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob)
        await match_ops.submit_report(report(match, alice, alice, 1))
        await match_ops.submit_report(report(match, bob, alice, 1))

        with pytest.raises(MatchAlreadyCompletedError):
            await match_ops.submit_report(report(match, alice, alice, 1))
        with pytest.raises(MatchAlreadyCompletedError):
            await match_ops.submit_report(report(match, bob, bob, 0))

        assert (await db.get_player_by_id(alice.id)).matches_played == 1

    async def test_non_participant_rejected(self, match_ops, make_match, make_player, alice, bob):
        carol = await make_player("carol")
        match = await make_match(alice, bob)

        with pytest.raises(NotParticipantError):
            await match_ops.submit_report(report(match, carol, alice, 1))

    async def test_invalid_games_won(self, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob)

        with pytest.raises(InvalidGamesWonError):
            await match_ops.submit_report(report(match, alice, alice, 2))

    async def test_winner_must_be_participant(self, match_ops, make_match, make_player, alice, bob):
        carol = await make_player("carol")
        match = await make_match(alice, bob)

        with pytest.raises(InvalidWinnerError):
            await match_ops.submit_report(report(match, alice, carol, 1))

    async def test_winner_must_match_games(self, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob, match_format=MatchFormat.BEST_OF_3)

        with pytest.raises(InvalidResultError):
            await match_ops.submit_report(report(match, alice, alice, 1))

        stored = await match_ops.get_match_by_id(match.id)
        assert stored.reports == []
        assert stored.version == 0

    async def test_unknown_match(self, match_ops, alice, bob):
        with pytest.raises(MatchNotFoundError):
            await match_ops.submit_report(
                SubmitReport(match_id=999, reporter_id=alice.id, reported_winner_id=alice.id, reported_p1_games_won=1)
            )


class TestAdminResolve:
    async def test_resolves_dispute(self, db, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob, match_format=MatchFormat.BEST_OF_3)
        await match_ops.submit_report(report(match, alice, alice, 2))
        await match_ops.submit_report(report(match, bob, bob, 1))

        status = await match_ops.admin_resolve(
            AdminResolve(match_id=match.id, actor_role=UserRole.ADMIN, p1_games_won=2)
        )

        assert status == MatchStatus.COMPLETED
        stored = await match_ops.get_match_by_id(match.id)
        assert stored.winner_id == alice.id
        assert stored.resolved_by_admin is True
        assert stored.resolved_p1_games_won == 2
        assert (await db.get_player_by_id(alice.id)).elo_lifetime == pytest.approx(1516)

    async def test_resolves_pending_without_reports(self, db, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob)

        await match_ops.admin_resolve(AdminResolve(match_id=match.id, actor_role=UserRole.ADMIN, p1_games_won=0))

        assert (await db.get_player_by_id(bob.id)).wins == 1
        assert (await db.get_player_by_id(alice.id)).wins == 0

    async def test_requires_admin(self, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob)

        with pytest.raises(NotAdminError):
            await match_ops.admin_resolve(AdminResolve(match_id=match.id, actor_role=UserRole.USER, p1_games_won=1))

    async def test_invalid_result(self, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob)

        with pytest.raises(InvalidGamesWonError):
            await match_ops.admin_resolve(AdminResolve(match_id=match.id, actor_role=UserRole.ADMIN, p1_games_won=5))

    async def test_completed_match_is_not_resolved_twice(self, db, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob)
        command = AdminResolve(match_id=match.id, actor_role=UserRole.ADMIN, p1_games_won=1)
        await match_ops.admin_resolve(command)

        with pytest.raises(MatchAlreadyCompletedError):
            await match_ops.admin_resolve(command)

        player = await db.get_player_by_id(alice.id)
        assert player.matches_played == 1
        assert player.elo_lifetime == pytest.approx(1516)

    async def test_unknown_match(self, match_ops):
        with pytest.raises(MatchNotFoundError):
            await match_ops.admin_resolve(AdminResolve(match_id=77, actor_role=UserRole.ADMIN, p1_games_won=1))


class TestSnapshots:
    async def test_later_rating_changes_do_not_alter_payout(self, db, match_ops, make_match, alice, bob):
        first = await make_match(alice, bob)
        second = await make_match(alice, bob)

        await match_ops.admin_resolve(AdminResolve(match_id=second.id, actor_role=UserRole.ADMIN, p1_games_won=1))
        await match_ops.admin_resolve(AdminResolve(match_id=first.id, actor_role=UserRole.ADMIN, p1_games_won=1))

        # Both matches were created at 1500 vs 1500, so each pays exactly 16
        assert (await db.get_player_by_id(alice.id)).elo_lifetime == pytest.approx(1532)
        assert (await db.get_player_by_id(bob.id)).elo_lifetime == pytest.approx(1468)


class TestConcurrency:
    async def test_concurrent_admin_resolutions_apply_once(self, db, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob)
        command = AdminResolve(match_id=match.id, actor_role=UserRole.ADMIN, p1_games_won=1)

        results = await asyncio.gather(
            match_ops.admin_resolve(command),
            match_ops.admin_resolve(command),
            return_exceptions=True
        )

        assert results.count(MatchStatus.COMPLETED) == 1
        assert sum(isinstance(r, MatchAlreadyCompletedError) for r in results) == 1

        winner = await db.get_player_by_id(alice.id)
        loser = await db.get_player_by_id(bob.id)
        assert winner.matches_played == 1
        assert winner.elo_lifetime == pytest.approx(1516)
        assert loser.elo_lifetime == pytest.approx(1484)

    async def test_racing_agreeing_reports_apply_once(self, db, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob)

        results = await asyncio.gather(
            match_ops.submit_report(report(match, alice, alice, 1)),
            match_ops.submit_report(report(match, bob, alice, 1)),
        )

        assert sorted(r.value for r in results) == ["completed", "pending"]
        winner = await db.get_player_by_id(alice.id)
        assert winner.matches_played == 1
        assert winner.wins == 1
        assert winner.elo_seasonal == pytest.approx(1216)

    async def test_report_racing_admin_resolution(self, db, match_ops, make_match, alice, bob):
        match = await make_match(alice, bob)
        await match_ops.submit_report(report(match, alice, alice, 1))

        results = await asyncio.gather(
            match_ops.submit_report(report(match, bob, alice, 1)),
            match_ops.admin_resolve(AdminResolve(match_id=match.id, actor_role=UserRole.ADMIN, p1_games_won=1)),
            return_exceptions=True
        )

        assert results.count(MatchStatus.COMPLETED) == 1
        assert sum(isinstance(r, MatchAlreadyCompletedError) for r in results) == 1
        assert (await db.get_player_by_id(bob.id)).matches_played == 1


class TestListing:
    async def test_open_matches_for_player(self, match_ops, make_match, make_player, alice, bob):
        carol = await make_player("carol")
        open_match = await make_match(alice, bob)
        done = await make_match(alice, carol)
        await match_ops.admin_resolve(AdminResolve(match_id=done.id, actor_role=UserRole.ADMIN, p1_games_won=1))

        matches = await match_ops.get_open_matches_for_player(alice.id)
        assert [m.id for m in matches] == [open_match.id]
        assert matches[0].player2.username == "bob"

    async def test_recent_matches_newest_first(self, match_ops, make_match, alice, bob):
        first = await make_match(alice, bob)
        second = await make_match(alice, bob)

        recent = await match_ops.get_recent_matches(limit=5)
        assert [m.id for m in recent] == [second.id, first.id]
