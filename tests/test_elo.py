"""Tests for the Elo rating engine."""

import pytest

from ranks.database.models import MatchFormat, MatchSide
from ranks.utils.elo import EloCalculator


class TestExpectedScore:
    def test_equal_ratings(self):
        assert EloCalculator.calculate_expected_score(1500, 1500) == pytest.approx(0.5)

    def test_expected_scores_sum_to_one(self):
        a = EloCalculator.calculate_expected_score(1640, 1380)
        b = EloCalculator.calculate_expected_score(1380, 1640)
        assert a + b == pytest.approx(1.0)

    def test_400_points_is_ten_to_one(self):
        assert EloCalculator.calculate_expected_score(1900, 1500) == pytest.approx(10 / 11)


class TestGameChange:
    def test_even_game(self):
        assert EloCalculator.calculate_game_elo_change(1500, 1500, 1) == pytest.approx(16)
        assert EloCalculator.calculate_game_elo_change(1500, 1500, 0) == pytest.approx(-16)

    def test_single_game_is_zero_sum(self):
        gain = EloCalculator.calculate_game_elo_change(1712, 1433, 1)
        loss = EloCalculator.calculate_game_elo_change(1433, 1712, 0)
        assert gain == pytest.approx(-loss)

    def test_rejects_partial_score(self):
        with pytest.raises(ValueError):
            EloCalculator.calculate_game_elo_change(1500, 1500, 0.5)


class TestMatchChanges:
    def test_bo1_equal_ratings_player1_wins(self):
        changes = EloCalculator.calculate_match_elo_changes(1500, 1500, 1, 1)
        assert changes.player1_change == pytest.approx(16)
        assert changes.player2_change == pytest.approx(-16)

    def test_favourite_wins_small_change(self):
        changes = EloCalculator.calculate_match_elo_changes(1800, 1200, 1, 1)
        assert abs(changes.player1_change) < 3

    def test_underdog_wins_large_change(self):
        changes = EloCalculator.calculate_match_elo_changes(1800, 1200, 0, 1)
        assert abs(changes.player2_change) > 29

    def test_bo3_two_one_at_equal_ratings(self):
        changes = EloCalculator.calculate_match_elo_changes(1500, 1500, 2, 3)
        assert changes.player1_change == pytest.approx(16)

    def test_bo3_sweep(self):
        changes = EloCalculator.calculate_match_elo_changes(1500, 1500, 3, 3)
        assert changes.player1_change == pytest.approx(48)

    @pytest.mark.parametrize("r1,r2", [(1500, 1500), (1200, 1850), (2010.5, 1333.25), (900, 900.1)])
    @pytest.mark.parametrize("games,total", [(0, 1), (1, 1), (0, 3), (1, 3), (2, 3), (3, 3)])
    def test_zero_sum(self, r1, r2, games, total):
        changes = EloCalculator.calculate_match_elo_changes(r1, r2, games, total)
        assert changes.player1_change == -changes.player2_change

    def test_games_use_fixed_pre_match_ratings(self):
        win = EloCalculator.calculate_game_elo_change(1600, 1400, 1)
        loss = EloCalculator.calculate_game_elo_change(1600, 1400, 0)
        changes = EloCalculator.calculate_match_elo_changes(1600, 1400, 2, 3)
        assert changes.player1_change == pytest.approx(2 * win + loss)

    @pytest.mark.parametrize("games", [-1, 4])
    def test_out_of_range_games(self, games):
        with pytest.raises(ValueError):
            EloCalculator.calculate_match_elo_changes(1500, 1500, games, 3)


class TestFormats:
    def test_total_games(self):
        assert EloCalculator.get_total_games(MatchFormat.BEST_OF_1) == 1
        assert EloCalculator.get_total_games(MatchFormat.BEST_OF_3) == 3

    def test_valid_games_won(self):
        assert EloCalculator.is_valid_games_won(0, MatchFormat.BEST_OF_1)
        assert EloCalculator.is_valid_games_won(1, MatchFormat.BEST_OF_1)
        assert not EloCalculator.is_valid_games_won(2, MatchFormat.BEST_OF_1)
        assert EloCalculator.is_valid_games_won(3, MatchFormat.BEST_OF_3)
        assert not EloCalculator.is_valid_games_won(-1, MatchFormat.BEST_OF_3)
        assert not EloCalculator.is_valid_games_won(True, MatchFormat.BEST_OF_1)
        assert not EloCalculator.is_valid_games_won(1.0, MatchFormat.BEST_OF_1)

    @pytest.mark.parametrize("games,fmt,expected", [
        (1, MatchFormat.BEST_OF_1, MatchSide.PLAYER1),
        (0, MatchFormat.BEST_OF_1, MatchSide.PLAYER2),
        (3, MatchFormat.BEST_OF_3, MatchSide.PLAYER1),
        (2, MatchFormat.BEST_OF_3, MatchSide.PLAYER1),
        (1, MatchFormat.BEST_OF_3, MatchSide.PLAYER2),
        (0, MatchFormat.BEST_OF_3, MatchSide.PLAYER2),
    ])
    def test_determine_winner(self, games, fmt, expected):
        assert EloCalculator.determine_winner(games, fmt) == expected

    @pytest.mark.parametrize("games,fmt", [
        (2, MatchFormat.BEST_OF_1),
        (4, MatchFormat.BEST_OF_3),
        (-1, MatchFormat.BEST_OF_3),
    ])
    def test_determine_winner_rejects_invalid_counts(self, games, fmt):
        assert EloCalculator.determine_winner(games, fmt) is None


class TestFormatting:
    def test_format_elo_change(self):
        assert EloCalculator.format_elo_change(15.6) == "+16"
        assert EloCalculator.format_elo_change(-2.4) == "-2"
        assert EloCalculator.format_elo_change(0.2) == "±0"

    def test_win_probability(self):
        assert EloCalculator.calculate_win_probability(1500, 1500) == pytest.approx(50.0)
