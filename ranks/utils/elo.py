import math
from typing import NamedTuple, Optional

from ranks.config import Config
from ranks.database.models import MatchFormat, MatchSide


class MatchEloChanges(NamedTuple):
    """Rating changes produced by one match; always zero-sum"""
    player1_change: float
    player2_change: float


class EloCalculator:
    """Handles Elo rating calculations for decomposed best-of-N matches"""

    @staticmethod
    def calculate_expected_score(rating_a: float, rating_b: float) -> float:
        """
        Calculate the expected score for player A against player B

        Args:
            rating_a: Player A's rating
            rating_b: Player B's rating

        Returns:
            Expected score (0.0 to 1.0) for player A
        """
        return 1 / (1 + math.pow(10, (rating_b - rating_a) / 400))

    @staticmethod
    def calculate_game_elo_change(rating: float, opponent_rating: float, actual_score: int) -> float:
        """
        Calculate the rating change for a single game

        Args:
            rating: The player's pre-match rating
            opponent_rating: The opponent's pre-match rating
            actual_score: 1 for a win, 0 for a loss

        Returns:
            Unrounded rating change (positive for a win, negative for a loss)
        """
        if actual_score not in (0, 1):
            raise ValueError(f"actual_score must be 0 or 1, got {actual_score}")
        expected_score = EloCalculator.calculate_expected_score(rating, opponent_rating)
        return Config.K_FACTOR * (actual_score - expected_score)

    @staticmethod
    def calculate_match_elo_changes(player1_rating: float, player2_rating: float,
                                    player1_games_won: int, total_games: int) -> MatchEloChanges:
        """
        Calculate rating changes for both players of a complete match.

        Every game is scored against the fixed pre-match ratings, so the
        order of wins and losses inside the match does not matter.

        Args:
            player1_rating: Player 1's rating at match start
            player2_rating: Player 2's rating at match start
            player1_games_won: Games player 1 won
            total_games: Total games in the format

        Returns:
            MatchEloChanges with player 2's change the exact negation of player 1's
        """
        if not 0 <= player1_games_won <= total_games:
            raise ValueError(
                f"player1_games_won must be between 0 and {total_games}, got {player1_games_won}"
            )

        win_change = EloCalculator.calculate_game_elo_change(player1_rating, player2_rating, 1)
        loss_change = EloCalculator.calculate_game_elo_change(player1_rating, player2_rating, 0)

        player1_change = 0.0
        for _ in range(player1_games_won):
            player1_change += win_change
        for _ in range(total_games - player1_games_won):
            player1_change += loss_change

        return MatchEloChanges(player1_change, -player1_change)

    @staticmethod
    def get_total_games(match_format: MatchFormat) -> int:
        return 1 if match_format == MatchFormat.BEST_OF_1 else 3

    @staticmethod
    def get_required_wins(match_format: MatchFormat) -> int:
        return math.ceil(EloCalculator.get_total_games(match_format) / 2)

    @staticmethod
    def is_valid_games_won(games_won: int, match_format: MatchFormat) -> bool:
        if isinstance(games_won, bool) or not isinstance(games_won, int):
            return False
        return 0 <= games_won <= EloCalculator.get_total_games(match_format)

    @staticmethod
    def determine_winner(player1_games_won: int, match_format: MatchFormat) -> Optional[MatchSide]:
        """
        Determine which side won from player 1's games won.

        Returns:
            MatchSide of the winner, or None when the count reaches neither
            side's win threshold
        """
        if not EloCalculator.is_valid_games_won(player1_games_won, match_format):
            return None

        total_games = EloCalculator.get_total_games(match_format)
        required_wins = EloCalculator.get_required_wins(match_format)

        if player1_games_won >= required_wins:
            return MatchSide.PLAYER1
        elif (total_games - player1_games_won) >= required_wins:
            return MatchSide.PLAYER2
        return None

    @staticmethod
    def calculate_win_probability(rating_a: float, rating_b: float) -> float:
        """Win probability for player A as a percentage"""
        return EloCalculator.calculate_expected_score(rating_a, rating_b) * 100

    @staticmethod
    def format_elo_change(elo_change: float) -> str:
        """
        Format Elo change for display

        Args:
            elo_change: The unrounded Elo change

        Returns:
            Rounded change with an explicit sign
        """
        rounded = round(elo_change)
        if rounded > 0:
            return f"+{rounded}"
        elif rounded < 0:
            return str(rounded)
        else:
            return "±0"
