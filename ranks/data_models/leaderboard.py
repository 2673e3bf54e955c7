"""
Leaderboard data models.

Immutable data transfer objects for leaderboard and rating history views.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List


@dataclass(frozen=True)
class LeaderboardEntry:
    """Single leaderboard row."""
    rank: int
    player_id: int
    username: str
    display_name: str
    elo: int
    matches_played: int
    wins: int
    win_rate: float


@dataclass(frozen=True)
class LeaderboardPage:
    """Leaderboard data for one rating track."""
    entries: List[LeaderboardEntry]
    track: str
    total_players: int


@dataclass(frozen=True)
class RatingPoint:
    """One point of a rating time series."""
    timestamp: datetime
    rating: float
