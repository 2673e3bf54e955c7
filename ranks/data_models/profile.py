"""
Profile data models.

Immutable data transfer objects for profile-related data aggregation.
"""

from dataclasses import dataclass
from typing import List, Optional
from datetime import datetime


@dataclass(frozen=True)
class MatchRecord:
    """Single match history entry."""
    match_id: int
    opponent_name: str
    opponent_id: int
    result: str  # 'win' or 'loss'
    games_won: int
    games_lost: int
    deck: str
    opponent_deck: str
    elo_change_lifetime: float
    elo_change_seasonal: float
    resolved_by_admin: bool
    played_at: datetime


@dataclass(frozen=True)
class ProfileData:
    """Complete profile data for a player."""
    player_id: int
    username: str
    display_name: str
    role: str

    elo_lifetime: int
    elo_seasonal: int
    lifetime_rank: int
    seasonal_rank: int
    total_players: int

    total_matches: int
    wins: int
    losses: int
    win_rate: float
    current_streak: Optional[str]  # W3, L1, etc. or None if no matches

    recent_matches: List[MatchRecord]
    open_matches: int

    created_at: Optional[datetime]
