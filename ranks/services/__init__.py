"""
Services package for the ranking bot.

Read-model services: leaderboard, profile and rating history.
"""

from .base import BaseService
from .leaderboard import LeaderboardService
from .profile import ProfileService
from .rating_history import RatingHistoryService

__all__ = ['BaseService', 'LeaderboardService', 'ProfileService', 'RatingHistoryService']
