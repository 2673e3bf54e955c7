"""
Rating history reconstruction.

Replays a player's completed matches from the rating baseline, using each
match's frozen start-of-match ratings and resolved games split. The replay
runs through the same EloCalculator that settled the matches, so the last
point equals the rating currently stored on the player.
"""

from datetime import datetime
from typing import Iterable, Iterator, List, Optional

from sqlalchemy import select, or_

from ranks.config import Config
from ranks.database.models import Match, MatchStatus, Player, RatingTrack, Season
from ranks.data_models.leaderboard import RatingPoint
from ranks.services.base import BaseService
from ranks.utils.elo import EloCalculator
from ranks.utils.exceptions import PlayerNotFoundError
from ranks.utils.logger import setup_logger

logger = setup_logger(__name__)


def baseline_rating(track: RatingTrack) -> float:
    if track == RatingTrack.LIFETIME:
        return float(Config.STARTING_ELO_LIFETIME)
    return float(Config.STARTING_ELO_SEASONAL)


def player_rating_change(match: Match, player_id: int, track: RatingTrack) -> float:
    """Rating change a completed match gave to one of its players on a track"""
    start_p1, start_p2 = match.rating_snapshot(track)
    changes = EloCalculator.calculate_match_elo_changes(
        start_p1, start_p2, match.resolved_p1_games_won,
        EloCalculator.get_total_games(match.match_format)
    )
    return changes.player1_change if player_id == match.player1_id else changes.player2_change


def replay_rating_history(
    player_id: int,
    matches: Iterable[Match],
    track: RatingTrack,
    start: datetime,
    season_starts: Iterable[datetime] = ()
) -> Iterator[RatingPoint]:
    """
    Yield (timestamp, rating) points for a player on one track.

    Args:
        player_id: The player whose ratings are replayed
        matches: The player's completed matches
        track: Lifetime or seasonal
        start: When the player's current rating run began (registration or
            last admin reset); earlier matches are not part of it
        season_starts: Start dates of seasons; the seasonal track drops back
            to the baseline at each one after start

    The generator holds no state outside its arguments, so calling it again
    with the same input restarts the series.
    """
    baseline = baseline_rating(track)
    ordered = sorted(
        (m for m in matches if m.status == MatchStatus.COMPLETED and m.completed_at and m.completed_at >= start),
        key=lambda m: (m.completed_at, m.id)
    )
    resets: List[datetime] = []
    if track == RatingTrack.SEASONAL:
        resets = sorted(s for s in season_starts if s > start)

    rating = baseline
    yield RatingPoint(timestamp=start, rating=rating)

    for match in ordered:
        while resets and resets[0] <= match.completed_at:
            rating = baseline
            yield RatingPoint(timestamp=resets.pop(0), rating=rating)
        rating += player_rating_change(match, player_id, track)
        yield RatingPoint(timestamp=match.completed_at, rating=rating)

    for reset_at in resets:
        yield RatingPoint(timestamp=reset_at, rating=baseline)


class RatingHistoryService(BaseService):
    """Builds rating time series for display."""

    async def get_rating_history(self, username: str, track: RatingTrack = RatingTrack.LIFETIME,
                                 player: Optional[Player] = None) -> List[RatingPoint]:
        """
        Rating history of a player on a track, oldest point first.

        Raises:
            PlayerNotFoundError: If no player has the username
        """
        async def _load() -> List[RatingPoint]:
            async with self.get_session() as session:
                target = player
                if target is None:
                    result = await session.execute(
                        select(Player).where(Player.username == username.strip().lower())
                    )
                    target = result.scalar_one_or_none()
                    if not target:
                        raise PlayerNotFoundError(username)

                result = await session.execute(
                    select(Match)
                    .where(
                        or_(Match.player1_id == target.id, Match.player2_id == target.id),
                        Match.status == MatchStatus.COMPLETED
                    )
                    .order_by(Match.completed_at, Match.id)
                )
                matches = result.scalars().all()

                season_starts = []
                if track == RatingTrack.SEASONAL:
                    result = await session.execute(select(Season.start_date).order_by(Season.season_num))
                    season_starts = list(result.scalars().all())

                start = target.ratings_reset_at or target.created_at
                points = list(replay_rating_history(target.id, matches, track, start, season_starts))
                logger.debug(
                    f"Rebuilt {track.value} history for Player {target.id}: {len(points)} points"
                )
                return points

        return await self.execute_with_retry(_load)
