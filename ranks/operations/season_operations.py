"""
Season Operations Service

Rolls the seasonal rating track over to a new season. Lifetime ratings
and completed matches are never touched; pending matches keep the
seasonal ratings they snapshotted at creation.
"""

from typing import Callable, List, Optional
from datetime import datetime
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.ext.asyncio import AsyncSession

from ranks.config import Config
from ranks.database.database import Database
from ranks.database.models import Player, Season, UserRole, utc_now
from ranks.utils.exceptions import NotAdminError, SeasonRolloverConflictError
from ranks.utils.logger import setup_logger


class SeasonOperations:
    """Service class for season management"""

    def __init__(self, db: Database, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock
        self.logger = setup_logger(f"{__name__}.SeasonOperations")

    async def rollover_season(self, actor_role: UserRole, session: Optional[AsyncSession] = None) -> Season:
        """
        End the active season, start the next one and reset every player's
        seasonal rating to the baseline.

        Args:
            actor_role: Role of the acting user
            session: Optional existing database session

        Returns:
            The newly active Season

        Raises:
            NotAdminError: If the actor is not an admin
            SeasonRolloverConflictError: If a concurrent rollover ended the season first
        """
        if actor_role != UserRole.ADMIN:
            raise NotAdminError("season rollover")

        async def _rollover(session: AsyncSession) -> Season:
            now = self.clock()

            result = await session.execute(select(Season).where(Season.is_active == True))
            previous = result.scalar_one_or_none()
            if previous:
                # Deactivate before inserting so the single-active index holds
                ended = await session.execute(
                    update(Season)
                    .where(Season.id == previous.id, Season.is_active == True)
                    .values(is_active=False, end_date=now)
                    .execution_options(synchronize_session=False)
                )
                if ended.rowcount != 1:
                    raise SeasonRolloverConflictError(previous.season_num)
                set_committed_value(previous, 'is_active', False)
                set_committed_value(previous, 'end_date', now)

            result = await session.execute(select(func.max(Season.season_num)))
            last_num = result.scalar() or 0

            season = Season(season_num=last_num + 1, start_date=now, is_active=True, created_at=now)
            session.add(season)
            try:
                await session.flush()
            except IntegrityError:
                # Another rollover inserted the next season first
                raise SeasonRolloverConflictError(previous.season_num if previous else None)

            reset = await session.execute(
                update(Player)
                .values(elo_seasonal=Config.STARTING_ELO_SEASONAL, updated_at=now)
                .execution_options(synchronize_session=False)
            )

            self.logger.info(
                f"Season {season.season_num} started"
                f"{f' (season {previous.season_num} ended)' if previous else ''}; "
                f"reset seasonal rating of {reset.rowcount} players to {Config.STARTING_ELO_SEASONAL}"
            )
            return season

        if session:
            return await _rollover(session)
        return await self.db.run_in_transaction("season rollover", _rollover, retry_on=())

    async def get_active_season(self) -> Optional[Season]:
        return await self.db.get_active_season()

    async def list_seasons(self) -> List[Season]:
        """All seasons, newest first"""
        return await self.db.get_all_seasons()

    async def ensure_initial_season(self) -> Season:
        """Return the active season, creating season 1 if no season exists yet"""
        async with self.db.transaction() as session:
            result = await session.execute(select(Season).where(Season.is_active == True))
            season = result.scalar_one_or_none()
            if season:
                return season

            result = await session.execute(select(func.count(Season.id)))
            if result.scalar() == 0:
                season = Season(season_num=1, start_date=self.clock(), is_active=True)
                session.add(season)
                await session.flush()
                self.logger.info("Created initial season 1")
                return season

        # Seasons exist but none is active; start the next one
        return await self.rollover_season(UserRole.ADMIN)
