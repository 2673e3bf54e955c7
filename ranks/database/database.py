import asyncio
from typing import Awaitable, Callable, Optional, List, Tuple, Type, TypeVar
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from contextlib import asynccontextmanager

from ranks.config import Config
from ranks.database.models import (
    Base, Player, Season, utc_now
)
from ranks.utils.exceptions import RankedOperationError
from ranks.utils.logger import setup_logger

T = TypeVar('T')


class Database:
    """
    Storage handle for the ranking engine.

    Construct once at process start, call initialize() to open the engine,
    pass the instance to every operations class, and close() at shutdown.
    """

    def __init__(self, database_url: Optional[str] = None, echo: Optional[bool] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url or Config.DATABASE_URL
        self.echo = Config.DEBUG if echo is None else echo
        self.engine = None
        self.async_session = None

    @property
    def session_factory(self):
        return self.async_session

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        # Convert sqlite URL to async if needed
        database_url = self.database_url
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        self.engine = create_async_engine(
            database_url,
            echo=self.echo,
            future=True
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

        await self.initialize_default_data()

    async def initialize_default_data(self):
        """Create the first season if the database has none"""
        async with self.transaction() as session:
            result = await session.execute(select(func.count(Season.id)))
            if result.scalar() == 0:
                session.add(Season(season_num=1, start_date=utc_now(), is_active=True))
                self.logger.info("Created initial season 1")

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        Everything done with the yielded session commits together on
        success or rolls back together when an exception escapes.
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def run_in_transaction(
        self,
        description: str,
        operation: Callable[[AsyncSession], Awaitable[T]],
        retry_on: Tuple[Type[Exception], ...] = (OperationalError,),
        attempts: Optional[int] = None
    ) -> T:
        """
        Run operation(session) in its own transaction.

        Exceptions listed in retry_on roll the unit back and run it again
        with exponential backoff. Domain rejections propagate unchanged;
        any other storage error is logged and wrapped in RankedOperationError.
        """
        attempts = max(1, attempts or Config.MATCH_RETRY_ATTEMPTS)
        for attempt in range(attempts):
            try:
                async with self.transaction() as session:
                    return await operation(session)
            except (RankedOperationError, SQLAlchemyError) as e:
                if isinstance(e, retry_on) and attempt < attempts - 1:
                    self.logger.warning(f"Retry attempt {attempt + 1} for {description}: {e}")
                    await asyncio.sleep(0.05 * (2 ** attempt))
                    continue
                if isinstance(e, RankedOperationError):
                    raise
                self.logger.error(f"Storage error during {description}: {e}")
                raise RankedOperationError(
                    f"Database error during {description}: {e}",
                    "❌ A database error occurred. Please try again later."
                ) from e

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.logger.info("Database connection closed")

    # Player reads
    async def get_player_by_id(self, player_id: int) -> Optional[Player]:
        async with self.get_session() as session:
            return await session.get(Player, player_id)

    async def get_player_by_discord_id(self, discord_id: int) -> Optional[Player]:
        """Get a player by their Discord ID"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Player).where(Player.discord_id == discord_id)
            )
            return result.scalar_one_or_none()

    async def get_player_by_username(self, username: str) -> Optional[Player]:
        async with self.get_session() as session:
            result = await session.execute(
                select(Player).where(Player.username == username.strip().lower())
            )
            return result.scalar_one_or_none()

    # Season reads
    async def get_active_season(self) -> Optional[Season]:
        async with self.get_session() as session:
            result = await session.execute(select(Season).where(Season.is_active == True))
            return result.scalar_one_or_none()

    async def get_all_seasons(self) -> List[Season]:
        async with self.get_session() as session:
            result = await session.execute(select(Season).order_by(Season.season_num.desc()))
            return list(result.scalars().all())
