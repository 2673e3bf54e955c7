"""
Challenge Operations Service

Handles the business logic of head-to-head challenges: proposal,
acceptance or decline by the challenged player, expiry, and conversion of
an accepted challenge into a pending Match.

A challenge leaves PENDING only through a conditional update on its
status, so of two racing responses (or a response racing the expiry
sweep) exactly one wins and the other is rejected.
"""

from typing import Callable, List, Optional, Union
from datetime import datetime, timedelta
from sqlalchemy import select, update, and_, or_, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.ext.asyncio import AsyncSession

from ranks.config import Config
from ranks.database.database import Database
from ranks.database.match_operations import build_match
from ranks.database.models import (
    Challenge, ChallengeStatus, Match, Player, ProposedFormat, challenge_pair_key, utc_now
)
from ranks.data_models.commands import AcceptChallenge, DeclineChallenge, ChallengeResponse
from ranks.utils.exceptions import (
    ChallengeNotFoundError, ChallengeNotPendingError, DuplicateChallengeError,
    InvalidCommandError, NotChallengedPlayerError, PlayerNotFoundError, SelfChallengeError,
    DeckRequiredError
)
from ranks.utils.logger import setup_logger

logger = setup_logger(__name__)


class ChallengeOperations:
    """
    Service class for challenge-related operations.

    Manages challenge creation, responses and expiry. Accepting a challenge
    creates the Match and deletes the Challenge in one transaction.
    """

    def __init__(self, db: Database, clock: Callable[[], datetime] = utc_now):
        """
        Initialize ChallengeOperations with database connection.

        Args:
            db: Database instance for persistence
            clock: Wall-clock source returning naive UTC datetimes
        """
        self.db = db
        self.clock = clock
        self.logger = setup_logger(f"{__name__}.ChallengeOperations")

    async def _run(self, description: str, operation, session: Optional[AsyncSession] = None):
        """Run operation in the caller's session, or in its own retried transaction"""
        if session:
            return await operation(session)
        return await self.db.run_in_transaction(description, operation)

    async def create_challenge(
        self,
        challenger_id: int,
        challenged_id: int,
        proposed_format: ProposedFormat,
        challenger_deck: str,
        expires_in_hours: Optional[int] = None,
        session: Optional[AsyncSession] = None
    ) -> Challenge:
        """
        Create a new pending challenge.

        Args:
            challenger_id: Player issuing the challenge
            challenged_id: Player being challenged
            proposed_format: BO1 or BO3
            challenger_deck: Deck the challenger will play
            expires_in_hours: Hours until the challenge expires
            session: Optional existing database session

        Returns:
            Created Challenge

        Raises:
            SelfChallengeError: If both ids are the same player
            PlayerNotFoundError: If either player does not exist
            DuplicateChallengeError: If a pending challenge already exists for the pair
        """
        if challenger_id == challenged_id:
            raise SelfChallengeError()
        if not isinstance(proposed_format, ProposedFormat):
            raise InvalidCommandError("Format must be bo1 or bo3")
        if not challenger_deck or not challenger_deck.strip():
            raise DeckRequiredError()

        hours = Config.CHALLENGE_EXPIRY_HOURS if expires_in_hours is None else expires_in_hours

        async def _create(session: AsyncSession) -> Challenge:
            for player_id in (challenger_id, challenged_id):
                if not await session.get(Player, player_id):
                    raise PlayerNotFoundError(player_id)

            if await self._has_pending_challenge(challenger_id, challenged_id, session):
                raise DuplicateChallengeError(challenger_id, challenged_id)

            now = self.clock()
            challenge = Challenge(
                challenger_id=challenger_id,
                challenged_id=challenged_id,
                pair_key=challenge_pair_key(challenger_id, challenged_id),
                proposed_format=proposed_format,
                challenger_deck=challenger_deck.strip(),
                status=ChallengeStatus.PENDING,
                created_at=now,
                updated_at=now,
                expires_at=now + timedelta(hours=hours)
            )
            session.add(challenge)
            try:
                await session.flush()
            except IntegrityError:
                # Lost a race against another pending challenge for the same pair
                raise DuplicateChallengeError(challenger_id, challenged_id)

            self.logger.info(
                f"Created challenge {challenge.id}: {challenger_id} -> {challenged_id} "
                f"({proposed_format.value})"
            )
            return challenge

        return await self._run("challenge creation", _create, session)

    async def respond_to_challenge(
        self,
        command: ChallengeResponse,
        session: Optional[AsyncSession] = None
    ) -> Union[Match, Challenge]:
        """Dispatch an accept or decline command"""
        if isinstance(command, AcceptChallenge):
            return await self.accept_challenge(command, session=session)
        if isinstance(command, DeclineChallenge):
            return await self.decline_challenge(command, session=session)
        raise InvalidCommandError("Unsupported challenge response")

    async def accept_challenge(
        self,
        command: AcceptChallenge,
        session: Optional[AsyncSession] = None
    ) -> Match:
        """
        Accept a pending challenge and convert it into a pending Match.

        Returns:
            The created Match

        Raises:
            ChallengeNotFoundError, NotChallengedPlayerError, ChallengeNotPendingError
        """
        async def _accept(session: AsyncSession) -> Match:
            challenge = await self._load_pending_for_response(command.challenge_id, command.actor_id, session)
            await self._claim_challenge(session, challenge, ChallengeStatus.LOCKED, challenged_deck=command.deck)

            match = build_match(
                challenge.challenger,
                challenge.challenged,
                challenge.challenger_deck,
                challenge.challenged_deck,
                challenge.proposed_format.to_match_format(),
                created_by=challenge.challenger_id,
                now=self.clock()
            )
            session.add(match)
            await session.flush()

            await session.execute(delete(Challenge).where(Challenge.id == challenge.id))

            self.logger.info(
                f"Challenge {challenge.id} accepted by player {command.actor_id} - "
                f"Match {match.id} created ({match.player1_id} vs {match.player2_id})"
            )
            return match

        return await self._run(f"acceptance of challenge {command.challenge_id}", _accept, session)

    async def decline_challenge(
        self,
        command: DeclineChallenge,
        session: Optional[AsyncSession] = None
    ) -> Challenge:
        """
        Decline a pending challenge.

        Raises:
            ChallengeNotFoundError, NotChallengedPlayerError, ChallengeNotPendingError
        """
        async def _decline(session: AsyncSession) -> Challenge:
            challenge = await self._load_pending_for_response(command.challenge_id, command.actor_id, session)
            await self._claim_challenge(session, challenge, ChallengeStatus.DECLINED)

            self.logger.info(f"Challenge {challenge.id} declined by player {command.actor_id}")
            return challenge

        return await self._run(f"decline of challenge {command.challenge_id}", _decline, session)

    async def get_challenge_by_id(
        self,
        challenge_id: int,
        session: Optional[AsyncSession] = None
    ) -> Optional[Challenge]:
        """Retrieve a challenge by ID with both players loaded"""
        async def _get(session: AsyncSession) -> Optional[Challenge]:
            return await self._load_challenge(challenge_id, session)

        if session:
            return await _get(session)
        else:
            async with self.db.get_session() as db_session:
                return await _get(db_session)

    async def get_incoming_challenges(
        self,
        player_id: int,
        session: Optional[AsyncSession] = None
    ) -> List[Challenge]:
        """Pending challenges waiting for this player's answer, newest first"""
        async def _get(session: AsyncSession) -> List[Challenge]:
            result = await session.execute(
                self._challenge_query()
                .where(
                    and_(
                        Challenge.challenged_id == player_id,
                        Challenge.status == ChallengeStatus.PENDING
                    )
                )
                .order_by(Challenge.created_at.desc(), Challenge.id.desc())
            )
            return list(result.scalars().all())

        if session:
            return await _get(session)
        else:
            async with self.db.get_session() as db_session:
                return await _get(db_session)

    async def get_outgoing_challenges(
        self,
        player_id: int,
        include_closed: bool = False,
        session: Optional[AsyncSession] = None
    ) -> List[Challenge]:
        """
        Challenges created by this player.

        Args:
            player_id: The challenger
            include_closed: Also list declined and expired challenges
        """
        async def _get(session: AsyncSession) -> List[Challenge]:
            stmt = (
                self._challenge_query()
                .where(Challenge.challenger_id == player_id)
                .order_by(Challenge.created_at.desc(), Challenge.id.desc())
            )
            if not include_closed:
                stmt = stmt.where(Challenge.status == ChallengeStatus.PENDING)
            result = await session.execute(stmt)
            return list(result.scalars().all())

        if session:
            return await _get(session)
        else:
            async with self.db.get_session() as db_session:
                return await _get(db_session)

    async def cleanup_expired_challenges(
        self,
        session: Optional[AsyncSession] = None
    ) -> int:
        """
        Mark pending challenges past their expiry as EXPIRED.

        Returns:
            Number of challenges marked as expired
        """
        async def _cleanup(session: AsyncSession) -> int:
            expired = await self._expire_pending(session, self.clock())
            if expired:
                self.logger.info(f"Expired {expired} challenges")
            return expired

        return await self._run("challenge cleanup", _cleanup, session)

    # Internals

    @staticmethod
    def _challenge_query():
        return select(Challenge).options(
            selectinload(Challenge.challenger),
            selectinload(Challenge.challenged)
        )

    async def _load_challenge(self, challenge_id: int, session: AsyncSession) -> Optional[Challenge]:
        result = await session.execute(
            self._challenge_query().where(Challenge.id == challenge_id)
        )
        return result.scalar_one_or_none()

    async def _load_pending_for_response(self, challenge_id: int, actor_id: int,
                                         session: AsyncSession) -> Challenge:
        challenge = await self._load_challenge(challenge_id, session)
        if not challenge:
            raise ChallengeNotFoundError(challenge_id)
        if challenge.challenged_id != actor_id:
            raise NotChallengedPlayerError(challenge_id, actor_id)
        if challenge.status == ChallengeStatus.PENDING and challenge.is_expired(self.clock()):
            raise ChallengeNotPendingError(challenge_id, ChallengeStatus.EXPIRED)
        if challenge.status != ChallengeStatus.PENDING:
            raise ChallengeNotPendingError(challenge_id, challenge.status)
        return challenge

    async def _claim_challenge(self, session: AsyncSession, challenge: Challenge,
                               new_status: ChallengeStatus, **values) -> None:
        """
        Move a loaded challenge out of PENDING. The update only matches while
        the row is still pending, whatever this session saw when loading it.
        """
        now = self.clock()
        result = await session.execute(
            update(Challenge)
            .where(Challenge.id == challenge.id, Challenge.status == ChallengeStatus.PENDING)
            .values(status=new_status, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await session.scalar(select(Challenge.status).where(Challenge.id == challenge.id))
            self.logger.info(f"Challenge {challenge.id} was answered concurrently ({current})")
            # A vanished row was accepted and converted into a match
            raise ChallengeNotPendingError(challenge.id, current or ChallengeStatus.LOCKED)

        set_committed_value(challenge, 'status', new_status)
        set_committed_value(challenge, 'updated_at', now)
        for key, value in values.items():
            set_committed_value(challenge, key, value)

    @staticmethod
    async def _expire_pending(session: AsyncSession, now: datetime, *criteria) -> int:
        result = await session.execute(
            update(Challenge)
            .where(
                Challenge.status == ChallengeStatus.PENDING,
                Challenge.expires_at < now,
                *criteria
            )
            .values(status=ChallengeStatus.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def _has_pending_challenge(self, player_a_id: int, player_b_id: int,
                                     session: AsyncSession) -> bool:
        """Expire stale challenges between the pair, then check for a live pending one"""
        pair = or_(
            and_(Challenge.challenger_id == player_a_id, Challenge.challenged_id == player_b_id),
            and_(Challenge.challenger_id == player_b_id, Challenge.challenged_id == player_a_id)
        )
        expired = await self._expire_pending(session, self.clock(), pair)
        if expired:
            self.logger.info(f"Expired {expired} stale challenges between {player_a_id} and {player_b_id}")

        result = await session.execute(
            select(Challenge.id).where(Challenge.status == ChallengeStatus.PENDING, pair).limit(1)
        )
        return result.scalar_one_or_none() is not None
