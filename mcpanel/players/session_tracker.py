"""Session tracking for player game sessions."""

import asyncio
from collections import OrderedDict, defaultdict
from typing import Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..activity import ActivityFeed
from ..config import ReloginPolicy
from ..db.database import get_async_session
from ..events.base import (
    LogEvent,
    PlayerCommandIssuedEvent,
    PlayerIdentityBoundEvent,
    PlayerLoggedInEvent,
    PlayerLoggedOutEvent,
)
from ..logger import logger
from .crud import (
    add_address_observation,
    add_command_record,
    create_session,
    end_session,
    get_open_session,
    get_player_by_name,
    set_player_identifier,
    upsert_player_login,
)


class SessionTracker:
    """Applies classified log events to player and session records.

    Events for the same player are applied one at a time in arrival order.
    A failure while persisting one event is logged and does not stop the
    tracker; the event is not retried.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = get_async_session,
        relogin_policy: ReloginPolicy = ReloginPolicy.IGNORE,
        activity: Optional[ActivityFeed] = None,
        max_pending_identities: int = 256,
    ):
        """Initialize session tracker.

        Args:
            session_factory: Creates database sessions
            relogin_policy: Handling of a login while a session is already open
            activity: Optional feed receiving every applied event
            max_pending_identities: Identifiers kept for players not stored yet
        """
        self.session_factory = session_factory
        self.relogin_policy = relogin_policy
        self.activity = activity
        self.max_pending_identities = max_pending_identities

        # The server logs "UUID of player X" before X's first login
        self._pending_identities: "OrderedDict[str, str]" = OrderedDict()
        self._player_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._task: Optional[asyncio.Task] = None

    async def start(self, queue: "asyncio.Queue[LogEvent]") -> None:
        """Start consuming events from the queue."""
        if self._task is not None and not self._task.done():
            logger.warning("Session tracker is already running")
            return

        self._task = asyncio.create_task(self.run(queue))
        logger.info("Session tracker started")

    async def stop(self) -> None:
        """Stop the consumer and wait for it to exit."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Session tracker stopped")

    async def run(self, queue: "asyncio.Queue[LogEvent]") -> None:
        """Apply events from the queue until cancelled."""
        while True:
            event = await queue.get()
            try:
                await self.apply(event)
            finally:
                queue.task_done()

    async def apply(self, event: LogEvent) -> bool:
        """Apply one event.

        Args:
            event: Classified log event

        Returns:
            True if the event was persisted, False if persisting failed
        """
        if self.activity is not None:
            self.activity.record(event)

        async with self._player_locks[event.username]:
            try:
                async with self.session_factory() as session:
                    match event:
                        case PlayerLoggedInEvent():
                            await self._handle_login(session, event)
                        case PlayerIdentityBoundEvent():
                            await self._handle_identity(session, event)
                        case PlayerLoggedOutEvent():
                            await self._handle_logout(session, event)
                        case PlayerCommandIssuedEvent():
                            await self._handle_command(session, event)
                        case _:
                            logger.warning(f"Unhandled event type: {type(event).__name__}")
                            return False
                    await session.commit()
            except Exception as e:
                logger.error(
                    f"Failed to store {event.event_type.value} for {event.username}: {e}",
                    exc_info=True,
                )
                return False

        return True

    async def _handle_login(self, session: AsyncSession, event: PlayerLoggedInEvent) -> None:
        """Handle login - upsert player, record address, open session."""
        player = await upsert_player_login(
            session, event.username, event.address, event.timestamp
        )
        identifier = self._pending_identities.pop(event.username, None)
        if identifier is not None:
            player.identifier = identifier
            logger.debug(f"Bound pending identifier {identifier} to {event.username}")
        await add_address_observation(
            session, player.player_db_id, event.address, event.timestamp
        )

        open_session = await get_open_session(session, player.player_db_id)
        if open_session is None:
            await create_session(session, player.player_db_id, event.timestamp)
            logger.debug(f"Opened session for {event.username} from {event.address}")
            return

        if self.relogin_policy == ReloginPolicy.REOPEN:
            duration = await end_session(session, player, open_session, event.timestamp)
            await create_session(session, player.player_db_id, event.timestamp)
            logger.debug(
                f"Reopened session for {event.username} (previous lasted {duration}s)"
            )
        else:
            logger.debug(f"Session already open for {event.username}, keeping it")

    async def _handle_identity(
        self, session: AsyncSession, event: PlayerIdentityBoundEvent
    ) -> None:
        """Handle identity binding - store the stable identifier."""
        if await set_player_identifier(session, event.username, event.identifier):
            logger.debug(f"Bound identifier {event.identifier} to {event.username}")
        else:
            self._remember_identity(event.username, event.identifier)
            logger.debug(f"Holding identifier for {event.username} until first login")

    def _remember_identity(self, username: str, identifier: str) -> None:
        self._pending_identities[username] = identifier
        self._pending_identities.move_to_end(username)
        while len(self._pending_identities) > self.max_pending_identities:
            self._pending_identities.popitem(last=False)

    async def _handle_logout(self, session: AsyncSession, event: PlayerLoggedOutEvent) -> None:
        """Handle logout - close the open session and accrue playtime."""
        player = await get_player_by_name(session, event.username)
        if player is None:
            logger.debug(f"Logout of unknown player {event.username} ignored")
            return

        open_session = await get_open_session(session, player.player_db_id)
        if open_session is None:
            logger.debug(f"No open session found for {event.username}")
            return

        duration = await end_session(session, player, open_session, event.timestamp)
        logger.debug(f"Closed session for {event.username} ({duration}s)")

    async def _handle_command(
        self, session: AsyncSession, event: PlayerCommandIssuedEvent
    ) -> None:
        """Handle command - append a command record for known players."""
        player = await get_player_by_name(session, event.username)
        if player is None:
            logger.debug(f"Command from unknown player {event.username} ignored")
            return

        await add_command_record(
            session, player.player_db_id, event.command, event.timestamp
        )
