"""Top-level wiring of the panel's background workers."""

import asyncio
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .activity import ActivityFeed
from .config import Settings, settings
from .cron import MaintenanceOrchestrator, ScheduleRegistry
from .db.database import get_async_session, init_db
from .events import LogEvent
from .log_monitor import LogTailer
from .logger import logger
from .players import SessionTracker
from .rcon import RconClient, ServerCommands

DRAIN_TIMEOUT_SECONDS = 5.0


class PanelService:
    """Owns the log pipeline and the maintenance scheduler for one server.

    LogTailer -> queue -> SessionTracker -> database, and
    ScheduleRegistry -> MaintenanceOrchestrator -> RCON.
    """

    def __init__(
        self,
        config: Settings = settings,
        session_factory: Callable[[], AsyncSession] = get_async_session,
        rcon_client: Optional[RconClient] = None,
    ):
        self.config = config
        self.session_factory = session_factory

        self.activity = ActivityFeed(
            max_events=config.activity.max_events,
            max_commands=config.activity.max_commands,
        )

        # Log pipeline
        self.queue: asyncio.Queue[LogEvent] = asyncio.Queue(
            maxsize=config.log_tail.queue_size
        )
        self.tailer = LogTailer(
            log_path=config.latest_log_path,
            queue=self.queue,
            archive_glob=config.log_tail.archive_glob,
            force_polling=config.log_tail.force_polling,
            poll_interval_ms=config.log_tail.poll_interval_ms,
        )
        self.session_tracker = SessionTracker(
            session_factory=session_factory,
            relogin_policy=config.sessions.relogin_policy,
            activity=self.activity,
        )

        # Remote console
        self.rcon_client = rcon_client or RconClient(
            host=config.rcon.host,
            port=config.rcon.port,
            password=config.rcon.password,
            timeout_seconds=config.rcon.timeout_seconds,
        )
        self.commands = ServerCommands(
            self.rcon_client,
            broadcast_command=config.maintenance.broadcast_command,
            shutdown_command=config.maintenance.shutdown_command,
        )

        # Maintenance
        self.schedules = ScheduleRegistry()
        self.maintenance = MaintenanceOrchestrator(
            registry=self.schedules,
            commands=self.commands,
            session_factory=session_factory,
            warning_template=config.maintenance.warning_template,
            cancel_in_flight_on_reload=config.maintenance.cancel_in_flight_on_reload,
            timezone=config.timezone,
        )

    async def start(self, init_database: bool = True) -> None:
        """Start every background worker."""
        logger.info("Starting panel service...")

        if init_database:
            await init_db()

        await self.reload_schedules()
        await self.maintenance.start()

        await self.session_tracker.start(self.queue)
        await self.tailer.start()

        logger.info(f"Panel service started, tailing {self.config.latest_log_path}")

    async def stop(self) -> None:
        """Stop the workers, giving the tracker a moment to drain queued events."""
        logger.info("Stopping panel service...")

        await self.tailer.stop()

        try:
            await asyncio.wait_for(self.queue.join(), timeout=DRAIN_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(
                f"Dropping {self.queue.qsize()} queued events that were not applied in time"
            )
        await self.session_tracker.stop()

        await self.maintenance.shutdown()

        logger.info("Panel service stopped")

    async def reload_schedules(self) -> int:
        """Re-read the schedule table and replace all pending triggers.

        Returns:
            Number of schedules registered with the scheduler
        """
        async with self.session_factory() as session:
            await self.schedules.load(session)
        return self.maintenance.reload()
