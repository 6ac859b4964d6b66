"""
Maintenance Orchestrator - cron-triggered restart countdowns.
"""

import asyncio
import secrets
from datetime import datetime, timezone, tzinfo
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession

from ..logger import log_exception, logger
from ..models import MaintenanceRun, RunStatus
from ..rcon import ServerCommands, TransportFailure
from .registry import ScheduleRegistry, build_cron_trigger
from .types import MAINTENANCE_STAGES, CycleContext, MaintenanceStage, NextRun, ScheduleEntry

DEFAULT_WARNING_TEMPLATE = "[Restart] Server restarting in {remaining} ({label})"
EMERGENCY_MESSAGE = "[Emergency] Restarting now!"

SleepFunction = Callable[[float], Awaitable[None]]


class MaintenanceOrchestrator:
    """
    Runs a staged restart countdown whenever an enabled schedule fires.

    Every triggered cycle is its own task: stages within a cycle run strictly
    in order, cycles of different schedules never wait on each other. A
    failed dispatch ends only the cycle it belongs to.
    """

    def __init__(
        self,
        registry: ScheduleRegistry,
        commands: ServerCommands,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        warning_template: str = DEFAULT_WARNING_TEMPLATE,
        cancel_in_flight_on_reload: bool = False,
        stages: Sequence[MaintenanceStage] = MAINTENANCE_STAGES,
        sleep: SleepFunction = asyncio.sleep,
        timezone: Optional[tzinfo | str] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            registry: Source of schedules
            commands: Server commands used for warnings and shutdown
            session_factory: Creates database sessions for run records (None disables recording)
            warning_template: Format string with {remaining} and {label}
            cancel_in_flight_on_reload: Cancel running countdowns when schedules are reloaded
            stages: Warning stages sent before the shutdown command
            sleep: Awaitable used for the pauses between stages
            timezone: Zone cron fields are evaluated in (local zone if None)
        """
        self.registry = registry
        self.commands = commands
        self.session_factory = session_factory
        self.warning_template = warning_template
        self.cancel_in_flight_on_reload = cancel_in_flight_on_reload
        self.stages = tuple(stages)
        self.sleep = sleep
        self.timezone = timezone

        if timezone is not None:
            self.scheduler = AsyncIOScheduler(timezone=timezone)
        else:
            self.scheduler = AsyncIOScheduler()

        # schedule_id -> running countdown
        self._cycles: Dict[str, asyncio.Task] = {}

    async def start(self) -> None:
        """Start the scheduler with the jobs registered by reload()."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info(f"Maintenance scheduler started with {len(self.scheduler.get_jobs())} jobs")

    async def shutdown(self) -> None:
        """Stop the scheduler and cancel running countdowns."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        tasks = list(self._cycles.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._cycles.clear()

        logger.info("Maintenance scheduler stopped")

    def reload(self) -> int:
        """
        Replace every scheduled trigger with one per enabled schedule.

        Returns:
            Number of schedules registered
        """
        self.scheduler.remove_all_jobs()

        registered = 0
        for entry in self.registry.enabled():
            try:
                trigger = build_cron_trigger(
                    entry.cron_expression, timezone=self.scheduler.timezone
                )
            except ValueError as e:
                logger.warning(
                    f"Not scheduling {entry.display_name}: invalid cron "
                    f"'{entry.cron_expression}': {e}"
                )
                continue

            self.scheduler.add_job(
                self._on_trigger,
                trigger=trigger,
                args=[entry],
                id=self._job_id(entry.schedule_id),
                replace_existing=True,
                coalesce=True,
                misfire_grace_time=60,
            )
            registered += 1

        if self.cancel_in_flight_on_reload:
            for schedule_id in list(self._cycles):
                self.cancel_cycle(schedule_id)

        logger.info(f"Registered {registered} maintenance schedules")
        return registered

    def next_run(self, now: Optional[datetime] = None) -> Optional[NextRun]:
        """Earliest upcoming countdown, read in the zone the scheduler fires in."""
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            raise ValueError("next_run requires a timezone-aware datetime")
        return self.registry.next_run(now.astimezone(self.scheduler.timezone))

    def next_fire_time(self, schedule_id: str) -> Optional[datetime]:
        """Next trigger time of a registered schedule, None if it is not scheduled."""
        job = self.scheduler.get_job(self._job_id(schedule_id))
        if job is None:
            return None
        return getattr(job, "next_run_time", None)

    def running_cycles(self) -> List[str]:
        return [sid for sid, task in self._cycles.items() if not task.done()]

    def spawn_cycle(self, entry: ScheduleEntry) -> Optional[asyncio.Task]:
        """
        Start a countdown for a schedule as an independent task.

        Returns:
            The new task, or None if this schedule already has a countdown running
        """
        existing = self._cycles.get(entry.schedule_id)
        if existing is not None and not existing.done():
            logger.warning(f"Countdown for {entry.display_name} already running, trigger skipped")
            return None

        task = asyncio.create_task(
            self.run_cycle(entry), name=f"maintenance-{entry.schedule_id}"
        )
        self._cycles[entry.schedule_id] = task
        task.add_done_callback(lambda t, sid=entry.schedule_id: self._forget_cycle(sid, t))
        return task

    def cancel_cycle(self, schedule_id: str) -> bool:
        """
        Cancel the running countdown of a schedule.

        Returns:
            True if a running countdown was cancelled
        """
        task = self._cycles.get(schedule_id)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info(f"Cancelling countdown for schedule {schedule_id}")
        return True

    async def run_cycle(self, entry: ScheduleEntry) -> CycleContext:
        """
        Run one countdown: every warning stage, then the shutdown command.

        A TransportFailure on any dispatch ends the cycle at once; no later
        stage is attempted.
        """
        timestamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        context = CycleContext(
            schedule_id=entry.schedule_id,
            label=entry.label,
            run_id=f"{timestamp}_{secrets.token_urlsafe(4)}",
            started_at=datetime.now(timezone.utc),
        )
        context.log(f"Countdown started for {entry.display_name}")
        logger.info(f"Maintenance countdown started for {entry.display_name}")

        try:
            for stage in self.stages:
                message = self.format_warning(stage, entry)
                await self.commands.broadcast(message)
                context.stages_sent += 1
                context.log(f"Sent warning: {message}")
                await self.sleep(stage.wait_seconds)

            await self.commands.stop()
            context.log("Sent shutdown command")
            context.status = RunStatus.COMPLETED
            logger.info(f"Maintenance countdown for {entry.display_name} completed")
        except TransportFailure as e:
            context.status = RunStatus.FAILED
            context.log(f"Dispatch failed after {context.stages_sent} warnings: {e}")
            logger.error(
                f"Maintenance countdown for {entry.display_name} aborted after "
                f"{context.stages_sent} warnings: {e}"
            )
        except asyncio.CancelledError:
            context.status = RunStatus.CANCELLED
            context.log("Countdown was cancelled")
            logger.info(f"Maintenance countdown for {entry.display_name} cancelled")
            raise
        except Exception as e:
            context.status = RunStatus.FAILED
            context.log(f"Countdown failed: {e}")
            logger.error(
                f"Maintenance countdown for {entry.display_name} failed: {e}", exc_info=True
            )
        finally:
            context.ended_at = datetime.now(timezone.utc)
            await self._record_run(context)

        return context

    async def restart_now(self, message: str = EMERGENCY_MESSAGE) -> None:
        """
        Warn once and send the shutdown command immediately.

        Raises:
            TransportFailure: If either command could not be delivered
        """
        logger.warning("Immediate restart requested")
        await self.commands.broadcast(message)
        await self.commands.stop()

    def format_warning(self, stage: MaintenanceStage, entry: ScheduleEntry) -> str:
        return self.warning_template.format(remaining=stage.remaining, label=entry.display_name)

    async def _on_trigger(self, entry: ScheduleEntry) -> None:
        logger.info(f"Schedule {entry.display_name} fired")
        self.spawn_cycle(entry)

    def _forget_cycle(self, schedule_id: str, task: asyncio.Task) -> None:
        if self._cycles.get(schedule_id) is task:
            del self._cycles[schedule_id]

    @log_exception("Recording maintenance run {context.run_id}")
    async def _record_run(self, context: CycleContext) -> None:
        if self.session_factory is None:
            return
        async with self.session_factory() as session:
            session.add(MaintenanceRun(**context.to_run_record()))
            await session.commit()

    @staticmethod
    def _job_id(schedule_id: str) -> str:
        return f"maintenance-{schedule_id}"
