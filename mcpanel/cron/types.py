"""
Type definitions for maintenance scheduling.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models import RunStatus


@dataclass(frozen=True)
class ScheduleEntry:
    """
    A maintenance schedule as the registry sees it.

    ``cron_expression`` has five fields: minute hour day month day_of_week.
    """

    schedule_id: str
    cron_expression: str
    label: Optional[str] = None
    enabled: bool = True

    @property
    def display_name(self) -> str:
        return self.label or f"schedule {self.schedule_id}"


@dataclass(frozen=True)
class NextRun:
    """Earliest upcoming trigger across all enabled schedules."""

    schedule: ScheduleEntry
    at: datetime
    seconds_until: int


@dataclass(frozen=True)
class MaintenanceStage:
    """One warning broadcast and the pause that follows it."""

    remaining: str
    wait_seconds: int


# Warnings counting down to the shutdown command
MAINTENANCE_STAGES: tuple[MaintenanceStage, ...] = (
    MaintenanceStage("10 minutes", 300),
    MaintenanceStage("5 minutes", 240),
    MaintenanceStage("1 minute", 30),
    MaintenanceStage("30 seconds", 25),
    MaintenanceStage("5 seconds", 5),
)


class CycleContext(BaseModel):
    """
    Execution context for a single maintenance countdown.

    Created when a schedule fires and stored as a MaintenanceRun once the
    cycle ends, whatever the outcome.
    """

    schedule_id: str
    label: Optional[str] = None
    run_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    status: RunStatus = RunStatus.RUNNING
    stages_sent: int = 0
    messages: List[str] = Field(default_factory=list)

    def log(self, message: str) -> None:
        """
        Add a log message to the cycle context.

        Args:
            message: The message to log
        """
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        self.messages.append(f"[{timestamp}] {message}")

    def to_run_record(self) -> dict:
        """
        Convert the context to a dictionary for database storage.

        Returns:
            Dictionary containing MaintenanceRun column values
        """
        return {
            "run_id": self.run_id,
            "schedule_id": self.schedule_id,
            "label": self.label,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "status": self.status,
            "messages_json": json.dumps(self.messages, ensure_ascii=False),
        }
