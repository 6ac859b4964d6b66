"""
Maintenance scheduling for the server panel.

Schedules are cron expressions evaluated with APScheduler; each trigger runs a
staged countdown of warning broadcasts followed by the shutdown command.
"""

from .maintenance import MaintenanceOrchestrator
from .registry import ScheduleRegistry, build_cron_trigger
from .types import (
    MAINTENANCE_STAGES,
    CycleContext,
    MaintenanceStage,
    NextRun,
    ScheduleEntry,
)

__all__ = [
    "ScheduleRegistry",
    "build_cron_trigger",
    "MaintenanceOrchestrator",
    "ScheduleEntry",
    "NextRun",
    "MaintenanceStage",
    "MAINTENANCE_STAGES",
    "CycleContext",
]
