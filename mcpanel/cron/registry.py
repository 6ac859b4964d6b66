"""
Registry of maintenance schedules and next-run evaluation.
"""

import math
import re
from dataclasses import replace
from datetime import datetime, tzinfo
from typing import Dict, Iterable, List, Optional

from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..logger import logger
from ..models import Schedule
from .types import NextRun, ScheduleEntry

# Cron numbers days from Sunday (0 and 7), APScheduler from Monday
CRON_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
DAY_OF_WEEK_TOKEN = re.compile(
    r"^(?:(?P<any>\*)|(?P<first>[a-z0-9]+)(?:-(?P<last>[a-z0-9]+))?)(?:/(?P<step>\d+))?$"
)


def _cron_weekday(value: str) -> int:
    if value.isdigit() and int(value) <= 7:
        return int(value)
    if value in CRON_WEEKDAYS:
        return CRON_WEEKDAYS.index(value)
    raise ValueError(f"Invalid day of week '{value}'")


def translate_day_of_week(field: str) -> str:
    """
    Rewrite a cron day_of_week field as APScheduler weekday names.

    ``0 4 * * 0`` means Sunday in cron but Monday to APScheduler, so numbers,
    ranges, lists and steps are expanded to explicit names (``1-5`` becomes
    ``mon,tue,wed,thu,fri``).
    """
    if field == "*":
        return field

    days: List[str] = []
    for token in field.lower().split(","):
        match = DAY_OF_WEEK_TOKEN.match(token)
        if match is None:
            raise ValueError(f"Invalid day of week '{token}'")

        if match["any"]:
            first, last = 0, 6
        else:
            first = _cron_weekday(match["first"]) % 7
            if match["last"] is not None:
                last = _cron_weekday(match["last"])
                # fri-sun ends on the Sunday after
                if last < first and match["last"] == "sun":
                    last = 7
            else:
                last = 6 if match["step"] else first

        step = int(match["step"] or 1)
        if last < first or step < 1:
            raise ValueError(f"Invalid day of week '{token}'")

        for number in range(first, last + 1, step):
            name = CRON_WEEKDAYS[number % 7]
            if name not in days:
                days.append(name)

    return ",".join(days)


def build_cron_trigger(
    expression: str, timezone: Optional[tzinfo | str] = None
) -> CronTrigger:
    """
    Build a trigger from a five-field cron expression.

    Args:
        expression: "minute hour day month day_of_week", days numbered as in cron
        timezone: Zone the fields are evaluated in (scheduler default if None)

    Raises:
        ValueError: If the expression does not have five fields or a field is invalid
    """
    cron_parts = expression.strip().split()
    if len(cron_parts) != 5:
        raise ValueError(
            "Cron expression must have exactly 5 fields (minute hour day month day_of_week)"
        )

    return CronTrigger(
        minute=cron_parts[0],
        hour=cron_parts[1],
        day=cron_parts[2],
        month=cron_parts[3],
        day_of_week=translate_day_of_week(cron_parts[4]),
        timezone=timezone,
    )


class ScheduleRegistry:
    """
    The current set of maintenance schedules.

    Entries keep their insertion order; replacing the whole set is how an
    administrator edit reaches the orchestrator.
    """

    def __init__(self, entries: Iterable[ScheduleEntry] = ()):
        # schedule_id -> ScheduleEntry
        self._schedules: Dict[str, ScheduleEntry] = {}
        self.replace(entries)

    def replace(self, entries: Iterable[ScheduleEntry]) -> None:
        self._schedules = {entry.schedule_id: entry for entry in entries}

    def upsert(self, entry: ScheduleEntry) -> None:
        self._schedules[entry.schedule_id] = entry

    def set_enabled(self, schedule_id: str, enabled: bool) -> ScheduleEntry:
        """
        Enable or disable a schedule.

        Raises:
            KeyError: If the schedule is unknown
        """
        entry = replace(self._schedules[schedule_id], enabled=enabled)
        self._schedules[schedule_id] = entry
        return entry

    def remove(self, schedule_id: str) -> bool:
        return self._schedules.pop(schedule_id, None) is not None

    def get(self, schedule_id: str) -> Optional[ScheduleEntry]:
        return self._schedules.get(schedule_id)

    def all(self) -> List[ScheduleEntry]:
        return list(self._schedules.values())

    def enabled(self) -> List[ScheduleEntry]:
        return [entry for entry in self._schedules.values() if entry.enabled]

    async def load(self, session: AsyncSession) -> int:
        """
        Replace the registry with the rows of the schedule table.

        Returns:
            Number of schedules loaded
        """
        result = await session.execute(select(Schedule).order_by(Schedule.id))
        rows = result.scalars().all()
        self.replace(
            ScheduleEntry(
                schedule_id=str(row.id),
                cron_expression=row.cron_expression,
                label=row.label,
                enabled=bool(row.enabled),
            )
            for row in rows
        )
        logger.info(f"Loaded {len(rows)} maintenance schedules")
        return len(rows)

    def next_run(self, now: datetime) -> Optional[NextRun]:
        """
        Find the earliest upcoming trigger among enabled schedules.

        Args:
            now: Timezone-aware reference time; cron fields are read in its zone

        Returns:
            The earliest NextRun, or None when nothing is enabled or nothing parses
        """
        if now.tzinfo is None:
            raise ValueError("next_run requires a timezone-aware datetime")

        earliest: Optional[NextRun] = None
        for entry in self.enabled():
            try:
                trigger = build_cron_trigger(entry.cron_expression, timezone=now.tzinfo)
            except ValueError as e:
                logger.warning(
                    f"Skipping schedule {entry.schedule_id} with invalid cron "
                    f"'{entry.cron_expression}': {e}"
                )
                continue

            at = trigger.get_next_fire_time(None, now)
            if at is None:
                continue
            if earliest is None or at < earliest.at:
                seconds = max(0, math.ceil((at - now).total_seconds()))
                earliest = NextRun(schedule=entry, at=at, seconds_until=seconds)

        return earliest

    def __len__(self) -> int:
        return len(self._schedules)

    def __contains__(self, schedule_id: object) -> bool:
        return schedule_id in self._schedules
