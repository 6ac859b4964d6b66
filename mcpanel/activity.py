"""Bounded in-memory feed of recent player activity."""

from collections import deque
from typing import Deque, List

from .events.base import LogEvent, PlayerCommandIssuedEvent


class ActivityFeed:
    """Keeps the most recent events and player commands.

    Both buffers have a fixed capacity; once full, the oldest entry is dropped
    for every new one. Built once and handed to whoever produces or reads
    activity.
    """

    def __init__(self, max_events: int = 500, max_commands: int = 200):
        if max_events < 1 or max_commands < 1:
            raise ValueError("Activity buffers need a capacity of at least 1")
        self._events: Deque[LogEvent] = deque(maxlen=max_events)
        self._commands: Deque[PlayerCommandIssuedEvent] = deque(maxlen=max_commands)

    def record(self, event: LogEvent) -> None:
        self._events.append(event)
        if isinstance(event, PlayerCommandIssuedEvent):
            self._commands.append(event)

    def recent_events(self, limit: int | None = None) -> List[LogEvent]:
        """Newest first."""
        events = list(reversed(self._events))
        return events if limit is None else events[:limit]

    def recent_commands(self, limit: int | None = None) -> List[PlayerCommandIssuedEvent]:
        """Newest first."""
        commands = list(reversed(self._commands))
        return commands if limit is None else commands[:limit]

    def clear(self) -> None:
        self._events.clear()
        self._commands.clear()

    def __len__(self) -> int:
        return len(self._events)
