"""Classifier for server log lines."""

import re
from datetime import datetime, timezone
from typing import Callable, Optional

from ..events.base import (
    LogEvent,
    PlayerCommandIssuedEvent,
    PlayerIdentityBoundEvent,
    PlayerLoggedInEvent,
    PlayerLoggedOutEvent,
)
from ..logger import logger

# The message starts after the first "]:" that closes the log header, e.g.
# "[12:00:00] [Server thread/INFO]: " or "[INFO] [minecraft/DedicatedServer]: "
MESSAGE_SEPARATOR = re.compile(r"\]:\s*")

USERNAME = r"(?P<username>[A-Za-z0-9_]{3,16})"

IDENTITY_PATTERN = re.compile(
    r"UUID of player " + USERNAME + r" is (?P<identifier>[0-9a-fA-F-]{32,36})\s*$"
)
# IPv6 addresses are bracketed: Steve[/[2408:8207::1]:5962]
LOGIN_PATTERN = re.compile(
    USERNAME
    + r"\[/\[?(?P<address>[0-9A-Fa-f.:]+?)(?:%[\w.]+)?\]?:\d+\] logged in\b"
)
LOGOUT_PATTERN = re.compile(USERNAME + r" (?:lost connection\b|left the game\b)")
COMMAND_PATTERN = re.compile(
    USERNAME + r" issued server command:\s*(?P<command>.+?)\s*$"
)

EventBuilder = Callable[[re.Match, datetime], LogEvent]

# Tried in order, first match wins
LINE_SHAPES: tuple[tuple[re.Pattern, EventBuilder], ...] = (
    (
        IDENTITY_PATTERN,
        lambda m, ts: PlayerIdentityBoundEvent(
            username=m["username"], identifier=m["identifier"], timestamp=ts
        ),
    ),
    (
        LOGIN_PATTERN,
        lambda m, ts: PlayerLoggedInEvent(
            username=m["username"], address=m["address"], timestamp=ts
        ),
    ),
    (
        LOGOUT_PATTERN,
        lambda m, ts: PlayerLoggedOutEvent(username=m["username"], timestamp=ts),
    ),
    (
        COMMAND_PATTERN,
        lambda m, ts: PlayerCommandIssuedEvent(
            username=m["username"], command=m["command"], timestamp=ts
        ),
    ),
)


def parse_line(line: str, timestamp: Optional[datetime] = None) -> Optional[LogEvent]:
    """Classify one log line.

    Args:
        line: Raw log line, with or without the trailing newline
        timestamp: Event time, defaults to now (UTC)

    Returns:
        The matching event or None when the line is not one of the tracked shapes
    """
    separator = MESSAGE_SEPARATOR.search(line)
    if separator is None:
        return None
    message = line[separator.end() :].rstrip("\r\n")

    for pattern, build in LINE_SHAPES:
        match = pattern.match(message)
        if match:
            event = build(match, timestamp or datetime.now(timezone.utc))
            logger.debug(f"Classified {event.event_type.value}: {event.username}")
            return event

    return None
