"""
Event types for the log pipeline.

Events are produced by the log classifier and consumed by the session tracker.
"""

from .base import (
    BaseEvent,
    LogEvent,
    PlayerCommandIssuedEvent,
    PlayerIdentityBoundEvent,
    PlayerLoggedInEvent,
    PlayerLoggedOutEvent,
)
from .types import EventType

__all__ = [
    "BaseEvent",
    "LogEvent",
    "EventType",
    "PlayerLoggedInEvent",
    "PlayerIdentityBoundEvent",
    "PlayerLoggedOutEvent",
    "PlayerCommandIssuedEvent",
]
