"""Typed events produced by the log classifier."""

from datetime import datetime, timezone
from typing import Union

from pydantic import BaseModel, Field

from .types import EventType


class BaseEvent(BaseModel):
    """Base class for all events."""

    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    username: str = Field(..., description="Player username as written in the log")


class PlayerLoggedInEvent(BaseEvent):
    """Fired when a player logs in from an address."""

    event_type: EventType = EventType.PLAYER_LOGGED_IN
    address: str = Field(..., description="Remote address without brackets or port")


class PlayerIdentityBoundEvent(BaseEvent):
    """Fired when the server binds a stable identifier to a username."""

    event_type: EventType = EventType.PLAYER_IDENTITY_BOUND
    identifier: str = Field(..., description="Stable player identifier (UUID)")


class PlayerLoggedOutEvent(BaseEvent):
    """Fired when a player disconnects or leaves the game."""

    event_type: EventType = EventType.PLAYER_LOGGED_OUT


class PlayerCommandIssuedEvent(BaseEvent):
    """Fired when a player issues a server command."""

    event_type: EventType = EventType.PLAYER_COMMAND_ISSUED
    command: str = Field(..., description="Command text as logged")


LogEvent = Union[
    PlayerLoggedInEvent,
    PlayerIdentityBoundEvent,
    PlayerLoggedOutEvent,
    PlayerCommandIssuedEvent,
]
