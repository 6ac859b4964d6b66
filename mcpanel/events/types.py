"""Event type definitions."""

from enum import Enum


class EventType(str, Enum):
    """Kinds of events classified from the server log."""

    PLAYER_LOGGED_IN = "player.logged_in"
    PLAYER_IDENTITY_BOUND = "player.identity_bound"
    PLAYER_LOGGED_OUT = "player.logged_out"
    PLAYER_COMMAND_ISSUED = "player.command_issued"
