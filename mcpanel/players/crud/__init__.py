"""CRUD operations for player tracking."""

from .player import get_player_by_name, set_player_identifier, upsert_player_login
from .player_activity import (
    add_address_observation,
    add_command_record,
    get_address_history,
    get_command_history,
)
from .player_session import (
    count_open_sessions,
    create_session,
    end_session,
    get_online_player_names,
    get_open_session,
    get_player_sessions,
)

__all__ = [
    # Player
    "get_player_by_name",
    "upsert_player_login",
    "set_player_identifier",
    # Player Session
    "get_open_session",
    "create_session",
    "end_session",
    "get_player_sessions",
    "count_open_sessions",
    "get_online_player_names",
    # Addresses and commands
    "add_address_observation",
    "add_command_record",
    "get_address_history",
    "get_command_history",
]
