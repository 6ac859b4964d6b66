"""
Remote console access to the game server.
"""

from .client import RconAuthenticationError, RconClient, TransportFailure
from .commands import BanEntry, RosterEntry, ServerCommands

__all__ = [
    "RconClient",
    "TransportFailure",
    "RconAuthenticationError",
    "ServerCommands",
    "RosterEntry",
    "BanEntry",
]
