"""
Log pipeline for the game server.

Tails the server log files and emits classified player events.
"""

from .monitor import LogTailer
from .parser import parse_line

__all__ = [
    "LogTailer",
    "parse_line",
]
