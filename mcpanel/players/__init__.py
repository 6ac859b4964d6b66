"""
Player tracking for the server panel.

Turns classified log events into player records, sessions, address history
and command history.
"""

from .session_tracker import SessionTracker

__all__ = [
    "SessionTracker",
]
