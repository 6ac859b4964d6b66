"""
High-level server commands sent over RCON.

Queries (roster, ban lists) degrade to an empty result when the server cannot
be reached. Actions (broadcast, bans, stop) let TransportFailure propagate so
the caller decides what a failed dispatch means.
"""

import re
from dataclasses import dataclass
from typing import List, Literal, Optional

from ..logger import logger
from .client import RconClient, TransportFailure

ROSTER_COMMAND = "list uuids"

BanKind = Literal["player", "ip", "unknown"]

ROSTER_FRAGMENT_PATTERN = re.compile(r"^(?P<username>[^\s(]+)(?:\s*\((?P<id>[^)]*)\))?$")
BAN_HEADER_PATTERN = re.compile(r"^(?:There are \d+ ban\(s\):|There are no bans)\s*", re.IGNORECASE)
BAN_LINE_PATTERN = re.compile(r"^(?P<target>.*?) was banned by (?P<source>.*?):\s*(?P<reason>.*)$")
IPV4_PATTERN = re.compile(r"^\d{1,3}(?:\.\d{1,3}){3}$")


@dataclass(frozen=True)
class RosterEntry:
    """A currently connected player."""

    username: str
    id: Optional[str] = None


@dataclass(frozen=True)
class BanEntry:
    """One line of a server ban list."""

    target: str
    source: Optional[str]
    reason: Optional[str]
    kind: BanKind


def parse_roster(reply: str) -> List[RosterEntry]:
    """
    Parse a roster reply such as
    ``There are 2 of a max of 20 players online: Steve (069a79f4-...), Alex (...)``.

    Everything before the first colon is the header. Fragments without a
    bracketed id yield entries with ``id=None``.
    """
    if ":" not in reply:
        return []

    players = []
    for fragment in reply.split(":", 1)[1].split(","):
        fragment = fragment.strip()
        if not fragment:
            continue
        match = ROSTER_FRAGMENT_PATTERN.match(fragment)
        if match is None:
            logger.debug(f"Unrecognized roster fragment: {fragment!r}")
            continue
        players.append(
            RosterEntry(username=match["username"], id=(match["id"] or "").strip() or None)
        )
    return players


def parse_ban_list(reply: str, default_kind: BanKind) -> List[BanEntry]:
    """Parse a ``banlist players`` or ``banlist ips`` reply."""
    entries = []
    for line in reply.splitlines():
        line = BAN_HEADER_PATTERN.sub("", line.strip())
        if not line:
            continue

        match = BAN_LINE_PATTERN.match(line)
        if match is None:
            entries.append(BanEntry(target=line, source=None, reason=None, kind="unknown"))
            continue

        target = match["target"]
        kind: BanKind = "ip" if IPV4_PATTERN.match(target) else default_kind
        entries.append(
            BanEntry(
                target=target,
                source=match["source"] or None,
                reason=match["reason"] or None,
                kind=kind,
            )
        )
    return entries


class ServerCommands:
    """Administrative commands for one server."""

    def __init__(
        self,
        client: RconClient,
        broadcast_command: str = "broadcast",
        shutdown_command: str = "stop",
    ):
        self.client = client
        self.broadcast_command = broadcast_command
        self.shutdown_command = shutdown_command

    async def list_players(self) -> List[RosterEntry]:
        """Currently connected players, empty when the server is unreachable."""
        try:
            reply = await self.client.send(ROSTER_COMMAND)
        except TransportFailure as e:
            logger.warning(f"Roster query failed, treating server as unknown: {e}")
            return []
        return parse_roster(reply)

    async def list_banned_players(self) -> List[BanEntry]:
        return await self._query_ban_list("banlist players", "player")

    async def list_banned_ips(self) -> List[BanEntry]:
        return await self._query_ban_list("banlist ips", "ip")

    async def broadcast(self, text: str) -> str:
        return await self.client.send(f"{self.broadcast_command} {text}")

    async def ban_ip(self, ip: str, reason: Optional[str] = None) -> str:
        """
        Ban an address.

        Raises:
            ValueError: If ip is empty
            TransportFailure: If the command could not be delivered
        """
        ip = ip.strip()
        if not ip:
            raise ValueError("Address to ban must not be empty")
        return await self.client.send(self._with_reason(f"ban-ip {ip}", reason))

    async def ban_player(self, username: str, reason: Optional[str] = None) -> str:
        username = username.strip()
        if not username:
            raise ValueError("Username to ban must not be empty")
        return await self.client.send(self._with_reason(f"ban {username}", reason))

    async def execute(self, command: str) -> str:
        """Send an arbitrary console command and return its reply."""
        command = command.strip()
        if not command:
            raise ValueError("Command must not be empty")
        return await self.client.send(command)

    async def stop(self) -> str:
        return await self.client.send(self.shutdown_command)

    async def _query_ban_list(self, command: str, kind: BanKind) -> List[BanEntry]:
        try:
            reply = await self.client.send(command)
        except TransportFailure as e:
            logger.warning(f"'{command}' failed: {e}")
            return []
        return parse_ban_list(reply, kind)

    @staticmethod
    def _with_reason(command: str, reason: Optional[str]) -> str:
        reason = (reason or "").strip()
        return f"{command} {reason}" if reason else command
