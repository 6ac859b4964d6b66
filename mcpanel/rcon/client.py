"""
Remote console (RCON) client.

Speaks the Source RCON wire format: every packet is a little-endian int32
length, int32 request id, int32 type, an ASCII/UTF-8 body and two NUL bytes.
Each send() call owns one TCP connection from connect to close.
"""

import asyncio
import itertools
import re
import struct
from typing import Optional, Tuple

from ..logger import logger

SERVERDATA_RESPONSE_VALUE = 0
SERVERDATA_EXECCOMMAND = 2
SERVERDATA_AUTH_RESPONSE = 2
SERVERDATA_AUTH = 3

AUTH_FAILED_ID = -1

HEADER = struct.Struct("<iii")
LENGTH = struct.Struct("<i")
# id + type + two terminating NUL bytes
MIN_PACKET_LENGTH = 10
MAX_PACKET_LENGTH = 1 << 20

ANSI_ESCAPE_PATTERN = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
FORMATTING_CODE_PATTERN = re.compile(r"§[0-9a-fk-orA-FK-OR]")


class TransportFailure(Exception):
    """Connecting to, writing to, or reading from the remote console failed."""

    pass


class RconAuthenticationError(TransportFailure):
    """The remote console rejected the password."""

    pass


def encode_packet(request_id: int, packet_type: int, body: str) -> bytes:
    payload = body.encode("utf-8")
    length = HEADER.size - LENGTH.size + len(payload) + 2
    return HEADER.pack(length, request_id, packet_type) + payload + b"\x00\x00"


def decode_payload(data: bytes) -> Tuple[int, int, str]:
    """Split a packet without its length prefix into (id, type, body)."""
    request_id, packet_type = struct.unpack_from("<ii", data)
    body = data[8:-2].decode("utf-8", errors="replace")
    return request_id, packet_type, body


def clean_reply(text: str) -> str:
    """Strip terminal escapes and in-game formatting codes from a reply."""
    return FORMATTING_CODE_PATTERN.sub("", ANSI_ESCAPE_PATTERN.sub("", text)).strip()


class RconClient:
    """One-shot RCON client: connect, authenticate, run one command, close."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 25575,
        password: str = "",
        timeout_seconds: Optional[float] = 10.0,
    ):
        self.host = host
        self.port = port
        self.password = password
        self.timeout_seconds = timeout_seconds
        self._request_ids = itertools.count(1)

    async def send(self, command: str) -> str:
        """
        Send one command and return the reply text.

        Args:
            command: Console command without a leading slash

        Returns:
            Reply text with formatting codes removed

        Raises:
            RconAuthenticationError: If the password was rejected
            TransportFailure: On connect, I/O, timeout or protocol errors
        """
        writer: Optional[asyncio.StreamWriter] = None
        try:
            reader, writer = await self._with_timeout(
                asyncio.open_connection(self.host, self.port)
            )
            await self._authenticate(reader, writer)
            reply = await self._execute(reader, writer, command)
        except (OSError, asyncio.TimeoutError, asyncio.IncompleteReadError, struct.error) as e:
            raise TransportFailure(
                f"RCON {self.host}:{self.port} failed for '{command}': {type(e).__name__}: {e}"
            ) from e
        finally:
            if writer is not None:
                writer.close()
                try:
                    await writer.wait_closed()
                except OSError as e:
                    logger.debug(f"Error closing RCON connection: {e}")

        logger.debug(f"RCON '{command}' -> {len(reply)} chars")
        return clean_reply(reply)

    async def _authenticate(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        request_id = next(self._request_ids)
        await self._write(writer, request_id, SERVERDATA_AUTH, self.password)

        # Some servers send an empty RESPONSE_VALUE before the AUTH_RESPONSE
        while True:
            reply_id, packet_type, _ = await self._read_packet(reader)
            if packet_type == SERVERDATA_AUTH_RESPONSE:
                break

        if reply_id == AUTH_FAILED_ID:
            raise RconAuthenticationError(
                f"RCON authentication to {self.host}:{self.port} failed"
            )
        if reply_id != request_id:
            raise TransportFailure(
                f"Unexpected RCON auth reply id {reply_id}, expected {request_id}"
            )

    async def _execute(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, command: str
    ) -> str:
        command_id = next(self._request_ids)
        marker_id = next(self._request_ids)

        await self._write(writer, command_id, SERVERDATA_EXECCOMMAND, command)
        # Replies are answered in order, so the echo of this marker closes the reply
        await self._write(writer, marker_id, SERVERDATA_RESPONSE_VALUE, "")

        parts = []
        while True:
            reply_id, _, body = await self._read_packet(reader)
            if reply_id == marker_id:
                break
            if reply_id == command_id:
                parts.append(body)
            else:
                logger.debug(f"Ignoring RCON packet with unexpected id {reply_id}")

        return "".join(parts)

    async def _write(
        self, writer: asyncio.StreamWriter, request_id: int, packet_type: int, body: str
    ) -> None:
        writer.write(encode_packet(request_id, packet_type, body))
        await self._with_timeout(writer.drain())

    async def _read_packet(self, reader: asyncio.StreamReader) -> Tuple[int, int, str]:
        (length,) = LENGTH.unpack(await self._with_timeout(reader.readexactly(LENGTH.size)))
        if not MIN_PACKET_LENGTH <= length <= MAX_PACKET_LENGTH:
            raise TransportFailure(f"Invalid RCON packet length {length}")
        data = await self._with_timeout(reader.readexactly(length))
        return decode_payload(data)

    async def _with_timeout(self, awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
