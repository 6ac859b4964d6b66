"""Tests for RconClient against an in-process RCON server."""

import asyncio
import socket
import struct
from typing import Dict, List, Optional

import pytest

from mcpanel.rcon.client import (
    SERVERDATA_AUTH,
    SERVERDATA_AUTH_RESPONSE,
    SERVERDATA_EXECCOMMAND,
    SERVERDATA_RESPONSE_VALUE,
    RconAuthenticationError,
    RconClient,
    TransportFailure,
    clean_reply,
    decode_payload,
    encode_packet,
)


class FakeRconServer:
    """Minimal Source RCON server: answers commands from a reply table."""

    def __init__(
        self,
        password: str = "secret",
        replies: Optional[Dict[str, str]] = None,
        chunk_size: int = 4096,
        silent: bool = False,
        empty_before_auth: bool = False,
    ):
        self.password = password
        self.replies = replies or {}
        self.chunk_size = chunk_size
        self.silent = silent
        self.empty_before_auth = empty_before_auth

        self.commands: List[str] = []
        self.connections = 0
        self.closed = 0
        self.closed_event = asyncio.Event()
        self._server: Optional[asyncio.AbstractServer] = None

    @property
    def port(self) -> int:
        assert self._server is not None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.connections += 1
        try:
            while True:
                (length,) = struct.unpack("<i", await reader.readexactly(4))
                request_id, packet_type, body = decode_payload(await reader.readexactly(length))

                if self.silent:
                    continue

                if packet_type == SERVERDATA_AUTH:
                    if self.empty_before_auth:
                        writer.write(encode_packet(request_id, SERVERDATA_RESPONSE_VALUE, ""))
                    reply_id = request_id if body == self.password else -1
                    writer.write(encode_packet(reply_id, SERVERDATA_AUTH_RESPONSE, ""))
                elif packet_type == SERVERDATA_EXECCOMMAND:
                    self.commands.append(body)
                    reply = self.replies.get(body, "")
                    chunks = [
                        reply[i : i + self.chunk_size]
                        for i in range(0, len(reply), self.chunk_size)
                    ] or [""]
                    for chunk in chunks:
                        writer.write(encode_packet(request_id, SERVERDATA_RESPONSE_VALUE, chunk))
                else:
                    writer.write(
                        encode_packet(
                            request_id, SERVERDATA_RESPONSE_VALUE, f"Unknown request {packet_type:x}"
                        )
                    )
                await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            self.closed += 1
            self.closed_event.set()
            writer.close()


@pytest.fixture
async def rcon_server():
    server = FakeRconServer(
        replies={
            "list": "There are 1 of a max of 20 players online: Steve",
            "colors": "§aGreen §cRed\x1b[0m",
        }
    )
    await server.start()
    yield server
    await server.stop()


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestPacketCodec:
    """Test packet framing helpers."""

    def test_encode_layout(self):
        packet = encode_packet(7, SERVERDATA_EXECCOMMAND, "list")

        length, request_id, packet_type = struct.unpack_from("<iii", packet)
        assert length == len(packet) - 4
        assert request_id == 7
        assert packet_type == SERVERDATA_EXECCOMMAND
        assert packet.endswith(b"list\x00\x00")

    def test_decode_payload(self):
        packet = encode_packet(3, SERVERDATA_RESPONSE_VALUE, "hello")

        assert decode_payload(packet[4:]) == (3, SERVERDATA_RESPONSE_VALUE, "hello")

    def test_clean_reply(self):
        assert clean_reply("§6Gold§r text\x1b[31m \n") == "Gold text"


class TestRconClient:
    """Test the one-shot client."""

    @pytest.mark.asyncio
    async def test_send_returns_reply(self, rcon_server):
        client = RconClient("127.0.0.1", rcon_server.port, "secret", timeout_seconds=5)

        reply = await client.send("list")

        assert reply == "There are 1 of a max of 20 players online: Steve"
        assert rcon_server.commands == ["list"]

    @pytest.mark.asyncio
    async def test_empty_reply(self, rcon_server):
        client = RconClient("127.0.0.1", rcon_server.port, "secret", timeout_seconds=5)

        assert await client.send("say hi") == ""

    @pytest.mark.asyncio
    async def test_formatting_codes_removed(self, rcon_server):
        client = RconClient("127.0.0.1", rcon_server.port, "secret", timeout_seconds=5)

        assert await client.send("colors") == "Green Red"

    @pytest.mark.asyncio
    async def test_multi_packet_reply_reassembled(self):
        long_reply = "".join(f"line {i}\n" for i in range(2000))
        server = FakeRconServer(replies={"dump": long_reply}, chunk_size=4096)
        await server.start()
        try:
            client = RconClient("127.0.0.1", server.port, "secret", timeout_seconds=5)
            reply = await client.send("dump")
        finally:
            await server.stop()

        assert reply == long_reply.strip()

    @pytest.mark.asyncio
    async def test_empty_packet_before_auth_response(self):
        server = FakeRconServer(replies={"list": "ok"}, empty_before_auth=True)
        await server.start()
        try:
            client = RconClient("127.0.0.1", server.port, "secret", timeout_seconds=5)
            assert await client.send("list") == "ok"
        finally:
            await server.stop()

    @pytest.mark.asyncio
    async def test_fresh_connection_per_send(self, rcon_server):
        client = RconClient("127.0.0.1", rcon_server.port, "secret", timeout_seconds=5)

        await client.send("list")
        await client.send("list")

        assert rcon_server.connections == 2

    @pytest.mark.asyncio
    async def test_connection_closed_after_send(self, rcon_server):
        client = RconClient("127.0.0.1", rcon_server.port, "secret", timeout_seconds=5)

        await client.send("list")

        await asyncio.wait_for(rcon_server.closed_event.wait(), timeout=5)
        assert rcon_server.closed == 1

    @pytest.mark.asyncio
    async def test_wrong_password(self, rcon_server):
        client = RconClient("127.0.0.1", rcon_server.port, "wrong", timeout_seconds=5)

        with pytest.raises(RconAuthenticationError):
            await client.send("list")

        assert rcon_server.commands == []
        await asyncio.wait_for(rcon_server.closed_event.wait(), timeout=5)

    @pytest.mark.asyncio
    async def test_auth_error_is_transport_failure(self, rcon_server):
        client = RconClient("127.0.0.1", rcon_server.port, "wrong", timeout_seconds=5)

        with pytest.raises(TransportFailure):
            await client.send("list")

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        client = RconClient("127.0.0.1", free_port(), "secret", timeout_seconds=5)

        with pytest.raises(TransportFailure) as exc_info:
            await client.send("list")

        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_timeout(self):
        server = FakeRconServer(silent=True)
        await server.start()
        try:
            client = RconClient("127.0.0.1", server.port, "secret", timeout_seconds=0.2)

            with pytest.raises(TransportFailure):
                await client.send("list")

            await asyncio.wait_for(server.closed_event.wait(), timeout=5)
        finally:
            await server.stop()
