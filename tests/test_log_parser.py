"""Test cases for the log line classifier using real server log shapes."""

from datetime import datetime, timezone

from mcpanel.events import EventType
from mcpanel.events.base import (
    PlayerCommandIssuedEvent,
    PlayerIdentityBoundEvent,
    PlayerLoggedInEvent,
    PlayerLoggedOutEvent,
)
from mcpanel.log_monitor.parser import parse_line


class TestLoginParsing:
    """Test login-with-address lines."""

    def test_login_short_header(self):
        event = parse_line("[INFO]: Steve[/192.168.1.5:54321] logged in with entity id 5")

        assert isinstance(event, PlayerLoggedInEvent)
        assert event.event_type == EventType.PLAYER_LOGGED_IN
        assert event.username == "Steve"
        assert event.address == "192.168.1.5"

    def test_login_vanilla(self):
        log_line = "[12:00:00] [Server thread/INFO]: Alex_99[/10.0.0.7:51234] logged in with entity id 312 at (8.5, 64.0, -3.5)"

        event = parse_line(log_line)

        assert isinstance(event, PlayerLoggedInEvent)
        assert event.username == "Alex_99"
        assert event.address == "10.0.0.7"

    def test_login_forge(self):
        log_line = "[24Jan2024 11:08:33.562] [Server thread/INFO] [net.minecraft.server.players.PlayerList/]: Qin_Ning[/123.45.67.89:62001] logged in with entity id 276 at (-217.5, 63.0, 34.5)"

        event = parse_line(log_line)

        assert isinstance(event, PlayerLoggedInEvent)
        assert event.username == "Qin_Ning"
        assert event.address == "123.45.67.89"

    def test_login_ipv6(self):
        log_line = "[10:00:00] [Server thread/INFO]: Steve[/[2408:8207::1]:5962] logged in with entity id 9"

        event = parse_line(log_line)

        assert isinstance(event, PlayerLoggedInEvent)
        assert event.address == "2408:8207::1"


class TestIdentityParsing:
    """Test identity binding lines."""

    def test_identity_vanilla(self):
        log_line = "[00:36:01] [User Authenticator #0/INFO]: UUID of player HermesImpact is d217394f-fb8a-4bde-95ad-9a5dd75ac0d9"

        event = parse_line(log_line)

        assert isinstance(event, PlayerIdentityBoundEvent)
        assert event.username == "HermesImpact"
        assert event.identifier == "d217394f-fb8a-4bde-95ad-9a5dd75ac0d9"

    def test_identity_without_dashes(self):
        event = parse_line(
            "[INFO]: UUID of player Steve is 069a79f444e94726a5befca90e38aaf5"
        )

        assert isinstance(event, PlayerIdentityBoundEvent)
        assert event.identifier == "069a79f444e94726a5befca90e38aaf5"


class TestLogoutParsing:
    """Test logout lines."""

    def test_lost_connection(self):
        event = parse_line("[INFO]: Steve lost connection: Disconnected")

        assert isinstance(event, PlayerLoggedOutEvent)
        assert event.username == "Steve"

    def test_left_the_game(self):
        event = parse_line("[12:10:00] [Server thread/INFO]: Steve left the game")

        assert isinstance(event, PlayerLoggedOutEvent)
        assert event.username == "Steve"


class TestCommandParsing:
    """Test command lines."""

    def test_command(self):
        event = parse_line(
            "[12:05:00] [Server thread/INFO]: Steve issued server command: /gamemode creative"
        )

        assert isinstance(event, PlayerCommandIssuedEvent)
        assert event.username == "Steve"
        assert event.command == "/gamemode creative"

    def test_command_trailing_whitespace_stripped(self):
        event = parse_line("[INFO]: Steve issued server command: /home base  \r\n")

        assert isinstance(event, PlayerCommandIssuedEvent)
        assert event.command == "/home base"


class TestNonMatchingLines:
    """Lines outside the four shapes are dropped."""

    def test_chat_cannot_spoof_logout(self):
        assert parse_line("[12:00:00] [Server thread/INFO]: <Alex> Steve left the game") is None

    def test_chat_cannot_spoof_after_separator(self):
        line = "[12:00:00] [Server thread/INFO]: <Alex> hi ]: Steve left the game"
        assert parse_line(line) is None

    def test_chat_cannot_spoof_identity(self):
        line = "[INFO]: <Alex> UUID of player Steve is 069a79f444e94726a5befca90e38aaf5"
        assert parse_line(line) is None

    def test_unrelated_lines(self):
        assert parse_line("[12:00:00] [Server thread/INFO]: Done (3.2s)! For help, type \"help\"") is None
        assert parse_line("[12:00:00] [Server thread/INFO]: Starting minecraft server version 1.20.1") is None

    def test_line_without_header(self):
        assert parse_line("Steve left the game") is None

    def test_empty_line(self):
        assert parse_line("") is None

    def test_username_too_short(self):
        assert parse_line("[INFO]: ab left the game") is None


class TestTimestamps:
    """Test event timestamps."""

    def test_explicit_timestamp(self):
        ts = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

        event = parse_line("[INFO]: Steve left the game", timestamp=ts)

        assert event is not None
        assert event.timestamp == ts

    def test_default_timestamp_is_now_utc(self):
        before = datetime.now(timezone.utc)
        event = parse_line("[INFO]: Steve left the game")
        after = datetime.now(timezone.utc)

        assert event is not None
        assert event.timestamp.tzinfo is not None
        assert before <= event.timestamp <= after
