"""Tests for the bounded activity feed."""

from datetime import datetime, timedelta, timezone

import pytest

from mcpanel.activity import ActivityFeed
from mcpanel.events.base import PlayerCommandIssuedEvent, PlayerLoggedInEvent

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def command(n: int) -> PlayerCommandIssuedEvent:
    return PlayerCommandIssuedEvent(
        username="Steve", command=f"/cmd{n}", timestamp=T0 + timedelta(seconds=n)
    )


class TestActivityFeed:
    def test_newest_first(self):
        feed = ActivityFeed()
        login = PlayerLoggedInEvent(username="Steve", address="1.2.3.4", timestamp=T0)

        feed.record(login)
        feed.record(command(1))

        assert [type(e) for e in feed.recent_events()] == [PlayerCommandIssuedEvent, PlayerLoggedInEvent]
        assert feed.recent_commands() == [command(1)]

    def test_drops_oldest_when_full(self):
        feed = ActivityFeed(max_events=3, max_commands=2)

        for n in range(5):
            feed.record(command(n))

        assert len(feed) == 3
        assert [e.command for e in feed.recent_events()] == ["/cmd4", "/cmd3", "/cmd2"]
        assert [e.command for e in feed.recent_commands()] == ["/cmd4", "/cmd3"]

    def test_limit(self):
        feed = ActivityFeed()
        for n in range(10):
            feed.record(command(n))

        assert [e.command for e in feed.recent_commands(limit=2)] == ["/cmd9", "/cmd8"]
        assert len(feed.recent_events(limit=4)) == 4

    def test_logins_are_not_commands(self):
        feed = ActivityFeed()

        feed.record(PlayerLoggedInEvent(username="Steve", address="1.2.3.4", timestamp=T0))

        assert len(feed) == 1
        assert feed.recent_commands() == []

    def test_clear(self):
        feed = ActivityFeed()
        feed.record(command(1))

        feed.clear()

        assert len(feed) == 0
        assert feed.recent_commands() == []

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ActivityFeed(max_events=0)
        with pytest.raises(ValueError):
            ActivityFeed(max_commands=0)
