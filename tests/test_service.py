"""End-to-end wiring of PanelService against a temp server directory and database."""

import asyncio
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mcpanel.config import Settings
from mcpanel.models import Base, Schedule
from mcpanel.players.crud import get_online_player_names, get_player_by_name
from mcpanel.service import PanelService


class RecordingClient:
    def __init__(self):
        self.sent: List[str] = []

    async def send(self, command: str) -> str:
        self.sent.append(command)
        return ""


@pytest.fixture
async def test_database():
    """Create isolated test database for each test."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    @asynccontextmanager
    async def get_session():
        async with async_session_maker() as session:
            yield session

    yield get_session

    await engine.dispose()
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def server_settings(tmp_path):
    (tmp_path / "logs").mkdir()
    return Settings(
        server_path=tmp_path,
        timezone="UTC",
        log_tail={"force_polling": True, "poll_interval_ms": 50},
    )


async def wait_until(predicate, timeout: float = 5.0) -> None:
    async def poll():
        while not await predicate():
            await asyncio.sleep(0.05)

    await asyncio.wait_for(poll(), timeout=timeout)


class TestPanelService:
    """Test that the service connects its workers."""

    @pytest.mark.asyncio
    async def test_wiring_follows_settings(self, server_settings, test_database):
        service = PanelService(
            config=server_settings,
            session_factory=test_database,
            rcon_client=RecordingClient(),
        )

        assert service.tailer.log_path == server_settings.server_path / "logs" / "latest.log"
        assert service.queue.maxsize == server_settings.log_tail.queue_size
        assert service.commands.broadcast_command == "broadcast"
        assert len(service.activity) == 0

    @pytest.mark.asyncio
    async def test_log_lines_reach_database(self, server_settings, test_database):
        latest = server_settings.latest_log_path
        latest.write_text(
            "[12:00:00] [Server thread/INFO]: Steve[/192.168.1.5:54321] logged in with entity id 5\n"
        )
        service = PanelService(
            config=server_settings,
            session_factory=test_database,
            rcon_client=RecordingClient(),
        )

        await service.start(init_database=False)
        try:

            async def steve_online():
                async with test_database() as session:
                    return "Steve" in await get_online_player_names(session)

            await wait_until(steve_online)

            with latest.open("a") as f:
                f.write("[12:30:00] [Server thread/INFO]: Steve left the game\n")

            async def steve_offline():
                async with test_database() as session:
                    return "Steve" not in await get_online_player_names(session)

            await wait_until(steve_offline)
        finally:
            await service.stop()

        async with test_database() as session:
            player = await get_player_by_name(session, "Steve")
        assert player is not None
        assert len(service.activity) == 2

    @pytest.mark.asyncio
    async def test_schedules_loaded_on_start(self, server_settings, test_database):
        async with test_database() as session:
            session.add_all(
                [
                    Schedule(cron_expression="0 4 * * *", label="Nightly", enabled=True),
                    Schedule(cron_expression="0 16 * * *", label="Afternoon", enabled=False),
                ]
            )
            await session.commit()

        service = PanelService(
            config=server_settings,
            session_factory=test_database,
            rcon_client=RecordingClient(),
        )

        await service.start(init_database=False)
        try:
            assert len(service.schedules) == 2
            assert service.maintenance.next_fire_time("1") is not None
            assert service.maintenance.next_fire_time("2") is None

            async with test_database() as session:
                schedule = await session.get(Schedule, 2)
                schedule.enabled = True
                await session.commit()

            assert await service.reload_schedules() == 2
            assert service.maintenance.next_fire_time("2") is not None
        finally:
            await service.stop()
