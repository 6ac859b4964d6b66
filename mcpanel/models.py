from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import TEXT, Boolean, DateTime, Index, Integer, String
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class TZDatetime(TypeDecorator):
    """Custom DateTime type that ensures timezone-aware datetimes."""

    impl = DateTime(timezone=True)

    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is None:
            raise ValueError(
                "Naive datetime is not allowed. Please provide a timezone-aware datetime."
            )
        if value is not None:
            # SQLite stores the wall time only
            return value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            # SQLite drops the offset, values are written as UTC
            return value.replace(tzinfo=timezone.utc)
        return value


class Base(AsyncAttrs, DeclarativeBase):
    """SQLAlchemy declarative base for all ORM models with async support."""

    pass


# Player tracking models


class Player(Base):
    """A player identity as it appears in the server log."""

    __tablename__ = "player"

    player_db_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(16), unique=True, index=True)
    identifier: Mapped[Optional[str]] = mapped_column(String(36))
    first_seen: Mapped[datetime] = mapped_column(TZDatetime())
    last_seen: Mapped[datetime] = mapped_column(TZDatetime())
    last_known_address: Mapped[Optional[str]] = mapped_column(String(64))
    cumulative_play_seconds: Mapped[int] = mapped_column(Integer, default=0)


class PlayerSession(Base):
    """One connected interval of a player, bounded by login and logout."""

    __tablename__ = "player_session"
    __table_args__ = (
        Index("idx_player_session_player_time", "player_db_id", "login_time"),
        Index("idx_player_session_player_open", "player_db_id", "logout_time"),
    )

    session_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    player_db_id: Mapped[int] = mapped_column(Integer, index=True)
    login_time: Mapped[datetime] = mapped_column(TZDatetime())
    logout_time: Mapped[Optional[datetime]] = mapped_column(TZDatetime())
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer)


class AddressObservation(Base):
    """Address a player connected from, one row per login."""

    __tablename__ = "address_observation"
    __table_args__ = (
        Index("idx_address_observation_player_address", "player_db_id", "address"),
    )

    observation_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    player_db_id: Mapped[int] = mapped_column(Integer, index=True)
    address: Mapped[str] = mapped_column(String(64))
    observed_at: Mapped[datetime] = mapped_column(TZDatetime())


class CommandRecord(Base):
    """Server command issued by a player."""

    __tablename__ = "command_record"
    __table_args__ = (
        Index("idx_command_record_player_time", "player_db_id", "executed_at"),
    )

    command_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    player_db_id: Mapped[int] = mapped_column(Integer, index=True)
    command: Mapped[str] = mapped_column(TEXT)
    executed_at: Mapped[datetime] = mapped_column(TZDatetime())


# Maintenance scheduling models


class Schedule(Base):
    """Maintenance restart schedule managed by administrators."""

    __tablename__ = "schedule"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    cron_expression: Mapped[str] = mapped_column(String(100))
    label: Mapped[Optional[str]] = mapped_column(String(255))
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)


class RunStatus(str, Enum):
    """Status of one maintenance countdown cycle."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class MaintenanceRun(Base):
    """Execution record of a triggered maintenance countdown."""

    __tablename__ = "maintenance_run"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(String(50), unique=True)
    schedule_id: Mapped[str] = mapped_column(String(100), index=True)
    label: Mapped[Optional[str]] = mapped_column(String(255))
    started_at: Mapped[datetime] = mapped_column(TZDatetime())
    ended_at: Mapped[Optional[datetime]] = mapped_column(TZDatetime())
    status: Mapped[RunStatus] = mapped_column(SQLAlchemyEnum(RunStatus))
    messages_json: Mapped[str] = mapped_column(TEXT, default="[]")
