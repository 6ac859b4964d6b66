"""CRUD operations for PlayerSession model."""
# flake8: noqa: E711

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ...models import Player, PlayerSession


async def get_open_session(
    session: AsyncSession, player_db_id: int
) -> Optional[PlayerSession]:
    """Get the most recently opened session that has not been closed.

    Args:
        session: Database session
        player_db_id: Player database ID

    Returns:
        Open session or None
    """
    result = await session.execute(
        select(PlayerSession)
        .where(
            PlayerSession.player_db_id == player_db_id,
            PlayerSession.logout_time == None,
        )
        .order_by(PlayerSession.login_time.desc(), PlayerSession.session_id.desc())
        .limit(1)
    )
    return result.scalars().first()


async def create_session(
    session: AsyncSession, player_db_id: int, login_time: datetime
) -> PlayerSession:
    """Open a new session for a player."""
    player_session = PlayerSession(
        player_db_id=player_db_id,
        login_time=login_time,
        logout_time=None,
        duration_seconds=None,
    )
    session.add(player_session)
    await session.flush()
    return player_session


async def end_session(
    session: AsyncSession,
    player: Player,
    player_session: PlayerSession,
    logout_time: datetime,
) -> int:
    """Close a session and add its duration to the player's playtime.

    Args:
        session: Database session
        player: Owner of the session
        player_session: The open session
        logout_time: Logout timestamp

    Returns:
        Session duration in seconds, never negative
    """
    duration = max(0, int((logout_time - player_session.login_time).total_seconds()))

    player_session.logout_time = logout_time
    player_session.duration_seconds = duration
    player.cumulative_play_seconds = (player.cumulative_play_seconds or 0) + duration
    player.last_seen = logout_time

    await session.flush()
    return duration


async def get_player_sessions(
    session: AsyncSession, player_db_id: int
) -> List[PlayerSession]:
    """Get all sessions of a player, oldest first."""
    result = await session.execute(
        select(PlayerSession)
        .where(PlayerSession.player_db_id == player_db_id)
        .order_by(PlayerSession.login_time, PlayerSession.session_id)
    )
    return list(result.scalars().all())


async def count_open_sessions(session: AsyncSession, player_db_id: int) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(PlayerSession)
        .where(
            PlayerSession.player_db_id == player_db_id,
            PlayerSession.logout_time == None,
        )
    )
    return result.scalar_one()


async def get_online_player_names(session: AsyncSession) -> set[str]:
    """Get names of players that currently have an open session."""
    result = await session.execute(
        select(Player.username)
        .join(PlayerSession, PlayerSession.player_db_id == Player.player_db_id)
        .where(PlayerSession.logout_time == None)
    )
    return {name for (name,) in result.all()}
