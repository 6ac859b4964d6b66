"""CRUD operations for Player model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from ...models import Player


async def get_player_by_name(
    session: AsyncSession, username: str
) -> Optional[Player]:
    """Get player by exact username.

    Args:
        session: Database session
        username: Player name

    Returns:
        Player or None if not found
    """
    result = await session.execute(
        select(Player)
        .where(Player.username == username)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def upsert_player_login(
    session: AsyncSession, username: str, address: str, timestamp: datetime
) -> Player:
    """Insert the player on first login, otherwise refresh last seen and address.

    Args:
        session: Database session
        username: Player name
        address: Address the player connected from
        timestamp: Login time

    Returns:
        The player row

    Raises:
        RuntimeError: If the row cannot be read back after the upsert
    """
    stmt = insert(Player).values(
        username=username,
        first_seen=timestamp,
        last_seen=timestamp,
        last_known_address=address,
        cumulative_play_seconds=0,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["username"],
        set_={"last_seen": timestamp, "last_known_address": address},
    )
    await session.execute(stmt)

    player = await get_player_by_name(session, username)
    if player is None:
        raise RuntimeError(f"Player {username} missing right after upsert")
    return player


async def set_player_identifier(
    session: AsyncSession, username: str, identifier: str
) -> bool:
    """Bind a stable identifier to a known player.

    Returns:
        True if a player row was updated
    """
    result = await session.execute(
        update(Player)
        .where(Player.username == username)
        .values(identifier=identifier)
    )
    return result.rowcount > 0
