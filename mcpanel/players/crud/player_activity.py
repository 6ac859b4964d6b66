"""CRUD operations for address observations and command records."""

from datetime import datetime
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...models import AddressObservation, CommandRecord


async def add_address_observation(
    session: AsyncSession, player_db_id: int, address: str, observed_at: datetime
) -> AddressObservation:
    observation = AddressObservation(
        player_db_id=player_db_id, address=address, observed_at=observed_at
    )
    session.add(observation)
    await session.flush()
    return observation


async def add_command_record(
    session: AsyncSession, player_db_id: int, command: str, executed_at: datetime
) -> CommandRecord:
    record = CommandRecord(
        player_db_id=player_db_id, command=command, executed_at=executed_at
    )
    session.add(record)
    await session.flush()
    return record


async def get_address_history(
    session: AsyncSession, player_db_id: int
) -> List[AddressObservation]:
    """Get every address observation of a player, oldest first."""
    result = await session.execute(
        select(AddressObservation)
        .where(AddressObservation.player_db_id == player_db_id)
        .order_by(AddressObservation.observed_at, AddressObservation.observation_id)
    )
    return list(result.scalars().all())


async def get_command_history(
    session: AsyncSession, player_db_id: int, limit: int = 100
) -> List[CommandRecord]:
    """Get the most recent commands of a player, newest first."""
    result = await session.execute(
        select(CommandRecord)
        .where(CommandRecord.player_db_id == player_db_id)
        .order_by(CommandRecord.executed_at.desc(), CommandRecord.command_id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
