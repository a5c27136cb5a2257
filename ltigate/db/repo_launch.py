"""Database operations for pending launches."""

from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ltigate.db.models_launch import PendingLaunchEntity


async def insert_pending_launch(
    session: AsyncSession, entity: PendingLaunchEntity
) -> PendingLaunchEntity:
    """Persist a new pending launch."""
    session.add(entity)
    await session.flush()
    return entity


async def get_pending_launch(
    session: AsyncSession, state: str
) -> PendingLaunchEntity | None:
    """Look up a pending launch by state, whatever its status."""
    stmt = select(PendingLaunchEntity).where(PendingLaunchEntity.state == state)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def consume_pending_launch(
    session: AsyncSession, state: str, now: datetime
) -> PendingLaunchEntity | None:
    """Mark an unexpired, unconsumed launch consumed. None if none matched.

    The conditional UPDATE is the compare-and-set: of any number of
    concurrent callers, only one sees a changed row.
    """
    stmt = (
        update(PendingLaunchEntity)
        .where(
            PendingLaunchEntity.state == state,
            PendingLaunchEntity.consumed.is_(False),
            PendingLaunchEntity.expires_at > now,
        )
        .values(consumed=True, consumed_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount != 1:
        return None

    entity = await get_pending_launch(session, state)
    if entity is not None:
        await session.refresh(entity)
    return entity


async def delete_expired(session: AsyncSession, now: datetime) -> int:
    """Delete launches whose expiry has passed. Returns the count removed."""
    stmt = (
        delete(PendingLaunchEntity)
        .where(PendingLaunchEntity.expires_at <= now)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount or 0
