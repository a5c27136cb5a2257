"""Pending-launch store: single-use records binding state to nonce."""

import asyncio
import logging
import weakref
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ltigate.core.settings import PENDING_LAUNCH_TTL_DEFAULT
from ltigate.db.models_launch import PendingLaunchEntity
from ltigate.db.repo_launch import (
    consume_pending_launch,
    delete_expired,
    insert_pending_launch,
)
from ltigate.lti.types import PendingLaunch

logger = logging.getLogger(__name__)


class PendingLaunchStore:
    """Creates and atomically consumes pending launches.

    Each operation runs in its own committed transaction so a consumption
    is visible to every other request as soon as it returns.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ttl_seconds: int = PENDING_LAUNCH_TTL_DEFAULT,
    ) -> None:
        self._session_factory = session_factory
        self._ttl = timedelta(seconds=ttl_seconds)
        self._consume_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def ttl_seconds(self) -> int:
        return int(self._ttl.total_seconds())

    async def create(
        self,
        state: str,
        nonce: str,
        target_url: str | None = None,
        login_hint: str | None = None,
    ) -> PendingLaunch:
        """Store a new pending launch and reclaim expired ones."""
        now = datetime.now(UTC)
        entity = PendingLaunchEntity(
            state=state,
            nonce=nonce,
            target_url=target_url,
            login_hint=login_hint,
            expires_at=now + self._ttl,
            consumed=False,
            created_at=now,
        )
        async with self._session_factory() as session:
            await delete_expired(session, now)
            await insert_pending_launch(session, entity)
            await session.commit()
        return PendingLaunch.model_validate(entity)

    def _lock_for(self, state: str) -> asyncio.Lock:
        """Lock serializing consumers of one state; dropped once unused."""
        lock = self._consume_locks.get(state)
        if lock is None:
            lock = asyncio.Lock()
            self._consume_locks[state] = lock
        return lock

    async def consume_if_valid(self, state: str) -> PendingLaunch | None:
        """Consume the launch for ``state`` once. None if missing, expired or used."""
        async with self._lock_for(state):
            async with self._session_factory() as session:
                entity = await consume_pending_launch(
                    session, state, datetime.now(UTC)
                )
                await session.commit()
        if entity is None:
            logger.debug("No consumable launch for state %s...", state[:8])
            return None
        return PendingLaunch.model_validate(entity)

    async def purge_expired(self) -> int:
        """Delete expired launches. Not needed for correctness."""
        async with self._session_factory() as session:
            removed = await delete_expired(session, datetime.now(UTC))
            await session.commit()
        return removed
