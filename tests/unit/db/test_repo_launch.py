"""Tests for pending launch repository operations."""

from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from ltigate.db.models_launch import PendingLaunchEntity
from ltigate.db.repo_launch import (
    consume_pending_launch,
    delete_expired,
    get_pending_launch,
    insert_pending_launch,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


async def _insert(
    session: AsyncSession, state: str, *, ttl: int = 180
) -> PendingLaunchEntity:
    return await insert_pending_launch(
        session,
        PendingLaunchEntity(
            state=state,
            nonce=f"nonce-{state}",
            expires_at=NOW + timedelta(seconds=ttl),
            consumed=False,
            created_at=NOW,
        ),
    )


class TestGetPendingLaunch:
    """Tests for get_pending_launch."""

    async def test_found(self, db_session: AsyncSession) -> None:
        await _insert(db_session, "s-1")
        entity = await get_pending_launch(db_session, "s-1")
        assert entity is not None
        assert entity.nonce == "nonce-s-1"

    async def test_missing(self, db_session: AsyncSession) -> None:
        assert await get_pending_launch(db_session, "s-1") is None


class TestConsumePendingLaunch:
    """Tests for consume_pending_launch."""

    async def test_marks_consumed(self, db_session: AsyncSession) -> None:
        await _insert(db_session, "s-1")

        entity = await consume_pending_launch(db_session, "s-1", NOW)

        assert entity is not None
        assert entity.consumed is True
        assert entity.consumed_at is not None

    async def test_second_consume_fails(self, db_session: AsyncSession) -> None:
        await _insert(db_session, "s-1")
        assert await consume_pending_launch(db_session, "s-1", NOW) is not None
        assert await consume_pending_launch(db_session, "s-1", NOW) is None

    async def test_expired_not_consumed(self, db_session: AsyncSession) -> None:
        await _insert(db_session, "s-1", ttl=60)
        later = NOW + timedelta(seconds=61)
        assert await consume_pending_launch(db_session, "s-1", later) is None

        entity = await get_pending_launch(db_session, "s-1")
        assert entity is not None
        assert entity.consumed is False

    async def test_unknown_state(self, db_session: AsyncSession) -> None:
        assert await consume_pending_launch(db_session, "s-1", NOW) is None


class TestDeleteExpired:
    """Tests for delete_expired."""

    async def test_deletes_past_expiry_only(self, db_session: AsyncSession) -> None:
        await _insert(db_session, "old", ttl=-10)
        await _insert(db_session, "fresh", ttl=10)

        assert await delete_expired(db_session, NOW) == 1
        assert await get_pending_launch(db_session, "old") is None
        assert await get_pending_launch(db_session, "fresh") is not None

    async def test_nothing_to_delete(self, db_session: AsyncSession) -> None:
        assert await delete_expired(db_session, NOW) == 0
