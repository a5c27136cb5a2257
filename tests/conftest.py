"""Shared test fixtures for LTIGATE."""

from collections.abc import AsyncIterator

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ltigate.core.app import create_app
from ltigate.core.settings import PlatformConfig
from ltigate.crypto.jwks_cache import JWKSKeyCache
from ltigate.db.base import BaseEntity
from ltigate.lti.pending_store import PendingLaunchStore
from tests.fakes import (
    AUTH_URL,
    CLIENT_ID,
    DEPLOYMENT_ID,
    ISSUER,
    JWKS_URL,
    LAUNCH_URL,
    TOOL_ORIGIN,
    FakePlatform,
    make_platform_config,
)


@pytest.fixture(autouse=True)
def _set_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set environment variables for test settings."""
    monkeypatch.setenv("LTI_ISSUER", ISSUER)
    monkeypatch.setenv("LTI_CLIENT_ID", CLIENT_ID)
    monkeypatch.setenv("LTI_DEPLOYMENT_ID", DEPLOYMENT_ID)
    monkeypatch.setenv("LTI_AUTH_URL", AUTH_URL)
    monkeypatch.setenv("LTI_JWKS_URL", JWKS_URL)
    monkeypatch.setenv("LTI_LAUNCH_URL", LAUNCH_URL)
    monkeypatch.setenv("LTI_TOOL_ORIGIN", TOOL_ORIGIN)
    monkeypatch.delenv("LTI_CORS_ORIGINS", raising=False)


@pytest.fixture
async def session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """In-memory SQLite shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://", echo=False, poolclass=StaticPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(BaseEntity.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> PendingLaunchStore:
    return PendingLaunchStore(session_factory, ttl_seconds=180)


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def platform_config() -> PlatformConfig:
    return make_platform_config()


@pytest.fixture
async def key_cache(platform: FakePlatform) -> AsyncIterator[JWKSKeyCache]:
    async with httpx.AsyncClient(transport=platform.transport()) as http:
        yield JWKSKeyCache(JWKS_URL, http_client=http)


@pytest.fixture
async def client(
    platform_config: PlatformConfig,
    session_factory: async_sessionmaker[AsyncSession],
    key_cache: JWKSKeyCache,
) -> AsyncIterator[AsyncClient]:
    """Create an httpx test client against a fully configured app."""
    app = create_app(
        config=platform_config,
        session_factory=session_factory,
        key_cache=key_cache,
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=TOOL_ORIGIN) as ac:
        yield ac
