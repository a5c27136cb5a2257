"""FastAPI application factory for the LTIGATE launch service."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.responses import JSONResponse

from ltigate.core.settings import (
    DatabaseSettings,
    LTISettings,
    PlatformConfig,
    load_platform_config,
)
from ltigate.crypto.jwks_cache import JWKSKeyCache
from ltigate.db.engine import create_schema, dispose_engine, get_session_factory
from ltigate.lti.errors import (
    ConfigError,
    KeyFetchError,
    ValidationInputError,
)
from ltigate.lti.login import LoginInitiator
from ltigate.lti.pending_store import PendingLaunchStore
from ltigate.lti.routes_callback import router as callback_router
from ltigate.lti.routes_launch import router as launch_router
from ltigate.lti.routes_login import router as login_router
from ltigate.lti.validator import LaunchValidator

logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400
HTTP_SERVER_ERROR = 500


async def _config_error(_request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, ConfigError)
    return JSONResponse(
        {"error": exc.kind, "message": exc.message, "details": exc.details},
        status_code=HTTP_SERVER_ERROR,
    )


async def _key_fetch_error(_request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, KeyFetchError)
    return JSONResponse(
        {"error": exc.kind, "message": exc.message},
        status_code=HTTP_SERVER_ERROR,
    )


async def _input_error(_request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, ValidationInputError)
    return JSONResponse(
        {"error": exc.message, "details": exc.details},
        status_code=HTTP_BAD_REQUEST,
    )


async def _request_validation_error(
    _request: Request, exc: Exception
) -> JSONResponse:
    """400 naming the offending fields, without echoing submitted values."""
    assert isinstance(exc, RequestValidationError)
    details = [
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    ]
    return JSONResponse(
        {"error": "invalid_request", "details": details},
        status_code=HTTP_BAD_REQUEST,
    )


def create_app(
    *,
    config: PlatformConfig | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    key_cache: JWKSKeyCache | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    The platform configuration is loaded once here. If it is incomplete the
    failure is logged at boot and every launch endpoint answers 500 with it.
    """
    settings = LTISettings()
    db_settings = DatabaseSettings()

    config_error: ConfigError | None = None
    if config is None:
        try:
            config = load_platform_config(settings)
        except ConfigError as exc:
            logger.error("%s: %s", exc.message, "; ".join(exc.details))
            config_error = exc

    owns_engine = session_factory is None
    store = PendingLaunchStore(
        session_factory or get_session_factory(),
        ttl_seconds=settings.pending_launch_ttl,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if owns_engine and db_settings.create_schema:
            await create_schema()
        yield
        if _app.state.key_cache is not None:
            await _app.state.key_cache.aclose()
        if owns_engine:
            await dispose_engine()

    app = FastAPI(
        title="LTIGATE LTI 1.3 Tool Launch",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.platform = config
    app.state.config_error = config_error
    app.state.pending_store = store
    app.state.key_cache = None
    app.state.login_initiator = None
    app.state.validator = None
    if config is not None:
        key_cache = key_cache or JWKSKeyCache(
            config.jwks_uri, http_client=http_client, timeout=settings.jwks_timeout
        )
        app.state.key_cache = key_cache
        app.state.login_initiator = LoginInitiator(config, store)
        app.state.validator = LaunchValidator(
            config, key_cache, store, clock_skew=settings.clock_skew
        )

    origins = settings.get_cors_origin_list()
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["Authorization", "Content-Type"],
        )

    app.add_exception_handler(ConfigError, _config_error)
    app.add_exception_handler(KeyFetchError, _key_fetch_error)
    app.add_exception_handler(ValidationInputError, _input_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)

    app.include_router(login_router)
    app.include_router(launch_router)
    app.include_router(callback_router)

    return app
