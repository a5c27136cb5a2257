"""Cache of a platform's published signing keys, refreshed on unknown kid."""

import asyncio
import logging

import httpx
from pydantic import ValidationError

from ltigate.core.settings import JWKS_TIMEOUT_DEFAULT
from ltigate.crypto.keys import parse_key_set
from ltigate.crypto.types import JWKSDocument, SigningKey
from ltigate.lti.errors import KeyFetchError, UnknownKeyError

logger = logging.getLogger(__name__)

FETCH_ATTEMPTS = 2


class JWKSKeyCache:
    """Maps key ids to public keys for one platform.

    The key set is only ever replaced wholesale by a successful fetch; a
    failed fetch leaves the previous set untouched and is reported to the
    caller rather than falling back to it.
    """

    def __init__(
        self,
        jwks_uri: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = JWKS_TIMEOUT_DEFAULT,
    ) -> None:
        self._jwks_uri = jwks_uri
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout
        self._keys: dict[str, SigningKey] = {}
        self._generation = 0
        self._refresh_lock = asyncio.Lock()

    def keys(self) -> dict[str, SigningKey]:
        """Snapshot of the cached keys."""
        return dict(self._keys)

    def clear(self) -> None:
        self._keys = {}

    async def resolve(self, kid: str) -> SigningKey:
        """Return the key for ``kid``, refreshing the set once on a miss."""
        key = self._keys.get(kid)
        if key is not None:
            return key

        await self._refresh(seen_generation=self._generation)
        key = self._keys.get(kid)
        if key is None:
            raise UnknownKeyError(
                "Signing key not found in platform key set",
                details=[f"No key with kid {kid!r} in {self._jwks_uri}"],
            )
        return key

    async def refresh(self) -> None:
        """Fetch the key set now and replace the cache."""
        await self._refresh(seen_generation=None)

    async def _refresh(self, seen_generation: int | None) -> None:
        async with self._refresh_lock:
            # Another caller refreshed while this one waited for the lock.
            if seen_generation is not None and self._generation != seen_generation:
                return
            document = await self._fetch()
            keys, skipped = parse_key_set(document.keys)
            for reason in skipped:
                logger.warning(
                    "Ignoring JWKS entry from %s: %s", self._jwks_uri, reason
                )
            self._keys = keys
            self._generation += 1
            logger.info(
                "Loaded %d signing key(s) from %s", len(keys), self._jwks_uri
            )

    async def _fetch(self) -> JWKSDocument:
        last_error: Exception | None = None
        for attempt in range(1, FETCH_ATTEMPTS + 1):
            try:
                response = await self._get()
            except httpx.TransportError as exc:
                last_error = exc
                logger.warning(
                    "JWKS fetch attempt %d/%d failed: %s",
                    attempt,
                    FETCH_ATTEMPTS,
                    exc,
                )
                continue
            return self._parse(response)

        logger.error("JWKS fetch from %s failed: %s", self._jwks_uri, last_error)
        raise KeyFetchError(
            "Failed to fetch platform key set",
            details=[f"Could not reach {self._jwks_uri}"],
        ) from last_error

    async def _get(self) -> httpx.Response:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return await self._client.get(self._jwks_uri, timeout=self._timeout)

    def _parse(self, response: httpx.Response) -> JWKSDocument:
        if not response.is_success:
            logger.error(
                "JWKS endpoint %s answered HTTP %d",
                self._jwks_uri,
                response.status_code,
            )
            raise KeyFetchError(
                "Failed to fetch platform key set",
                details=[f"{self._jwks_uri} answered HTTP {response.status_code}"],
            )
        try:
            return JWKSDocument.model_validate_json(response.content)
        except ValidationError as exc:
            logger.error("JWKS from %s is malformed", self._jwks_uri)
            raise KeyFetchError(
                "Platform key set is malformed",
                details=[f"{self._jwks_uri} did not return a JSON key set"],
            ) from exc

    async def aclose(self) -> None:
        """Close the HTTP client if this cache created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
