"""ID token validation for LTI 1.3 resource launches."""

import logging
import secrets
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import ValidationError

from ltigate.core.settings import CLOCK_SKEW_DEFAULT, PlatformConfig
from ltigate.crypto.jwks_cache import JWKSKeyCache
from ltigate.crypto.jws import decode_payload, read_header, verify_signature
from ltigate.lti.errors import (
    AuthError,
    ClaimError,
    FormatError,
    ReplayOrExpiredError,
    UnknownKeyError,
)
from ltigate.lti.pending_store import PendingLaunchStore
from ltigate.lti.types import LaunchClaims, LaunchResult, LaunchSession, PendingLaunch

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def check_registered_claims(
    claims: LaunchClaims,
    config: PlatformConfig,
    pending: PendingLaunch,
    now: float,
    skew: int,
) -> list[str]:
    """Return every registered-claim mismatch; empty when all hold."""
    errors: list[str] = []

    if claims.iss != config.issuer:
        errors.append(f"Invalid issuer: expected {config.issuer}, got {claims.iss}")

    if config.client_id not in claims.audiences:
        errors.append(f"Invalid audience: {config.client_id} not in aud")

    if claims.azp is not None and claims.azp != config.client_id:
        errors.append(
            f"Invalid azp: expected {config.client_id}, got {claims.azp}"
        )

    if claims.exp is None:
        errors.append("Missing exp claim")
    elif claims.exp < now - skew:
        errors.append(f"Token expired: exp {int(claims.exp)}, now {int(now)}")

    if claims.iat is None:
        errors.append("Missing iat claim")
    elif claims.iat > now + skew:
        errors.append(
            f"Token issued in future: iat {int(claims.iat)}, now {int(now)}"
        )

    if claims.nonce is None:
        errors.append("Missing nonce claim")
    elif not secrets.compare_digest(claims.nonce.encode(), pending.nonce.encode()):
        errors.append("Nonce does not match the pending launch")

    if not claims.sub:
        errors.append("Missing sub claim")

    return errors


class LaunchValidator:
    """Turns a platform ID token into a LaunchSession, or says why not.

    Steps run in a fixed order and the first failing step ends validation:
    structure, signature, payload, pending launch, registered claims,
    deployment.
    """

    def __init__(
        self,
        config: PlatformConfig,
        key_cache: JWKSKeyCache,
        store: PendingLaunchStore,
        clock_skew: int = CLOCK_SKEW_DEFAULT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._key_cache = key_cache
        self._store = store
        self._skew = clock_skew
        self._clock = clock

    async def validate(self, id_token: str, state: str) -> LaunchResult:
        """Validate a launch. KeyFetchError propagates; other failures are
        reported in the result."""
        try:
            session = await self._validate(id_token, state)
        except (AuthError, UnknownKeyError) as exc:
            logger.warning(
                "LTI launch rejected (%s, state %s...): %s",
                exc.kind,
                state[:8],
                "; ".join(exc.details),
            )
            return LaunchResult(success=False, error=exc.kind, details=exc.details)

        logger.info(
            "LTI launch validated for deployment %s (state %s...)",
            session.deployment_id,
            state[:8],
        )
        return LaunchResult(success=True, session=session)

    async def _validate(self, id_token: str, state: str) -> LaunchSession:
        header = read_header(id_token)
        key = await self._key_cache.resolve(header.kid)
        payload = verify_signature(id_token, header, key)
        claims = self._parse_claims(payload)

        pending = await self._store.consume_if_valid(state)
        if pending is None:
            raise ReplayOrExpiredError(
                "Launch state is unknown, expired or already used",
                details=["No pending launch for this state"],
            )

        now = self._clock()
        errors = check_registered_claims(
            claims, self._config, pending, now.timestamp(), self._skew
        )
        if errors:
            raise ClaimError("Token validation failed", details=errors)

        if claims.deployment_id != self._config.deployment_id:
            raise ClaimError(
                "Token validation failed",
                details=[
                    f"Invalid deployment_id: expected {self._config.deployment_id},"
                    f" got {claims.deployment_id}"
                ],
            )

        return self._build_session(claims, now)

    @staticmethod
    def _parse_claims(payload: bytes) -> LaunchClaims:
        raw = decode_payload(payload)
        try:
            return LaunchClaims.model_validate(raw)
        except ValidationError as exc:
            fields = sorted(
                {".".join(str(p) for p in err["loc"]) for err in exc.errors()}
            )
            raise FormatError(
                "Malformed ID token",
                details=[f"Claim {name} has an unexpected type" for name in fields],
            ) from exc

    def _build_session(self, claims: LaunchClaims, now: datetime) -> LaunchSession:
        return LaunchSession(
            issuer=claims.iss or "",
            deployment_id=claims.deployment_id or "",
            subject=claims.sub or "",
            context_id=claims.context_id,
            context_title=claims.context.title if claims.context else None,
            resource_link_id=claims.resource_link_id,
            resource_link_title=claims.resource_link_title,
            roles=claims.roles,
            validated_at=now,
            launch_url=self._config.launch_url,
            target_link_uri=claims.target_link_uri,
        )
