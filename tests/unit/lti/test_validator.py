"""Tests for ID token validation."""

from datetime import UTC, datetime

import pytest

from ltigate.core.settings import PlatformConfig
from ltigate.crypto.jwks_cache import JWKSKeyCache
from ltigate.lti.errors import KeyFetchError
from ltigate.lti.pending_store import PendingLaunchStore
from ltigate.lti.types import DEPLOYMENT_ID_CLAIM
from ltigate.lti.validator import LaunchValidator
from tests.fakes import (
    CLIENT_ID,
    DEPLOYMENT_ID,
    INSTRUCTOR_ROLE,
    ISSUER,
    LAUNCH_URL,
    FakePlatform,
    generate_rsa_key,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
NOW_TS = NOW.timestamp()
STATE = "state-abc"
NONCE = "nonce-abc"


@pytest.fixture
def validator(
    platform_config: PlatformConfig,
    key_cache: JWKSKeyCache,
    store: PendingLaunchStore,
) -> LaunchValidator:
    return LaunchValidator(
        platform_config, key_cache, store, clock_skew=300, clock=lambda: NOW
    )


@pytest.fixture
async def pending(store: PendingLaunchStore) -> None:
    await store.create(STATE, NONCE, target_url=LAUNCH_URL)


def _token(platform: FakePlatform, **overrides: object) -> str:
    return platform.sign(platform.claims(NONCE, now=NOW_TS, **overrides))


@pytest.mark.usefixtures("pending")
class TestAcceptedLaunch:
    """A correctly signed launch for the configured platform."""

    async def test_builds_session(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        result = await validator.validate(_token(platform), STATE)

        assert result.success is True
        assert result.error is None
        session = result.session
        assert session is not None
        assert session.issuer == ISSUER
        assert session.deployment_id == DEPLOYMENT_ID
        assert session.subject == "moodle-user-42"
        assert session.context_id == "course-7"
        assert session.context_title == "Physics 101"
        assert session.resource_link_id == "link-3"
        assert session.resource_link_title == "Lab notebook"
        assert session.roles == [INSTRUCTOR_ROLE]
        assert session.launch_url == LAUNCH_URL
        assert session.target_link_uri == "https://tool.example/app"
        assert session.validated_at == NOW

    async def test_string_audience(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        result = await validator.validate(_token(platform, aud=CLIENT_ID), STATE)
        assert result.success is True

    async def test_azp_optional(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        claims = platform.claims(NONCE, now=NOW_TS)
        del claims["azp"]
        result = await validator.validate(platform.sign(claims), STATE)
        assert result.success is True

    async def test_rotated_key_fetched_on_demand(
        self,
        validator: LaunchValidator,
        platform: FakePlatform,
        key_cache: JWKSKeyCache,
    ) -> None:
        await key_cache.refresh()
        platform.rotate("platform-key-2")

        result = await validator.validate(_token(platform), STATE)

        assert result.success is True
        assert platform.jwks_requests == 2


@pytest.mark.usefixtures("pending")
class TestClockSkew:
    """exp and iat are checked with a five minute tolerance."""

    async def test_expired_within_skew_accepted(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        token = _token(platform, exp=int(NOW_TS) - 299)
        assert (await validator.validate(token, STATE)).success is True

    async def test_expired_beyond_skew_rejected(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        token = _token(platform, exp=int(NOW_TS) - 301)
        result = await validator.validate(token, STATE)
        assert result.success is False
        assert result.error == "ClaimError"
        assert any("expired" in d for d in result.details)

    async def test_issued_in_future_rejected(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        token = _token(platform, iat=int(NOW_TS) + 301)
        result = await validator.validate(token, STATE)
        assert result.success is False
        assert any("future" in d for d in result.details)

    async def test_issued_slightly_ahead_accepted(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        token = _token(platform, iat=int(NOW_TS) + 299)
        assert (await validator.validate(token, STATE)).success is True


@pytest.mark.usefixtures("pending")
class TestClaimRejections:
    """Registered and LTI claims that do not match the registration."""

    async def test_nonce_mismatch(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        token = platform.sign(platform.claims("other-nonce", now=NOW_TS))
        result = await validator.validate(token, STATE)
        assert result.success is False
        assert result.error == "ClaimError"
        assert "Nonce does not match the pending launch" in result.details

    async def test_wrong_issuer(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        result = await validator.validate(
            _token(platform, iss="https://evil.example"), STATE
        )
        assert result.success is False
        assert any("Invalid issuer" in d for d in result.details)

    async def test_wrong_audience(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        result = await validator.validate(
            _token(platform, aud=["someone-else"], azp=None), STATE
        )
        assert result.success is False
        assert any("Invalid audience" in d for d in result.details)

    async def test_wrong_azp(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        result = await validator.validate(
            _token(platform, azp="someone-else"), STATE
        )
        assert result.success is False
        assert any("Invalid azp" in d for d in result.details)

    async def test_all_claim_errors_reported(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        token = platform.sign(
            platform.claims(
                "other-nonce",
                now=NOW_TS,
                iss="https://evil.example",
                exp=int(NOW_TS) - 3600,
            )
        )
        result = await validator.validate(token, STATE)
        assert len(result.details) == 3

    async def test_missing_subject(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        claims = platform.claims(NONCE, now=NOW_TS)
        del claims["sub"]
        result = await validator.validate(platform.sign(claims), STATE)
        assert result.success is False
        assert "Missing sub claim" in result.details

    async def test_deployment_mismatch(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        token = _token(platform, **{DEPLOYMENT_ID_CLAIM: "dep-other"})
        result = await validator.validate(token, STATE)
        assert result.success is False
        assert result.error == "ClaimError"
        assert any("deployment_id" in d for d in result.details)


class TestSignatureAndKeys:
    """Signature and key resolution failures."""

    @pytest.mark.usefixtures("pending")
    async def test_unknown_kid(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        token = platform.sign(platform.claims(NONCE, now=NOW_TS), kid="ghost")
        result = await validator.validate(token, STATE)
        assert result.success is False
        assert result.error == "UnknownKeyError"

    @pytest.mark.usefixtures("pending")
    async def test_bad_signature_does_not_consume_state(
        self,
        validator: LaunchValidator,
        platform: FakePlatform,
        store: PendingLaunchStore,
    ) -> None:
        forged = platform.sign(
            platform.claims(NONCE, now=NOW_TS), key=generate_rsa_key()
        )
        result = await validator.validate(forged, STATE)
        assert result.success is False
        assert result.error == "SignatureError"

        assert (await validator.validate(_token(platform), STATE)).success is True

    @pytest.mark.usefixtures("pending")
    async def test_symmetric_algorithm_rejected(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        token = platform.sign(
            platform.claims(NONCE, now=NOW_TS),
            key="a-shared-secret-of-at-least-32-bytes!",
            algorithm="HS256",
        )
        result = await validator.validate(token, STATE)
        assert result.success is False
        assert result.error == "SignatureError"

    @pytest.mark.usefixtures("pending")
    async def test_key_fetch_failure_propagates(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        platform.jwks_status = 503
        with pytest.raises(KeyFetchError):
            await validator.validate(_token(platform), STATE)


class TestFormatAndReplay:
    """Malformed tokens and reused or unknown state."""

    @pytest.mark.parametrize(
        "token", ["", "not-a-jwt", "a.b", "a..c", "e30.e30.sig.extra"]
    )
    async def test_malformed_token(
        self, validator: LaunchValidator, token: str
    ) -> None:
        result = await validator.validate(token, STATE)
        assert result.success is False
        assert result.error == "FormatError"

    @pytest.mark.usefixtures("pending")
    async def test_non_string_claim_rejected(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        result = await validator.validate(_token(platform, sub=["x"]), STATE)
        assert result.success is False
        assert result.error == "FormatError"

    @pytest.mark.usefixtures("pending")
    @pytest.mark.parametrize("claim", ["exp", "iat"])
    async def test_numeric_date_as_string_rejected(
        self, validator: LaunchValidator, platform: FakePlatform, claim: str
    ) -> None:
        token = _token(platform, **{claim: str(int(NOW_TS))})
        result = await validator.validate(token, STATE)
        assert result.success is False
        assert result.error == "FormatError"
        assert result.details == [f"Claim {claim} has an unexpected type"]

    @pytest.mark.usefixtures("pending")
    async def test_replay_rejected(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        token = _token(platform)
        assert (await validator.validate(token, STATE)).success is True

        replay = await validator.validate(token, STATE)
        assert replay.success is False
        assert replay.error == "ReplayOrExpiredError"

    async def test_unknown_state(
        self, validator: LaunchValidator, platform: FakePlatform
    ) -> None:
        result = await validator.validate(_token(platform), "never-issued")
        assert result.success is False
        assert result.error == "ReplayOrExpiredError"
