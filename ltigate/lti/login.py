"""Third-party-initiated OIDC login: builds the platform authorization request."""

import logging
import secrets
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ltigate.core.settings import PlatformConfig
from ltigate.lti.pending_store import PendingLaunchStore
from ltigate.lti.types import LoginResult

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
DEFAULT_LOGIN_HINT = "auto"


def generate_state() -> str:
    """Generate a cryptographically random OIDC state value."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def generate_nonce() -> str:
    """Generate a cryptographically random OIDC nonce value."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def build_authorization_url(endpoint: str, params: dict[str, str]) -> str:
    """Add ``params`` to the endpoint, keeping any query it already has."""
    parts = urlsplit(endpoint)
    query = [(k, v) for k, v in parse_qsl(parts.query) if k not in params]
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query, safe=":/")))


class LoginInitiator:
    """Starts a launch: records the pending attempt and builds the auth URL."""

    def __init__(self, config: PlatformConfig, store: PendingLaunchStore) -> None:
        self._config = config
        self._store = store

    async def initiate(
        self,
        target_url: str | None = None,
        login_hint: str | None = None,
    ) -> LoginResult:
        state = generate_state()
        nonce = generate_nonce()
        hint = login_hint or DEFAULT_LOGIN_HINT
        await self._store.create(
            state, nonce, target_url=target_url, login_hint=hint
        )

        params = {
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri,
            "response_type": "id_token",
            "response_mode": "form_post",
            "scope": "openid",
            "prompt": "none",
            "state": state,
            "nonce": nonce,
            "login_hint": hint,
        }
        if target_url:
            params["lti_message_hint"] = target_url

        logger.info(
            "Initiating LTI login for client %s (state %s...)",
            self._config.client_id,
            state[:8],
        )
        return LoginResult(
            auth_url=build_authorization_url(
                self._config.authorization_endpoint, params
            ),
            state=state,
            nonce=nonce,
            redirect_uri=self._config.redirect_uri,
        )
