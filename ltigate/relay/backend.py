"""How the relay reaches the login and launch endpoints."""

import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from ltigate.lti.errors import (
    ConfigError,
    KeyFetchError,
    LaunchError,
    ValidationInputError,
)
from ltigate.lti.types import LaunchResult, LaunchSession, LoginResult

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_BAD_REQUEST = 400
HTTP_FORBIDDEN = 403
HTTP_SERVER_ERROR = 500

# Error kinds a 500 body may name
_SERVER_ERRORS: dict[str, type[LaunchError]] = {
    ConfigError.kind: ConfigError,
    KeyFetchError.kind: KeyFetchError,
}


class LaunchBackend(Protocol):
    async def start_login(
        self, target_url: str | None, login_hint: str | None
    ) -> LoginResult: ...

    async def validate_launch(self, id_token: str, state: str) -> LaunchResult: ...


def _error_body(response: httpx.Response) -> tuple[str, str, list[str]]:
    """Return (error, message, details) from an error response."""
    fallback = f"HTTP {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return fallback, fallback, []
    if not isinstance(body, dict):
        return fallback, fallback, []
    error = str(body.get("error") or fallback)
    message = str(body.get("message") or error)
    return error, message, [str(d) for d in body.get("details") or []]


def _server_error(response: httpx.Response) -> LaunchError:
    error, message, details = _error_body(response)
    error_cls = _SERVER_ERRORS.get(error, LaunchError)
    return error_cls(message, details=details or None)


def _json_object(response: httpx.Response, path: str) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as exc:
        raise LaunchError(
            "Launch service returned an unreadable response",
            details=[f"{path}: body is not JSON"],
        ) from exc
    if not isinstance(data, dict):
        raise LaunchError(
            "Launch service returned an unreadable response",
            details=[f"{path}: body is not a JSON object"],
        )
    return data


class HttpLaunchBackend:
    """Calls POST /lti/login and POST /lti/launch over HTTP.

    ``client`` must be configured with the tool's base URL.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _post(self, path: str, body: dict[str, Any]) -> httpx.Response:
        try:
            return await self._client.post(path, json=body)
        except httpx.HTTPError as exc:
            logger.error("Launch service request to %s failed: %s", path, exc)
            raise LaunchError(
                "Launch service unreachable", details=[f"{path}: {exc}"]
            ) from exc

    async def start_login(
        self, target_url: str | None, login_hint: str | None
    ) -> LoginResult:
        path = "/lti/login"
        response = await self._post(
            path, {"targetUrl": target_url, "loginHint": login_hint}
        )
        if response.status_code == HTTP_SERVER_ERROR:
            raise _server_error(response)
        if response.status_code != HTTP_OK:
            _, message, details = _error_body(response)
            raise LaunchError(message, details=details or None)

        data = _json_object(response, path)
        try:
            return LoginResult(
                auth_url=data["authUrl"],
                state=data["state"],
                nonce=data["nonce"],
                redirect_uri=data["redirectUri"],
            )
        except (KeyError, ValidationError) as exc:
            raise LaunchError(
                "Launch service returned no authorization request",
                details=[f"{path}: response is missing login fields"],
            ) from exc

    async def validate_launch(self, id_token: str, state: str) -> LaunchResult:
        path = "/lti/launch"
        response = await self._post(path, {"id_token": id_token, "state": state})
        if response.status_code == HTTP_OK:
            data = _json_object(response, path)
            try:
                session = LaunchSession.model_validate(data["session"])
            except (KeyError, ValidationError) as exc:
                raise LaunchError(
                    "Launch service returned no session",
                    details=[f"{path}: response is missing the session"],
                ) from exc
            return LaunchResult(success=True, session=session)

        if response.status_code == HTTP_FORBIDDEN:
            error, _, details = _error_body(response)
            return LaunchResult(success=False, error=error, details=details)
        if response.status_code == HTTP_BAD_REQUEST:
            error, _, details = _error_body(response)
            raise ValidationInputError(error, details=details or None)
        if response.status_code == HTTP_SERVER_ERROR:
            raise _server_error(response)
        _, message, details = _error_body(response)
        raise LaunchError(message, details=details or None)
