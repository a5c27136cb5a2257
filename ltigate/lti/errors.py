"""Error taxonomy for the LTI launch protocol."""

from typing import ClassVar


class LaunchError(Exception):
    """Base class for every launch protocol failure."""

    kind: ClassVar[str] = "LaunchError"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = list(details) if details else [message]


class ConfigError(LaunchError):
    """Platform configuration is missing or incomplete."""

    kind = "ConfigError"


class ValidationInputError(LaunchError):
    """The request does not have the expected shape."""

    kind = "ValidationInputError"


class AuthError(LaunchError):
    """The launch could not be authenticated. Never retried."""

    kind = "AuthError"


class FormatError(AuthError):
    kind = "FormatError"


class SignatureError(AuthError):
    kind = "SignatureError"


class ClaimError(AuthError):
    kind = "ClaimError"


class ReplayOrExpiredError(AuthError):
    kind = "ReplayOrExpiredError"


class KeyResolutionError(LaunchError):
    """The platform signing key could not be obtained."""

    kind = "KeyResolutionError"


class KeyFetchError(KeyResolutionError):
    kind = "KeyFetchError"


class UnknownKeyError(KeyResolutionError):
    kind = "UnknownKeyError"


class RelayError(LaunchError):
    """Browser-side failure; the user can retry or open the tool directly."""

    kind = "RelayError"


class PopupBlockedError(RelayError):
    kind = "PopupBlockedError"


class PlatformError(RelayError):
    """The platform answered the authorization request with an OIDC error."""

    kind = "PlatformError"


class RelayTimeoutError(RelayError):
    kind = "TimeoutError"


class UserCancelledError(RelayError):
    kind = "UserCancelledError"


class ListenerBusyError(RelayError):
    """Another launch attempt is still listening on the channel."""

    kind = "ListenerBusyError"
