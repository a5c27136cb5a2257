"""Pydantic request and response bodies for the LTI endpoints."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ltigate.lti.types import LaunchSession


def _to_camel(name: str) -> str:
    """Convert snake_case to camelCase for JSON serialization."""
    parts = name.split("_")
    return parts[0] + "".join(p.capitalize() for p in parts[1:])


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=_to_camel, populate_by_name=True)


class LoginRequest(_CamelModel):
    """Body for POST /lti/login."""

    target_url: str | None = None
    login_hint: str | None = None


class LoginResponse(_CamelModel):
    auth_url: str
    state: str
    nonce: str
    redirect_uri: str


class LaunchRequest(BaseModel):
    """Body for POST /lti/launch.

    ``nonce`` is accepted for compatibility and ignored: the nonce is
    always taken from the pending launch.
    """

    id_token: str = Field(
        min_length=1, validation_alias=AliasChoices("id_token", "idToken")
    )
    state: str = Field(min_length=1)
    nonce: str | None = None


class LaunchResponse(_CamelModel):
    success: bool = True
    session: LaunchSession
    launch_url: str
    target_link_uri: str | None = None


class LaunchRejectedResponse(BaseModel):
    success: bool = False
    error: str
    details: list[str] = Field(default_factory=list)
