"""Type definitions for pending launches, launch claims and sessions."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt

LTI_CLAIM_PREFIX = "https://purl.imsglobal.org/spec/lti/claim/"
DEPLOYMENT_ID_CLAIM = f"{LTI_CLAIM_PREFIX}deployment_id"
CONTEXT_CLAIM = f"{LTI_CLAIM_PREFIX}context"
RESOURCE_LINK_CLAIM = f"{LTI_CLAIM_PREFIX}resource_link"
ROLES_CLAIM = f"{LTI_CLAIM_PREFIX}roles"
TARGET_LINK_URI_CLAIM = f"{LTI_CLAIM_PREFIX}target_link_uri"
MESSAGE_TYPE_CLAIM = f"{LTI_CLAIM_PREFIX}message_type"
VERSION_CLAIM = f"{LTI_CLAIM_PREFIX}version"


class PendingLaunch(BaseModel):
    """An in-flight login attempt awaiting the platform's response."""

    model_config = ConfigDict(from_attributes=True)

    state: str
    nonce: str
    created_at: datetime
    expires_at: datetime
    target_url: str | None = None
    login_hint: str | None = None
    consumed: bool = False

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return True once the expiry instant has passed."""
        now = now or datetime.now(UTC)
        expiry = self.expires_at
        if expiry.tzinfo is None:
            now = now.replace(tzinfo=None)
        return now >= expiry


class ContextClaim(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    label: str | None = None
    title: str | None = None


class ResourceLinkClaim(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    title: str | None = None
    description: str | None = None


class LaunchClaims(BaseModel):
    """ID token payload. Untrusted until the validator accepts it."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    iss: str | None = None
    aud: str | list[str] | None = None
    azp: str | None = None
    exp: StrictInt | StrictFloat | None = None
    iat: StrictInt | StrictFloat | None = None
    nonce: str | None = None
    sub: str | None = None
    deployment_id: str | None = Field(default=None, alias=DEPLOYMENT_ID_CLAIM)
    context: ContextClaim | None = Field(default=None, alias=CONTEXT_CLAIM)
    resource_link: ResourceLinkClaim | None = Field(
        default=None, alias=RESOURCE_LINK_CLAIM
    )
    roles: list[str] = Field(default_factory=list, alias=ROLES_CLAIM)
    target_link_uri: str | None = Field(default=None, alias=TARGET_LINK_URI_CLAIM)
    message_type: str | None = Field(default=None, alias=MESSAGE_TYPE_CLAIM)
    version: str | None = Field(default=None, alias=VERSION_CLAIM)

    @property
    def audiences(self) -> list[str]:
        if self.aud is None:
            return []
        if isinstance(self.aud, str):
            return [self.aud]
        return list(self.aud)

    @property
    def context_id(self) -> str | None:
        return self.context.id if self.context else None

    @property
    def resource_link_id(self) -> str | None:
        return self.resource_link.id if self.resource_link else None

    @property
    def resource_link_title(self) -> str | None:
        return self.resource_link.title if self.resource_link else None


class LaunchSession(BaseModel):
    """A verified launch, handed to the caller to open the tool."""

    model_config = ConfigDict(frozen=True)

    issuer: str
    deployment_id: str
    subject: str
    context_id: str | None = None
    context_title: str | None = None
    resource_link_id: str | None = None
    resource_link_title: str | None = None
    roles: list[str] = Field(default_factory=list)
    validated_at: datetime
    launch_url: str
    target_link_uri: str | None = None


class LoginResult(BaseModel):
    """Outcome of a third-party-initiated login."""

    auth_url: str
    state: str
    nonce: str
    redirect_uri: str


class LaunchResult(BaseModel):
    """Outcome of validating an ID token."""

    success: bool
    session: LaunchSession | None = None
    error: str | None = None
    details: list[str] = Field(default_factory=list)
