"""Application settings loaded from environment variables."""

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict

from ltigate.lti.errors import ConfigError

PENDING_LAUNCH_TTL_DEFAULT = 180
CLOCK_SKEW_DEFAULT = 300
JWKS_TIMEOUT_DEFAULT = 10.0
RELAY_TIMEOUT_DEFAULT = 120.0
DB_POOL_SIZE_DEFAULT = 5
DB_MAX_OVERFLOW_DEFAULT = 10
DB_PORT_DEFAULT = 5432

CALLBACK_PATH = "/lti/callback"


class DatabaseSettings(BaseSettings):
    """Pending-launch database connection settings."""

    model_config = SettingsConfigDict(env_prefix="LTI_DB_")

    url: str = ""
    host: str = "localhost"
    port: int = DB_PORT_DEFAULT
    user: str = "lti"
    password: str = "lti"
    database: str = "lti"
    pool_size: int = DB_POOL_SIZE_DEFAULT
    max_overflow: int = DB_MAX_OVERFLOW_DEFAULT
    create_schema: bool = False

    @property
    def async_url(self) -> str:
        """Return the explicit URL, or build an async PostgreSQL one."""
        if self.url:
            return self.url
        return (
            f"postgresql+asyncpg://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )


class LTISettings(BaseSettings):
    """Platform registration and launch tuning."""

    model_config = SettingsConfigDict(env_prefix="LTI_")

    issuer: str = ""
    client_id: str = ""
    deployment_id: str = ""
    auth_url: str = ""
    jwks_url: str = ""
    launch_url: str = ""
    tool_origin: str = ""
    cors_origins: str = ""
    pending_launch_ttl: int = PENDING_LAUNCH_TTL_DEFAULT
    clock_skew: int = CLOCK_SKEW_DEFAULT
    jwks_timeout: float = JWKS_TIMEOUT_DEFAULT
    relay_timeout: float = RELAY_TIMEOUT_DEFAULT

    def get_cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins."""
        if not self.cors_origins:
            return []
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


class PlatformConfig(BaseModel):
    """Trusted platform registration, fixed for the life of the process."""

    model_config = ConfigDict(frozen=True)

    issuer: str
    client_id: str
    deployment_id: str
    authorization_endpoint: str
    jwks_uri: str
    launch_url: str
    tool_origin: str

    @property
    def redirect_uri(self) -> str:
        """Address the platform posts the ID token back to."""
        return f"{self.tool_origin.rstrip('/')}{CALLBACK_PATH}"


# PlatformConfig field -> LTISettings field
_REQUIRED_FIELDS = {
    "issuer": "issuer",
    "client_id": "client_id",
    "deployment_id": "deployment_id",
    "authorization_endpoint": "auth_url",
    "jwks_uri": "jwks_url",
    "launch_url": "launch_url",
    "tool_origin": "tool_origin",
}


def load_platform_config(settings: LTISettings) -> PlatformConfig:
    """Build the platform configuration, failing on any missing field."""
    values = {
        field: getattr(settings, source).strip()
        for field, source in _REQUIRED_FIELDS.items()
    }
    missing = [
        f"LTI_{source.upper()}"
        for field, source in _REQUIRED_FIELDS.items()
        if not values[field]
    ]
    if missing:
        raise ConfigError(
            "LTI configuration incomplete",
            details=[f"{name} is not set" for name in missing],
        )
    return PlatformConfig(**values)
