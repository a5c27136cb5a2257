"""FastAPI dependencies handing out the launch components built at startup."""

from typing import Annotated

from fastapi import Depends, Request

from ltigate.core.settings import PlatformConfig
from ltigate.lti.errors import ConfigError
from ltigate.lti.login import LoginInitiator
from ltigate.lti.validator import LaunchValidator


def get_platform_config(request: Request) -> PlatformConfig:
    """Return the boot-time platform configuration, or its boot failure."""
    config: PlatformConfig | None = request.app.state.platform
    if config is None:
        boot_error: ConfigError = request.app.state.config_error
        raise ConfigError(boot_error.message, details=boot_error.details)
    return config


Platform = Annotated[PlatformConfig, Depends(get_platform_config)]


def get_login_initiator(request: Request, _config: Platform) -> LoginInitiator:
    return request.app.state.login_initiator


def get_launch_validator(request: Request, _config: Platform) -> LaunchValidator:
    return request.app.state.validator
