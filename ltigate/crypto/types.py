"""Type definitions for platform signing keys and key sets."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SigningKey(BaseModel):
    """A platform public key usable for exactly one algorithm."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kid: str
    algorithm: str
    key_material: Any = Field(repr=False)


class JWKSDocument(BaseModel):
    """JSON Web Key Set as published by the platform."""

    model_config = ConfigDict(extra="allow")

    keys: list[Any]
