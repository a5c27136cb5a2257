"""Conversion of published JWK entries into verification keys."""

from collections.abc import Mapping
from typing import Any

import jwt

from ltigate.crypto.types import SigningKey

SIGNATURE_USE = "sig"
_SYMMETRIC_KTY = "oct"


class UnusableKeyError(ValueError):
    """A JWK entry that cannot be used to verify platform signatures."""


def jwk_to_signing_key(entry: Mapping[str, Any]) -> SigningKey:
    """Parse one JWK entry. Raises UnusableKeyError for anything but a
    public signature key with an id and an asymmetric algorithm."""
    kid = entry.get("kid")
    if not isinstance(kid, str) or not kid:
        raise UnusableKeyError("key has no kid")
    if entry.get("kty") == _SYMMETRIC_KTY:
        raise UnusableKeyError(f"key {kid} is symmetric")
    use = entry.get("use")
    if use is not None and use != SIGNATURE_USE:
        raise UnusableKeyError(f"key {kid} is not a signature key")

    try:
        parsed = jwt.PyJWK(dict(entry))
    except (jwt.PyJWKError, jwt.InvalidKeyError, ValueError, TypeError) as exc:
        raise UnusableKeyError(f"key {kid} could not be parsed: {exc}") from exc

    algorithm = parsed.algorithm_name
    if algorithm == "none" or algorithm.startswith("HS"):
        raise UnusableKeyError(f"key {kid} declares unsupported alg {algorithm}")
    return SigningKey(kid=kid, algorithm=algorithm, key_material=parsed.key)


def parse_key_set(
    entries: list[Any],
) -> tuple[dict[str, SigningKey], list[str]]:
    """Parse every usable entry. Returns keys by kid and the skip reasons."""
    keys: dict[str, SigningKey] = {}
    skipped: list[str] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            skipped.append("key entry is not an object")
            continue
        try:
            key = jwk_to_signing_key(entry)
        except UnusableKeyError as exc:
            skipped.append(str(exc))
            continue
        keys[key.kid] = key
    return keys, skipped
