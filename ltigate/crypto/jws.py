"""Compact JWS parsing and signature verification."""

import json
from typing import Any

import jwt

from ltigate.crypto.types import SigningKey
from ltigate.lti.errors import FormatError, SignatureError

JWS_SEGMENTS = 3


class TokenHeader(dict[str, Any]):
    """Decoded JOSE header with the two fields verification depends on."""

    @property
    def kid(self) -> str:
        return self["kid"]

    @property
    def alg(self) -> str:
        return self["alg"]


def read_header(token: str) -> TokenHeader:
    """Check the token's shape and return its header. Nothing is trusted yet."""
    segments = token.split(".")
    if len(segments) != JWS_SEGMENTS or not all(segments):
        raise FormatError(
            "Malformed ID token",
            details=[f"Expected {JWS_SEGMENTS} non-empty segments"],
        )
    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError as exc:
        raise FormatError(
            "Malformed ID token", details=["Header is not valid base64url JSON"]
        ) from exc

    missing = [
        name for name in ("kid", "alg") if not isinstance(header.get(name), str)
    ]
    if missing:
        raise FormatError(
            "Malformed ID token",
            details=[f"Header has no {name}" for name in missing],
        )
    return TokenHeader(header)


def verify_signature(token: str, header: TokenHeader, key: SigningKey) -> bytes:
    """Verify the signature with the key's own algorithm and return the payload.

    The header's ``alg`` must match the algorithm bound to the key; the
    header never chooses the algorithm on its own.
    """
    if header.alg != key.algorithm:
        raise SignatureError(
            "ID token signature rejected",
            details=[
                f"Token alg {header.alg} does not match key {key.kid} "
                f"alg {key.algorithm}"
            ],
        )
    try:
        return jwt.PyJWS().decode(
            token, key.key_material, algorithms=[key.algorithm]
        )
    except jwt.InvalidSignatureError as exc:
        raise SignatureError(
            "ID token signature rejected",
            details=[f"Signature does not verify with key {key.kid}"],
        ) from exc
    except jwt.InvalidAlgorithmError as exc:
        raise SignatureError(
            "ID token signature rejected",
            details=[f"Algorithm {header.alg} is not allowed"],
        ) from exc
    except jwt.PyJWTError as exc:
        raise FormatError(
            "Malformed ID token", details=["Token segments could not be decoded"]
        ) from exc


def decode_payload(payload: bytes) -> dict[str, Any]:
    """Parse verified payload bytes into a claims mapping."""
    try:
        claims = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FormatError(
            "Malformed ID token", details=["Payload is not JSON"]
        ) from exc
    if not isinstance(claims, dict):
        raise FormatError(
            "Malformed ID token", details=["Payload is not a JSON object"]
        )
    return claims
