"""Verifying the HS256 tokens that sign delayed completion callbacks.

QStash signs every callback it delivers with an ``Upstash-Signature`` header:
an HS256 JWT whose ``body`` claim is the base64url SHA-256 digest of the raw
request body. Two signing keys are live at any time (current and next) so
keys can be rotated without dropping callbacks.
"""

import base64
import hashlib
import hmac
import json
import time
from typing import Any

CALLBACK_ISSUER = "Upstash"


class JwtError(Exception):
    pass


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def body_digest(body: bytes) -> str:
    return b64url_encode(hashlib.sha256(body).digest())


def decode_jwt(token: str, secret: str, leeway_s: int = 0) -> dict[str, Any]:
    try:
        encoded_header, encoded_payload, encoded_signature = token.split(".")
    except ValueError as exc:
        raise JwtError("Malformed JWT") from exc

    signing_input = f"{encoded_header}.{encoded_payload}".encode()
    expected_sig = hmac.new(secret.encode(), signing_input, hashlib.sha256).digest()
    if not hmac.compare_digest(b64url_encode(expected_sig), encoded_signature):
        raise JwtError("Invalid JWT signature")

    try:
        payload = json.loads(b64url_decode(encoded_payload))
    except ValueError as exc:
        raise JwtError("Malformed JWT payload") from exc
    if not isinstance(payload, dict):
        raise JwtError("Malformed JWT payload")

    now = int(time.time())
    exp = payload.get("exp")
    if not isinstance(exp, int) or exp + leeway_s < now:
        raise JwtError("Expired JWT")
    nbf = payload.get("nbf")
    if isinstance(nbf, int) and nbf - leeway_s > now:
        raise JwtError("JWT not yet valid")

    return payload


def verify_callback_signature(
    signature: str,
    body: bytes,
    signing_keys: tuple[str, ...],
    leeway_s: int = 0,
) -> dict[str, Any]:
    """Accept ``signature`` if any configured key validates it for ``body``."""
    last_error = JwtError("No signing key configured")
    for key in signing_keys:
        if not key:
            continue
        try:
            claims = decode_jwt(signature, key, leeway_s=leeway_s)
        except JwtError as err:
            last_error = err
            continue

        if claims.get("iss") != CALLBACK_ISSUER:
            raise JwtError("Invalid JWT issuer")
        claimed_digest = str(claims.get("body", "")).rstrip("=")
        if not hmac.compare_digest(claimed_digest, body_digest(body)):
            raise JwtError("Body digest mismatch")
        return claims

    raise last_error
