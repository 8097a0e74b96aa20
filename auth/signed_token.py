from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json

ALGORITHM = "HS256"
_HEADER = {"alg": ALGORITHM, "typ": "JWT"}


class SignedTokenError(RuntimeError):
    pass


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    try:
        return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    except (binascii.Error, ValueError) as error:
        raise SignedTokenError("Invalid token encoding.") from error


def _sign(signing_input: bytes, key: str) -> bytes:
    return hmac.new(key.encode("utf-8"), signing_input, hashlib.sha256).digest()


def encode(payload: dict, key: str) -> str:
    header_b64 = _b64encode(json.dumps(_HEADER, separators=(",", ":")).encode())
    payload_b64 = _b64encode(json.dumps(payload, separators=(",", ":")).encode())
    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    return f"{header_b64}.{payload_b64}.{_b64encode(_sign(signing_input, key))}"


def decode(token: str, key: str) -> dict:
    """Verify an HS256 JWS and return its payload.

    Only ``alg == "HS256"`` is accepted, whatever the header claims, so
    ``none`` and asymmetric algorithms never reach signature checking.
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise SignedTokenError("Invalid token format.")
    header_b64, payload_b64, sig_b64 = parts

    try:
        header = json.loads(_b64decode(header_b64))
    except (UnicodeDecodeError, json.JSONDecodeError) as error:
        raise SignedTokenError("Invalid token header.") from error
    if not isinstance(header, dict) or header.get("alg") != ALGORITHM:
        raise SignedTokenError("Unexpected token algorithm.")

    signing_input = f"{header_b64}.{payload_b64}".encode("ascii", errors="replace")
    if not hmac.compare_digest(_sign(signing_input, key), _b64decode(sig_b64)):
        raise SignedTokenError("Token signature verification failed.")

    try:
        payload = json.loads(_b64decode(payload_b64))
    except (UnicodeDecodeError, json.JSONDecodeError) as error:
        raise SignedTokenError("Invalid token payload.") from error
    if not isinstance(payload, dict):
        raise SignedTokenError("Invalid token payload.")
    return payload
