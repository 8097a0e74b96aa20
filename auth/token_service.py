from __future__ import annotations

import re
import time

from auth import signed_token
from auth.models import AccessTokenClaims, RefreshTokenClaims
from codegrant.constants import DEFAULT_ACCESS_TOKEN_EXPIRY, DEFAULT_REFRESH_TOKEN_EXPIRY

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
DEFAULT_DURATION_SECONDS = 3600

_DURATION_RE = re.compile(r"(\d+)([smhd])", re.ASCII)
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str) -> int:
    """Convert ``30s`` / ``15m`` / ``2h`` / ``7d`` to seconds; anything else is 3600."""
    match = _DURATION_RE.fullmatch(value or "")
    if match is None:
        return DEFAULT_DURATION_SECONDS
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


class TokenService:
    def __init__(
        self,
        secret: str,
        *,
        access_token_expiry: str = DEFAULT_ACCESS_TOKEN_EXPIRY,
        refresh_token_expiry: str = DEFAULT_REFRESH_TOKEN_EXPIRY,
        clock=time.time,
    ) -> None:
        if not secret:
            raise RuntimeError("Token signing secret must not be empty.")
        self._secret = secret
        self._clock = clock
        self.access_token_ttl = parse_duration(access_token_expiry)
        self.refresh_token_ttl = parse_duration(refresh_token_expiry)

    def sign_access_token(
        self,
        user_id: str,
        email: str,
        client_id: str,
        ttl: int | None = None,
    ) -> str:
        now = int(self._clock())
        payload = {
            "sub": user_id,
            "email": email,
            "client_id": client_id,
            "type": ACCESS_TOKEN_TYPE,
            "iat": now,
            "exp": now + (self.access_token_ttl if ttl is None else ttl),
        }
        return signed_token.encode(payload, self._secret)

    def sign_refresh_token(self, user_id: str, ttl: int | None = None) -> str:
        now = int(self._clock())
        payload = {
            "sub": user_id,
            "type": REFRESH_TOKEN_TYPE,
            "iat": now,
            "exp": now + (self.refresh_token_ttl if ttl is None else ttl),
        }
        return signed_token.encode(payload, self._secret)

    def verify_access_token(self, token: str) -> AccessTokenClaims | None:
        payload = self._verify(token, ACCESS_TOKEN_TYPE)
        if payload is None:
            return None
        email = payload.get("email")
        client_id = payload.get("client_id")
        if not isinstance(email, str) or not isinstance(client_id, str):
            return None
        return AccessTokenClaims(
            subject=payload["sub"],
            email=email,
            client_id=client_id,
            issued_at=payload["iat"],
            expires_at=payload["exp"],
        )

    def verify_refresh_token(self, token: str) -> RefreshTokenClaims | None:
        payload = self._verify(token, REFRESH_TOKEN_TYPE)
        if payload is None:
            return None
        return RefreshTokenClaims(
            subject=payload["sub"],
            issued_at=payload["iat"],
            expires_at=payload["exp"],
        )

    def _verify(self, token: str, expected_type: str) -> dict | None:
        if not isinstance(token, str) or not token:
            return None
        try:
            payload = signed_token.decode(token, self._secret)
        except signed_token.SignedTokenError:
            return None

        if payload.get("type") != expected_type:
            return None
        if not isinstance(payload.get("sub"), str) or not payload["sub"]:
            return None
        issued_at = payload.get("iat")
        expires_at = payload.get("exp")
        if not _is_number(issued_at) or not _is_number(expires_at):
            return None
        if self._clock() >= expires_at:
            return None
        return payload


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
