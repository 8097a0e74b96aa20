from __future__ import annotations

from auth.errors import InvalidToken, NotFound, Unauthorized
from auth.models import UserRecord
from auth.token_service import TokenService
from auth.user_directory import UserDirectory

BEARER_PREFIX = "Bearer "


def extract_bearer_token(header: str | None) -> str | None:
    if not header or not header.startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None


class UserInfoEndpoint:
    """Resolve a bearer access token to the directory's user record."""

    def __init__(self, token_service: TokenService, user_directory: UserDirectory) -> None:
        self._token_service = token_service
        self._user_directory = user_directory

    async def resolve(self, authorization_header: str | None) -> UserRecord:
        token = extract_bearer_token(authorization_header)
        if token is None:
            raise Unauthorized("Authorization header with Bearer token required")

        claims = self._token_service.verify_access_token(token)
        if claims is None:
            raise InvalidToken("Invalid or expired access token")

        user = await self._user_directory.lookup_by_id(claims.subject)
        if user is None:
            raise NotFound("User not found")
        return user
