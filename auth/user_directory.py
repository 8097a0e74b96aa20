from __future__ import annotations

import urllib.parse
from abc import ABC, abstractmethod

import httpx

from auth.models import UserRecord
from codegrant.constants import DEFAULT_RATE_LIMIT_RETRIES, LOGGER
from codegrant.http import RetryTransport

USER_PATH = "/auth/v1/user"
ADMIN_USER_PATH = "/auth/v1/admin/users/{user_id}"

# Answers meaning the credential or user is not recognised.
REJECTION_STATUSES = frozenset({400, 401, 403, 404})


class UserDirectoryError(RuntimeError):
    """The identity directory could not be reached or failed server-side."""


class UserDirectory(ABC):
    @abstractmethod
    async def validate_bearer_credential(self, token: str) -> UserRecord | None:
        raise NotImplementedError

    @abstractmethod
    async def lookup_by_id(self, user_id: str) -> UserRecord | None:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class SupabaseUserDirectory(UserDirectory):
    """Supabase (GoTrue) auth API as the end-user directory.

    A 400, 401, 403 or 404 answer means the credential or user is not
    recognised and maps to ``None``. Transport failures and any other non-2xx
    answer, rate limiting included, raise ``UserDirectoryError``.
    """

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        max_retries: int = 2,
        rate_limit_retries: int = DEFAULT_RATE_LIMIT_RETRIES,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._service_role_key = service_role_key
        self._client = client
        self._timeout = timeout
        self._max_retries = max_retries
        self._rate_limit_retries = rate_limit_retries

    async def validate_bearer_credential(self, token: str) -> UserRecord | None:
        return await self._fetch_user(
            USER_PATH,
            headers={
                "apikey": self._service_role_key,
                "Authorization": f"Bearer {token}",
            },
        )

    async def lookup_by_id(self, user_id: str) -> UserRecord | None:
        path = ADMIN_USER_PATH.format(user_id=urllib.parse.quote(user_id, safe=""))
        return await self._fetch_user(
            path,
            headers={
                "apikey": self._service_role_key,
                "Authorization": f"Bearer {self._service_role_key}",
            },
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def _fetch_user(self, path: str, *, headers: dict[str, str]) -> UserRecord | None:
        own_client = self._client is None
        http_client = self._client or httpx.AsyncClient(
            timeout=self._timeout,
            transport=RetryTransport(
                httpx.AsyncHTTPTransport(),
                max_retries=self._max_retries,
                rate_limit_retries=self._rate_limit_retries,
            ),
        )

        try:
            response = await http_client.get(f"{self.base_url}{path}", headers=headers)
        except httpx.HTTPError as error:
            raise UserDirectoryError(f"User directory request failed: {error}") from error
        finally:
            if own_client:
                await http_client.aclose()

        if response.status_code in REJECTION_STATUSES:
            LOGGER.info("User directory rejected %s with status %s", path, response.status_code)
            return None
        if not response.is_success:
            raise UserDirectoryError(
                f"User directory request failed with status {response.status_code}."
            )

        payload = response.json()
        # Admin endpoints have returned both a bare user and {"user": {...}}.
        if isinstance(payload, dict) and isinstance(payload.get("user"), dict):
            payload = payload["user"]
        if not isinstance(payload, dict):
            raise UserDirectoryError("User directory returned an unexpected payload.")
        try:
            return UserRecord.from_payload(payload)
        except ValueError as error:
            raise UserDirectoryError(str(error)) from error
