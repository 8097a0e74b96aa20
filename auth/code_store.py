from __future__ import annotations

import asyncio
import hmac
import secrets
import time
from datetime import datetime, timezone

from auth.kv_store import KeyValueStore, MemoryKeyValueStore
from auth.models import AuthorizationCode
from codegrant.constants import DEFAULT_CODE_TTL_SECONDS, LOGGER

MAX_CODE_ATTEMPTS = 5


def generate_code() -> str:
    return f"code_{secrets.token_urlsafe(32)}"


def _equal(left: str, right: str) -> bool:
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))


class AuthorizationCodeStore:
    """Single-use authorization codes.

    ``redeem`` and ``sweep_expired`` both go through the store lock, so a
    code is handed out at most once even when redemptions race each other
    or the sweep.
    """

    def __init__(self, store: KeyValueStore | None = None, *, clock=time.time) -> None:
        self._store = store if store is not None else MemoryKeyValueStore()
        self._clock = clock

    def issue(
        self,
        client_id: str,
        user_id: str,
        redirect_uri: str,
        ttl_seconds: int = DEFAULT_CODE_TTL_SECONDS,
    ) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            record = AuthorizationCode(
                code=generate_code(),
                client_id=client_id,
                user_id=user_id,
                redirect_uri=redirect_uri,
                expires_at=self._clock() + ttl_seconds,
                created_at=datetime.now(timezone.utc).isoformat(),
            )
            if self._store.put_if_absent(record.code, record.to_dict()):
                LOGGER.info("Issued authorization code for client %s", client_id)
                return record.code

        raise RuntimeError("Could not allocate a unique authorization code.")

    def redeem(self, code: str, client_id: str, redirect_uri: str) -> AuthorizationCode | None:
        now = self._clock()

        def _matches(record: dict) -> bool:
            return (
                _equal(record["client_id"], client_id)
                and _equal(record["redirect_uri"], redirect_uri)
                and record["expires_at"] > now
            )

        record = self._store.pop_if(code, _matches)
        if record is None:
            LOGGER.info("Rejected authorization code redemption for client %s", client_id)
            return None
        return AuthorizationCode(**record)

    def sweep_expired(self) -> int:
        now = self._clock()
        removed = self._store.delete_where(lambda record: record["expires_at"] <= now)
        if removed:
            LOGGER.info("Swept %s expired authorization codes", removed)
        return removed

    async def sweep_forever(self, interval_seconds: float, *, sleep=asyncio.sleep) -> None:
        while True:
            await sleep(interval_seconds)
            try:
                self.sweep_expired()
            except Exception:
                LOGGER.exception("Authorization code sweep failed")

    def __len__(self) -> int:
        return len(self._store)
