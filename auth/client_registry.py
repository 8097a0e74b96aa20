from __future__ import annotations

import hmac
import secrets
import uuid
from datetime import datetime, timezone

from auth.errors import InvalidRequest
from auth.kv_store import KeyValueStore, MemoryKeyValueStore
from auth.models import Client
from codegrant.constants import LOGGER

MAX_ID_ATTEMPTS = 5


def generate_client_id() -> str:
    return f"client_{uuid.uuid4().hex}"


def generate_client_secret() -> str:
    return f"secret_{secrets.token_urlsafe(32)}"


class ClientRegistry:
    def __init__(self, store: KeyValueStore | None = None) -> None:
        self._store = store if store is not None else MemoryKeyValueStore()

    def register(self, app_name: str, redirect_uris: list[str]) -> Client:
        if not isinstance(app_name, str) or not app_name.strip():
            raise InvalidRequest("app_name and redirect_uris are required")
        if not redirect_uris:
            raise InvalidRequest("app_name and redirect_uris are required")

        unique_uris = list(dict.fromkeys(redirect_uris))
        for _ in range(MAX_ID_ATTEMPTS):
            client = Client(
                id=str(uuid.uuid4()),
                client_id=generate_client_id(),
                client_secret=generate_client_secret(),
                app_name=app_name,
                redirect_uris=unique_uris,
                created_at=datetime.now(timezone.utc).isoformat(),
            )
            if self._store.put_if_absent(client.client_id, client.to_dict()):
                LOGGER.info("Registered client %s (%s)", client.client_id, app_name)
                return client
            LOGGER.warning("client_id collision on %s; regenerating", client.client_id)

        raise RuntimeError("Could not allocate a unique client_id.")

    def find_by_client_id(self, client_id: str) -> Client | None:
        record = self._store.get(client_id)
        if record is None:
            return None
        return Client(**record)

    def verify_credentials(self, client_id: str, client_secret: str) -> Client | None:
        client = self.find_by_client_id(client_id)
        if client is None:
            return None
        if not hmac.compare_digest(
            client.client_secret.encode("utf-8"), client_secret.encode("utf-8")
        ):
            return None
        return client
