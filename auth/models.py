from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class Client:
    id: str
    client_id: str
    client_secret: str
    app_name: str
    redirect_uris: list[str]
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AuthorizationCode:
    code: str
    client_id: str
    user_id: str
    redirect_uri: str
    expires_at: float
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AccessTokenClaims:
    subject: str
    email: str
    client_id: str
    issued_at: int
    expires_at: int


@dataclass(frozen=True)
class RefreshTokenClaims:
    subject: str
    issued_at: int
    expires_at: int
    token_kind: str = "refresh"


@dataclass
class UserRecord:
    id: str
    email: str
    created_at: str | None = None
    user_metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict) -> "UserRecord":
        user_id = payload.get("id")
        if not isinstance(user_id, str) or not user_id:
            raise ValueError("User payload missing id.")
        metadata = payload.get("user_metadata")
        return cls(
            id=user_id,
            email=payload.get("email") or "",
            created_at=payload.get("created_at"),
            user_metadata=metadata if isinstance(metadata, dict) else {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "user_metadata": self.user_metadata,
            "created_at": self.created_at,
        }
