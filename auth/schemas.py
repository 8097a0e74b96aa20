from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, StringConstraints, ValidationError, field_validator

from auth.errors import InvalidRequest

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]


class RegisterAppRequest(BaseModel):
    app_name: NonEmptyStr
    redirect_uris: list[NonEmptyStr]

    @field_validator("app_name")
    @classmethod
    def _app_name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("app_name must not be blank")
        return value

    @field_validator("redirect_uris")
    @classmethod
    def _redirect_uris_not_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("redirect_uris must not be empty")
        return value


class AuthorizeRequest(BaseModel):
    client_id: NonEmptyStr
    redirect_uri: NonEmptyStr
    response_type: NonEmptyStr
    state: str | None = None


class TokenRequest(BaseModel):
    grant_type: NonEmptyStr
    code: NonEmptyStr
    client_id: NonEmptyStr
    client_secret: NonEmptyStr
    redirect_uri: NonEmptyStr


def parse_request(model: type[BaseModel], payload: object, description: str):
    """Validate ``payload`` into ``model`` or raise ``InvalidRequest(description)``."""
    try:
        return model.model_validate(payload)
    except ValidationError as error:
        raise InvalidRequest(description) from error
