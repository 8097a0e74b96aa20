from __future__ import annotations


class OAuthError(RuntimeError):
    """Expected failure, rendered as ``{error, error_description}``."""

    code = "server_error"
    status_code = 500
    default_description = "An unexpected error occurred."

    def __init__(self, description: str | None = None) -> None:
        self.description = description or self.default_description
        super().__init__(self.description)


class InvalidRequest(OAuthError):
    code = "invalid_request"
    status_code = 400
    default_description = "The request is missing a required parameter."


class InvalidClient(OAuthError):
    code = "invalid_client"
    status_code = 400
    default_description = "Client not found."


class InvalidClientCredentials(InvalidClient):
    status_code = 401
    default_description = "Invalid client credentials."


class InvalidRedirectUri(OAuthError):
    code = "invalid_redirect_uri"
    status_code = 400
    default_description = "Redirect URI not registered."


class UnsupportedResponseType(OAuthError):
    code = "unsupported_response_type"
    status_code = 400
    default_description = "Only response_type=code is supported."


class UnsupportedGrantType(OAuthError):
    code = "unsupported_grant_type"
    status_code = 400
    default_description = "Only grant_type=authorization_code is supported."


class Unauthorized(OAuthError):
    code = "unauthorized"
    status_code = 401
    default_description = "Authorization header with Bearer token required."


class InvalidToken(OAuthError):
    code = "invalid_token"
    status_code = 401
    default_description = "Invalid or expired token."


class InvalidGrant(OAuthError):
    code = "invalid_grant"
    status_code = 400
    default_description = "Invalid or expired authorization code."


class NotFound(OAuthError):
    code = "not_found"
    status_code = 404
    default_description = "User not found."


class ServerError(OAuthError):
    pass
