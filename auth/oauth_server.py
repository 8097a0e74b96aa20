from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Awaitable, Callable

from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from auth.client_registry import ClientRegistry
from auth.code_store import AuthorizationCodeStore
from auth.cors import apply_cors_response, cors_error_response, preflight_routes
from auth.errors import (
    InvalidClient,
    InvalidClientCredentials,
    InvalidGrant,
    InvalidRedirectUri,
    InvalidRequest,
    InvalidToken,
    OAuthError,
    ServerError,
    Unauthorized,
    UnsupportedGrantType,
    UnsupportedResponseType,
)
from auth.schemas import AuthorizeRequest, RegisterAppRequest, TokenRequest, parse_request
from auth.token_service import TokenService
from auth.urls import append_query_params, is_valid_redirect_uri
from auth.user_directory import UserDirectory
from auth.userinfo import UserInfoEndpoint, extract_bearer_token
from codegrant.constants import DEFAULT_CODE_TTL_SECONDS, LOGGER

Handler = Callable[[Request], Awaitable[Response]]

OAUTH_PATHS = (
    "/oauth/register-app",
    "/oauth/authorize",
    "/oauth/token",
    "/oauth/userinfo",
    "/api/user/me",
)


class AuthorizationFlowController:
    """HTTP surface of the authorization code grant.

    Handlers raise ``OAuthError`` subclasses; ``_dispatch`` renders them as
    ``{error, error_description}`` and turns anything else into a logged,
    generic ``server_error``.
    """

    def __init__(
        self,
        *,
        client_registry: ClientRegistry,
        code_store: AuthorizationCodeStore,
        token_service: TokenService,
        user_directory: UserDirectory,
        cors_origins: set[str] | None = None,
        code_ttl_seconds: int = DEFAULT_CODE_TTL_SECONDS,
    ) -> None:
        self.client_registry = client_registry
        self.code_store = code_store
        self.token_service = token_service
        self.user_directory = user_directory
        self.userinfo = UserInfoEndpoint(token_service, user_directory)
        self.cors_origins = set(cors_origins) if cors_origins else {"*"}
        self.code_ttl_seconds = code_ttl_seconds

    # -- routes ----------------------------------------------------------------

    def routes(self) -> list[Route]:
        async def register_route(request: Request) -> Response:
            return await self._dispatch(request, self._handle_register, "Failed to register app")

        async def authorize_route(request: Request) -> Response:
            return await self._dispatch(request, self._handle_authorize, "Authorization failed")

        async def token_route(request: Request) -> Response:
            return await self._dispatch(request, self._handle_token, "Token generation failed")

        async def userinfo_route(request: Request) -> Response:
            return await self._dispatch(
                request, self._handle_userinfo, "Failed to retrieve user info"
            )

        return [
            Route("/oauth/register-app", register_route, methods=["POST"]),
            Route("/oauth/authorize", authorize_route, methods=["GET"]),
            Route("/oauth/token", token_route, methods=["POST"]),
            Route("/oauth/userinfo", userinfo_route, methods=["GET"]),
            Route("/api/user/me", userinfo_route, methods=["GET"]),
            *preflight_routes(OAUTH_PATHS, self.cors_origins),
        ]

    async def _dispatch(self, request: Request, handler: Handler, failure: str) -> Response:
        try:
            response = await handler(request)
        except OAuthError as error:
            return self._error(request, error.code, error.description, error.status_code)
        except Exception:
            LOGGER.exception("Unhandled error in %s %s", request.method, request.url.path)
            error = ServerError(failure)
            return self._error(request, error.code, error.description, error.status_code)
        return apply_cors_response(request, response, self.cors_origins)

    # -- handlers --------------------------------------------------------------

    async def _handle_register(self, request: Request) -> Response:
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise InvalidRequest("Invalid JSON body")

        body = parse_request(
            RegisterAppRequest, payload, "app_name and redirect_uris are required"
        )
        if not all(is_valid_redirect_uri(uri) for uri in body.redirect_uris):
            raise InvalidRequest("redirect_uris must be absolute URIs without a fragment")

        client = self.client_registry.register(body.app_name, body.redirect_uris)
        return JSONResponse(
            {
                "client_id": client.client_id,
                "client_secret": client.client_secret,
                "app_name": client.app_name,
            },
            status_code=201,
        )

    async def _handle_authorize(self, request: Request) -> Response:
        params = parse_request(
            AuthorizeRequest,
            dict(request.query_params),
            "client_id, redirect_uri, and response_type are required",
        )

        if params.response_type != "code":
            raise UnsupportedResponseType("Only response_type=code is supported")

        client = self.client_registry.find_by_client_id(params.client_id)
        if client is None:
            raise InvalidClient("Client not found")

        if params.redirect_uri not in client.redirect_uris:
            raise InvalidRedirectUri("Redirect URI not registered")

        bearer = extract_bearer_token(request.headers.get("authorization"))
        if bearer is None:
            raise Unauthorized("User must be authenticated")

        user = await self.user_directory.validate_bearer_credential(bearer)
        if user is None:
            raise InvalidToken("Invalid or expired user token")

        code = self.code_store.issue(
            client.client_id,
            user.id,
            params.redirect_uri,
            ttl_seconds=self.code_ttl_seconds,
        )

        query = {"code": code}
        if params.state:
            query["state"] = params.state
        return RedirectResponse(
            url=append_query_params(params.redirect_uri, query),
            status_code=302,
        )

    async def _handle_token(self, request: Request) -> Response:
        form_data = await self._read_token_body(request)
        client_id, client_secret = self._extract_client_auth(request, form_data)
        if client_id is not None:
            form_data["client_id"] = client_id
        if client_secret is not None:
            form_data["client_secret"] = client_secret

        body = parse_request(
            TokenRequest,
            form_data,
            "grant_type, code, client_id, client_secret, and redirect_uri are required",
        )

        if body.grant_type != "authorization_code":
            raise UnsupportedGrantType("Only grant_type=authorization_code is supported")

        client = self.client_registry.verify_credentials(body.client_id, body.client_secret)
        if client is None:
            raise InvalidClientCredentials("Invalid client credentials")

        auth_code = self.code_store.redeem(body.code, client.client_id, body.redirect_uri)
        if auth_code is None:
            raise InvalidGrant("Invalid or expired authorization code")

        user = await self.user_directory.lookup_by_id(auth_code.user_id)
        if user is None:
            raise InvalidGrant("User not found")

        access_token = self.token_service.sign_access_token(user.id, user.email, client.client_id)
        refresh_token = self.token_service.sign_refresh_token(user.id)
        LOGGER.info("Issued tokens to client %s", client.client_id)

        return JSONResponse(
            {
                "access_token": access_token,
                "refresh_token": refresh_token,
                "token_type": "Bearer",
                "expires_in": self.token_service.access_token_ttl,
            },
            headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
        )

    async def _handle_userinfo(self, request: Request) -> Response:
        user = await self.userinfo.resolve(request.headers.get("authorization"))
        return JSONResponse(user.to_dict())

    # -- helpers ---------------------------------------------------------------

    async def _read_token_body(self, request: Request) -> dict:
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            try:
                payload = await request.json()
            except (json.JSONDecodeError, UnicodeDecodeError):
                raise InvalidRequest("Invalid JSON body")
            if not isinstance(payload, dict):
                raise InvalidRequest("Invalid JSON body")
            return dict(payload)

        form = await request.form()
        return {key: str(value) for key, value in form.multi_items()}

    def _extract_client_auth(
        self,
        request: Request,
        form_data: dict,
    ) -> tuple[str | None, str | None]:
        header = request.headers.get("authorization")
        if header and header.lower().startswith("basic "):
            raw = header.split(" ", 1)[1].strip()
            try:
                decoded = base64.b64decode(raw).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError):
                raise InvalidClientCredentials("Malformed Basic authorization header")

            if ":" not in decoded:
                raise InvalidClientCredentials("Malformed Basic authorization header")
            client_id, client_secret = decoded.split(":", 1)
            return client_id, client_secret

        return form_data.get("client_id"), form_data.get("client_secret")

    def _error(self, request: Request, code: str, description: str, status_code: int) -> Response:
        return cors_error_response(
            request=request,
            allowed_origins=self.cors_origins,
            code=code,
            description=description,
            status_code=status_code,
        )
