from __future__ import annotations

import asyncio
import contextlib
import os
from datetime import datetime, timezone
from pathlib import Path

import uvicorn
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from auth.client_registry import ClientRegistry
from auth.code_store import AuthorizationCodeStore
from auth.kv_store import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from auth.oauth_server import AuthorizationFlowController
from auth.token_service import TokenService
from auth.user_directory import SupabaseUserDirectory, UserDirectory
from codegrant.constants import APP_VERSION, LOGGER, MEMORY_DATA_DIR
from codegrant.env import Settings, load_env, load_settings, setup_logging, validate_env
from codegrant.http import build_client


def build_stores(data_dir: str) -> tuple[KeyValueStore, KeyValueStore]:
    if data_dir == MEMORY_DATA_DIR:
        return MemoryKeyValueStore(), MemoryKeyValueStore()
    root = Path(data_dir)
    return FileKeyValueStore(root / "apps.json"), FileKeyValueStore(root / "codes.json")


def build_user_directory(settings: Settings) -> UserDirectory:
    client = build_client(
        settings.supabase_url,
        timeout=settings.directory_timeout,
        max_retries=settings.directory_max_retries,
        rate_limit_retries=settings.directory_rate_limit_retries,
    )
    return SupabaseUserDirectory(
        settings.supabase_url,
        settings.supabase_service_role_key,
        client=client,
    )


async def health_route(request: Request) -> Response:
    del request
    return JSONResponse(
        {
            "status": "ok",
            "version": APP_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


async def http_error_handler(request: Request, exc: HTTPException) -> Response:
    del request
    if exc.status_code == 404:
        body = {"error": "not_found", "error_description": "Endpoint not found"}
    elif exc.status_code == 405:
        body = {"error": "method_not_allowed", "error_description": "Method not allowed"}
    else:
        body = {"error": "invalid_request", "error_description": exc.detail}
    return JSONResponse(body, status_code=exc.status_code, headers=exc.headers)


async def server_error_handler(request: Request, exc: Exception) -> Response:
    LOGGER.error("Unhandled error in %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        {"error": "server_error", "error_description": "An unexpected error occurred"},
        status_code=500,
    )


def create_app(
    settings: Settings | None = None,
    *,
    user_directory: UserDirectory | None = None,
) -> Starlette:
    if settings is None:
        load_env()
        setup_logging()
        validate_env()
        settings = load_settings()

    apps_store, codes_store = build_stores(settings.data_dir)
    client_registry = ClientRegistry(apps_store)
    code_store = AuthorizationCodeStore(codes_store)
    token_service = TokenService(
        settings.jwt_secret,
        access_token_expiry=settings.access_token_expiry,
        refresh_token_expiry=settings.refresh_token_expiry,
    )
    directory = user_directory or build_user_directory(settings)
    controller = AuthorizationFlowController(
        client_registry=client_registry,
        code_store=code_store,
        token_service=token_service,
        user_directory=directory,
        cors_origins=set(settings.cors_origins),
        code_ttl_seconds=settings.code_ttl_seconds,
    )

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        sweeper = asyncio.create_task(
            code_store.sweep_forever(settings.sweep_interval_seconds)
        )
        LOGGER.info(
            "Authorization code sweep every %ss", settings.sweep_interval_seconds
        )
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            await directory.aclose()
            LOGGER.info("Server closed")

    app = Starlette(
        routes=[
            *controller.routes(),
            Route("/health", health_route, methods=["GET"]),
        ],
        exception_handlers={
            HTTPException: http_error_handler,
            Exception: server_error_handler,
        },
        lifespan=lifespan,
    )
    app.state.controller = controller
    return app


def main() -> None:
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "3000"))
    app = create_app()
    LOGGER.info("OAuth endpoints available at http://%s:%s/oauth", host, port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
