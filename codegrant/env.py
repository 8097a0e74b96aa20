from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv

from .constants import (
    DEFAULT_ACCESS_TOKEN_EXPIRY,
    DEFAULT_CODE_TTL_SECONDS,
    DEFAULT_DATA_DIR,
    DEFAULT_DIRECTORY_MAX_RETRIES,
    DEFAULT_DIRECTORY_TIMEOUT,
    DEFAULT_RATE_LIMIT_RETRIES,
    DEFAULT_REFRESH_TOKEN_EXPIRY,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
    LOGGER,
)

REQUIRED_ENV = (
    "JWT_SECRET",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
)


@dataclass(frozen=True)
class Settings:
    jwt_secret: str
    supabase_url: str
    supabase_service_role_key: str
    access_token_expiry: str = DEFAULT_ACCESS_TOKEN_EXPIRY
    refresh_token_expiry: str = DEFAULT_REFRESH_TOKEN_EXPIRY
    data_dir: str = DEFAULT_DATA_DIR
    code_ttl_seconds: int = DEFAULT_CODE_TTL_SECONDS
    sweep_interval_seconds: int = DEFAULT_SWEEP_INTERVAL_SECONDS
    cors_origins: frozenset[str] = frozenset({"*"})
    directory_timeout: float = DEFAULT_DIRECTORY_TIMEOUT
    directory_max_retries: int = DEFAULT_DIRECTORY_MAX_RETRIES
    directory_rate_limit_retries: int = DEFAULT_RATE_LIMIT_RETRIES


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv_env(key: str) -> set[str]:
    raw = os.getenv(key, "")
    if not raw.strip():
        return set()
    return {item.strip() for item in raw.split(",") if item.strip()}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=False)


def validate_env() -> None:
    missing = [key for key in REQUIRED_ENV if not os.getenv(key, "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    supabase_url = os.getenv("SUPABASE_URL", "").strip()
    parsed = urlparse(supabase_url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise RuntimeError(
            "SUPABASE_URL must be an absolute HTTP(S) URL (for example: "
            "https://project.supabase.co)."
        )

    if len(os.getenv("JWT_SECRET", "")) < 32:
        LOGGER.warning("JWT_SECRET is shorter than 32 characters; use a longer signing key.")


def load_settings() -> Settings:
    """Read the process configuration once; call ``validate_env`` first."""
    cors_origins = parse_csv_env("OAUTH_CORS_ORIGINS") or {"*"}
    return Settings(
        jwt_secret=os.getenv("JWT_SECRET", ""),
        supabase_url=os.getenv("SUPABASE_URL", "").strip().rstrip("/"),
        supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip(),
        access_token_expiry=os.getenv("JWT_EXPIRY", DEFAULT_ACCESS_TOKEN_EXPIRY).strip(),
        refresh_token_expiry=os.getenv(
            "JWT_REFRESH_EXPIRY", DEFAULT_REFRESH_TOKEN_EXPIRY
        ).strip(),
        data_dir=os.getenv("OAUTH_DATA_DIR", DEFAULT_DATA_DIR).strip() or DEFAULT_DATA_DIR,
        code_ttl_seconds=_get_env_int("OAUTH_CODE_TTL_SECONDS", DEFAULT_CODE_TTL_SECONDS),
        sweep_interval_seconds=_get_env_int(
            "OAUTH_SWEEP_INTERVAL_SECONDS", DEFAULT_SWEEP_INTERVAL_SECONDS
        ),
        cors_origins=frozenset(cors_origins),
        directory_timeout=_get_env_float("OAUTH_DIRECTORY_TIMEOUT", DEFAULT_DIRECTORY_TIMEOUT),
        directory_max_retries=_get_env_int(
            "OAUTH_DIRECTORY_MAX_RETRIES", DEFAULT_DIRECTORY_MAX_RETRIES
        ),
        directory_rate_limit_retries=_get_env_int(
            "OAUTH_DIRECTORY_RATE_LIMIT_RETRIES", DEFAULT_RATE_LIMIT_RETRIES
        ),
    )


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("OAUTH_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
