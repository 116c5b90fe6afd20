from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

from auth.redis_storage import RedisStorage
from auth.storage import FileStorage, KeyValueStorage, MemoryStorage
from auth.urls import is_allowed_authorize_url

from .constants import (
    AUTH_MODE,
    DEFAULT_STORAGE_PATH,
    ENV_FILE,
    LOGGER,
    STORAGE_BACKENDS,
)


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv_env(key: str) -> set[str]:
    raw = os.getenv(key, "")
    if not raw.strip():
        return set()
    return {item.strip() for item in raw.split(",") if item.strip()}


def get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def load_env() -> None:
    if not ENV_FILE.exists():
        return
    load_dotenv(ENV_FILE, override=True)


def validate_env() -> None:
    required = (
        "OAUTH_CLIENT_ID",
        "OAUTH_AUTHORIZE_URL",
        "OAUTH_REDIRECT_URI",
        "LOGIN_COMPLETION_HANDLER",
    )
    missing = [key for key in required if not os.getenv(key, "").strip()]
    if missing:
        raise RuntimeError(
            f"Missing required environment variables for {AUTH_MODE}: {', '.join(missing)}"
        )

    authorize_url = os.getenv("OAUTH_AUTHORIZE_URL", "").strip()
    if not is_allowed_authorize_url(authorize_url):
        raise RuntimeError(
            "OAUTH_AUTHORIZE_URL must be an HTTPS URL (plain HTTP is accepted for localhost)."
        )

    handler = os.getenv("LOGIN_COMPLETION_HANDLER", "").strip()
    module_name, _, attribute = handler.partition(":")
    if not module_name or not attribute:
        raise RuntimeError("LOGIN_COMPLETION_HANDLER must look like 'package.module:function'.")

    backend = storage_backend()
    if backend not in STORAGE_BACKENDS:
        raise RuntimeError(
            f"PKCE_STORAGE must be one of: {', '.join(sorted(STORAGE_BACKENDS))}."
        )
    if backend == "redis" and not os.getenv("REDIS_URL", "").strip():
        raise RuntimeError("REDIS_URL is required when PKCE_STORAGE=redis.")


def storage_backend() -> str:
    return os.getenv("PKCE_STORAGE", "memory").strip().lower() or "memory"


def build_storage() -> KeyValueStorage:
    backend = storage_backend()
    if backend == "file":
        return FileStorage(os.getenv("PKCE_STORAGE_PATH", DEFAULT_STORAGE_PATH))
    if backend == "redis":
        return RedisStorage.from_url(os.getenv("REDIS_URL", "").strip())
    return MemoryStorage()


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("WATCHLOG_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
        logging.getLogger("watchlog.auth").setLevel(logging.INFO)
    return debug_enabled
