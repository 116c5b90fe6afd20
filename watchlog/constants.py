from __future__ import annotations

import logging
from pathlib import Path

LOGGER = logging.getLogger("watchlog.app")
APP_VERSION = "0.1.0"
AUTH_MODE = "oauth2-pkce"

STORAGE_BACKENDS = {"memory", "file", "redis"}
DEFAULT_STORAGE_PATH = ".pkce_verifiers.json"
ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
