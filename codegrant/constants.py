from __future__ import annotations

import logging

LOGGER = logging.getLogger("codegrant")
APP_VERSION = "0.1.0"

DEFAULT_ACCESS_TOKEN_EXPIRY = "1h"
DEFAULT_REFRESH_TOKEN_EXPIRY = "7d"
DEFAULT_CODE_TTL_SECONDS = 600
DEFAULT_SWEEP_INTERVAL_SECONDS = 300
DEFAULT_DATA_DIR = "data"
MEMORY_DATA_DIR = ":memory:"
DEFAULT_DIRECTORY_TIMEOUT = 10.0
DEFAULT_DIRECTORY_MAX_RETRIES = 2
DEFAULT_RATE_LIMIT_RETRIES = 1
