"""Single source of truth for shared constants and configuration defaults.

Every default that appears in more than one module is defined here.
Environment variable names live next to their defaults so that the CLI,
the app factory and the tests agree on them.
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Files and paths
# ---------------------------------------------------------------------------

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_DB_PATH = "tgnotify.sqlite3"

ENV_CONFIG_PATH = "TGNOTIFY_CONFIG"
ENV_DB_PATH = "TGNOTIFY_DB_PATH"
ENV_DRY_RUN = "TGNOTIFY_DRY_RUN"
ENV_LOG_LEVEL = "TGNOTIFY_LOG_LEVEL"

# ---------------------------------------------------------------------------
# HTTP listener
# ---------------------------------------------------------------------------

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080

ENV_HOST = "TGNOTIFY_HOST"
ENV_PORT = "TGNOTIFY_PORT"

TOKEN_HEADER = "x-notify-token"

# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------

TELEGRAM_API_BASE = "https://api.telegram.org"
DELIVERY_TIMEOUT_SECONDS = 10.0

# ---------------------------------------------------------------------------
# Query limits
# ---------------------------------------------------------------------------

QUERY_LIMIT_SMALL = 100
QUERY_LIMIT_MAX = 1000

# ---------------------------------------------------------------------------
# Response bodies
# ---------------------------------------------------------------------------

STATUS_NOTIFIED = "notified"
STATUS_THROTTLED = "notification timeout"
INVALID_TOKEN_MESSAGE = "Invalid token"
