"""Centralized environment-driven settings.

Keep this module lightweight: stdlib only, no app imports, to avoid circular deps.
"""

from __future__ import annotations

import os


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

# Public URL of the web client, used in invite links.
APP_URL: str = os.getenv("APP_URL", "http://localhost:5173").rstrip("/")

RUN_MIGRATIONS: bool = _bool_env("RUN_MIGRATIONS", True)

# Repeated events from the same actor on the same target collapse into one
# notification inside this window.
NOTIFICATION_GROUPING_WINDOW_MINUTES: int = _int_env("NOTIFICATION_GROUPING_WINDOW_MINUTES", 5)

PRESENCE_STALE_SECONDS: int = _int_env("PRESENCE_STALE_SECONDS", 15)
PRESENCE_SWEEP_SECONDS: int = _int_env("PRESENCE_SWEEP_SECONDS", 5)

UPLOAD_URL_EXPIRES_SECONDS: int = _int_env("UPLOAD_URL_EXPIRES_SECONDS", 3600)
UPLOAD_DEBOUNCE_SECONDS: int = _int_env("UPLOAD_DEBOUNCE_SECONDS", 5)
MAX_UPLOAD_BATCH: int = _int_env("MAX_UPLOAD_BATCH", 100)
MAX_IMAGE_BYTES: int = _int_env("MAX_IMAGE_BYTES", 50 * 1024 * 1024)

TRASH_RETENTION_DAYS: int = _int_env("TRASH_RETENTION_DAYS", 30)

# Cached identity-provider profiles older than this are re-fetched on read.
CACHED_USER_TTL_MINUTES: int = _int_env("CACHED_USER_TTL_MINUTES", 15)

REALTIME_TOPIC_PREFIX: str = os.getenv("REALTIME_TOPIC_PREFIX", "beam")
