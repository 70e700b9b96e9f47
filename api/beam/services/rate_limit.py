"""Request de-duplication using Redis."""

from __future__ import annotations

import hashlib
import logging

import redis

from ..cache import get_redis_client

logger = logging.getLogger(__name__)


def upload_request_key(user_key: str, gallery_slug: str, fingerprint: str) -> str:
    """Build the debounce key for an upload-URL request."""
    digest = hashlib.sha256(fingerprint.encode()).hexdigest()[:32]
    return f"upload_dedup:{user_key}:{gallery_slug}:{digest}"


def check_duplicate_request(key: str, window_seconds: int) -> bool:
    """
    Check if a request with this key was already seen inside the window.

    Uses Redis SET NX EX so the first caller claims the key atomically.

    Returns:
        True if this is a duplicate (should be rejected), False if it's unique
    """
    client = get_redis_client()

    # If Redis is unavailable, allow the request (fail open)
    if not client:
        return False

    try:
        claimed = client.set(key, "1", nx=True, ex=window_seconds)
        if not claimed:
            logger.debug(f"Duplicate request detected: {key}")
            return True
        return False
    except redis.RedisError as e:
        logger.error(f"Duplicate request check error for key '{key}': {e}")
        # Fail open - prefer a duplicate upload over a lost one
        return False
