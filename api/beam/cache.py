"""Redis cache utility functions."""

from __future__ import annotations

import logging
import os

import redis

logger = logging.getLogger(__name__)

# Redis connection
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis | None:
    """
    Get or create Redis client instance.

    Returns None if REDIS_URL is not configured or the connection fails;
    callers degrade to the database or fail open.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        return None

    try:
        client = redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=2)
        # Test connection
        client.ping()
        logger.info("Redis cache connected successfully")
        _redis_client = client
        return _redis_client
    except redis.RedisError as e:
        logger.warning(f"Redis cache unavailable: {e}. Continuing without cache.")
        return None


def cache_get_int(key: str) -> int | None:
    client = get_redis_client()
    if not client:
        return None

    try:
        value = client.get(key)
        return int(value) if value is not None else None
    except (redis.RedisError, ValueError) as e:
        logger.warning(f"Cache get error for key '{key}': {e}")
        return None


def cache_set_int(key: str, value: int, ttl: int = 300) -> bool:
    client = get_redis_client()
    if not client:
        return False

    try:
        client.setex(key, ttl, str(value))
        return True
    except redis.RedisError as e:
        logger.warning(f"Cache set error for key '{key}': {e}")
        return False


def cache_delete(key: str) -> bool:
    """
    Delete a specific cache key.

    Args:
        key: Cache key to delete

    Returns:
        True if deleted, False otherwise
    """
    client = get_redis_client()
    if not client:
        return False

    try:
        return bool(client.delete(key))
    except redis.RedisError as e:
        logger.warning(f"Cache delete error for key '{key}': {e}")
        return False
