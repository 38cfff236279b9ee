"""Redis store for caching.

Handles:
- Caching with TTL policies
- Prefix invalidation after writes

TTL policies:
- Autocomplete results: AUTOCOMPLETE_CACHE_TTL seconds (0 disables caching)
"""

import json
import logging
from typing import Any

import redis.asyncio as redis

from restcrud.settings import get_settings

# Key prefixes
PREFIX_AUTOCOMPLETE = "autocomplete:"

# Redis client (initialized on startup)
_redis: redis.Redis | None = None
logger = logging.getLogger("uvicorn.error")


async def init_redis() -> None:
    """Initialize Redis connection."""
    global _redis
    settings = get_settings()
    _redis = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    # Validate connectivity early (especially for `rediss://` in production).
    await _redis.ping()
    logger.info("Redis connected")


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def _get_redis() -> redis.Redis:
    """Get Redis client instance."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


# ============================================================
# Generic cache operations
# ============================================================


async def cache_get(key: str) -> str | None:
    """Get value from cache.

    Args:
        key: Cache key.

    Returns:
        Cached value or None if not found.
    """
    return await _get_redis().get(key)


async def cache_set(key: str, value: str, ttl: int) -> None:
    """Set value in cache with TTL.

    Args:
        key: Cache key.
        value: Value to cache.
        ttl: Time-to-live in seconds.
    """
    await _get_redis().setex(key, ttl, value)


async def cache_delete_prefix(prefix: str) -> int:
    """Delete every key starting with `prefix`.

    Returns:
        Number of deleted keys.
    """
    client = _get_redis()
    deleted = 0
    async for key in client.scan_iter(match=f"{prefix}*"):
        deleted += await client.delete(key)
    return deleted


async def cache_get_json(key: str) -> Any | None:
    """Get JSON value from cache.

    Args:
        key: Cache key.

    Returns:
        Parsed JSON value or None if not found.
    """
    value = await cache_get(key)
    if value:
        return json.loads(value)
    return None


async def cache_set_json(key: str, value: Any, ttl: int) -> None:
    """Set JSON value in cache.

    Args:
        key: Cache key.
        value: JSON-serializable value.
        ttl: Time-to-live in seconds.
    """
    await cache_set(key, json.dumps(value, default=str), ttl)


# ============================================================
# Autocomplete cache
# ============================================================


def autocomplete_prefix(resource: str) -> str:
    return f"{PREFIX_AUTOCOMPLETE}{resource}:"


def autocomplete_key(resource: str, term: str) -> str:
    return f"{autocomplete_prefix(resource)}{term.strip().lower()}"


async def get_autocomplete_cache(resource: str, term: str) -> list[dict[str, Any]] | None:
    """Get cached autocomplete rows for a resource and search term."""
    payload = await cache_get_json(autocomplete_key(resource, term))
    if isinstance(payload, list):
        return payload
    return None


async def set_autocomplete_cache(resource: str, term: str, rows: list[dict[str, Any]], ttl: int) -> None:
    """Cache autocomplete rows for a resource and search term."""
    await cache_set_json(autocomplete_key(resource, term), rows, ttl)


async def invalidate_autocomplete_cache(resource: str) -> int:
    """Drop all cached autocomplete rows of a resource (after writes)."""
    return await cache_delete_prefix(autocomplete_prefix(resource))
