"""
Redis caching service for open group booking listings.

CACHING STRATEGY
================

What we cache:
  - "Open group bookings" listings per organization (confirmed, future,
    with free spots), JSON-serialized
  - Cache key pattern: "group_bookings:available:org={org}&limit={limit}&offset={offset}"

Invalidation strategy:
  - Any change to a group booking's counters (join, leave, promotion,
    accepted invitation) or a new group booking deletes every listing key
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

  Keys share the "group_bookings:available:" prefix so they can be found
  with SCAN and deleted.

Why NOT cache booking details:
  - Joins need real-time spot counts; stale counts only cost a retry on the
    listing page but would mislead on the detail page
"""

import json
from typing import Optional

import redis.asyncio as redis
from arts_booking.core.config import get_settings
from arts_booking.core.logging import get_logger
from arts_booking.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

LISTING_KEY_PREFIX = "group_bookings:available:"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled or unreachable."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _make_listing_key(organization_id: str, limit: int, offset: int) -> str:
    return f"{LISTING_KEY_PREFIX}org={organization_id}&limit={limit}&offset={offset}"


async def get_cached_listing(organization_id: str, limit: int, offset: int) -> Optional[list]:
    client = await get_redis()
    if not client:
        return None

    key = _make_listing_key(organization_id, limit, offset)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=data is not None)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_listing(organization_id: str, limit: int, offset: int, data: list) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_listing_key(organization_id, limit, offset)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_listing_cache() -> None:
    """Delete every cached listing. Uses SCAN on the key prefix."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{LISTING_KEY_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
