"""Redis connection management (notifications, revocation list, ARQ)."""

from __future__ import annotations

import redis.asyncio as redis

from app.core.config import get_settings

_redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Get or lazily create the shared Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


async def ping_redis() -> bool:
    """Readiness probe helper; never raises."""
    try:
        client = await get_redis()
        return bool(await client.ping())
    except (redis.RedisError, OSError):
        return False


async def close_redis() -> None:
    """Close the Redis client if one was opened."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
