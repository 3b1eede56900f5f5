"""Shared Redis client used for webhook rate limiting."""

import redis.asyncio as redis

from paybroker.core.config import get_settings

_redis: redis.Redis | None = None


async def init_redis(url: str | None = None, client: redis.Redis | None = None) -> None:
    """Connect the shared client.

    ``client`` lets tests hand in a ready-made (e.g. fakeredis) instance.
    """
    global _redis

    if _redis is not None:
        return

    if client is None:
        client = redis.from_url(
            url or get_settings().redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
    await client.ping()
    _redis = client


async def close_redis() -> None:
    global _redis

    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> redis.Redis:
    """Return the shared client; RuntimeError before init_redis()."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis
