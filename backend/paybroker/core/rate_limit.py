"""Fixed-window request limiting backed by Redis.

Used in front of the webhook receivers so a flood of forged or replayed
deliveries is turned away before any signature or database work.
"""

import redis.asyncio as redis
import structlog
from fastapi import Request

from paybroker.core.config import get_settings
from paybroker.core.exceptions import RateLimitExceededError
from paybroker.db.redis import get_redis

logger = structlog.get_logger(__name__)


class FixedWindowLimiter:
    """Counts hits per key in a fixed window using INCR + EXPIRE."""

    KEY_PREFIX = "checkout:ratelimit:"

    def __init__(self, redis_client: redis.Redis, limit: int, window_seconds: int):
        self._redis = redis_client
        self.limit = limit
        self.window_seconds = window_seconds

    def _key(self, bucket: str, identity: str) -> str:
        return f"{self.KEY_PREFIX}{bucket}:{identity}"

    async def hit(self, bucket: str, identity: str) -> bool:
        """Record one hit. Returns False once the window's limit is exceeded."""
        key = self._key(bucket, identity)
        count = await self._redis.incr(key)
        if count == 1:
            await self._redis.expire(key, self.window_seconds)
        return count <= self.limit


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


async def enforce_webhook_rate_limit(request: Request) -> None:
    """FastAPI dependency: raises RateLimitExceededError (429) over the limit.

    The bucket is the webhook path, so each provider has its own window.
    """
    settings = get_settings()
    limiter = FixedWindowLimiter(
        get_redis(),
        limit=settings.webhook_rate_limit,
        window_seconds=settings.webhook_rate_window_seconds,
    )
    ip = client_ip(request)
    if not await limiter.hit(request.url.path, ip):
        logger.warning("webhook_rate_limited", path=request.url.path, client_ip=ip)
        raise RateLimitExceededError(source=ip)
