"""Per-user ingestion quota backed by Redis."""

from datetime import datetime

from redis.asyncio import Redis

from gapguard.db.context import RequestContext
from gapguard.db.repositories import RetryAfter


def make_rate_limit_key(ctx: RequestContext, bucket: str) -> str:
    """Quota key for one user and bucket (e.g. ``"ingest"``)."""
    return f"{ctx.user_id}:{bucket}"


class RedisRateLimiter:
    """Fixed-window limiter: one MULTI/EXEC round trip of INCR, EXPIRE NX and TTL.

    Every process sharing the Redis instance shares the same counters, so the
    quota holds across workers. Needs Redis server 7.0 or newer for EXPIRE NX.
    """

    def __init__(self, redis_client: Redis, max_requests: int, window_seconds: int = 86400) -> None:
        """Initialize rate limiter.

        Args:
            redis_client: Async Redis client
            max_requests: Requests allowed per window
            window_seconds: Window size in seconds (default 24h)
        """
        self._redis = redis_client
        self._max_requests = max_requests
        self._window_seconds = window_seconds

    def _window_key(self, key: str, now: datetime) -> str:
        window_start = int(now.timestamp()) // self._window_seconds * self._window_seconds
        return f"ratelimit:{key}:{window_start}"

    async def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Count one request against ``key``.

        Args:
            key: Rate limit key
            now: Current timestamp (selects the window)

        Returns:
            RetryAfter with the seconds left in the window if over quota, else None
        """
        redis_key = self._window_key(key, now)

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(redis_key)
            pipe.expire(redis_key, self._window_seconds, nx=True)
            pipe.ttl(redis_key)
            count, _, ttl = await pipe.execute()

        if count <= self._max_requests:
            return None
        return RetryAfter(seconds=max(1, ttl))
