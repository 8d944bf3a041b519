"""Redis sliding window rate limiter implementation.

Uses Redis sorted sets (ZSET) for accurate sliding window rate limiting.
More accurate than fixed windows and prevents burst abuse at window boundaries.
"""

import time
import uuid
from dataclasses import dataclass

from fastapi import Request

from backoffice.core.cache.redis import redis_client
from backoffice.core.logging import get_client_ip


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    reset_time: int
    retry_after: int | None = None

    def headers(self) -> dict[str, str]:
        """Standard ``X-RateLimit-*`` response headers."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_time),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class SlidingWindowRateLimiter:
    """Redis-based sliding window rate limiter.

    Each hit is stored in a sorted set with its timestamp as the score, so
    entries older than the window can be trimmed before counting.
    """

    def __init__(self, prefix: str = "ratelimit") -> None:
        self.prefix = prefix

    def _build_key(self, identifier: str, endpoint: str | None = None) -> str:
        if endpoint:
            endpoint_key = endpoint.replace("/", "_").strip("_")
            return f"{self.prefix}:{identifier}:{endpoint_key}"
        return f"{self.prefix}:{identifier}"

    async def is_allowed(
        self,
        identifier: str,
        limit: int,
        window: int,
        endpoint: str | None = None,
    ) -> RateLimitResult:
        """Record a hit and check it against the limit.

        Args:
            identifier: Caller identity (``user:<id>``, ``ip:<addr>``, ...)
            limit: Maximum number of hits allowed in the window
            window: Time window in seconds
            endpoint: Optional scope for per-route or per-action limits

        Returns:
            RateLimitResult with allowed status and metadata
        """
        key = self._build_key(identifier, endpoint)
        now = time.time()
        # Unique member so concurrent hits in the same instant all count
        member = f"{now}:{uuid.uuid4().hex[:8]}"

        async with redis_client() as client, client.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(key, 0, now - window)
            pipe.zadd(key, {member: now})
            pipe.zcard(key)
            pipe.expire(key, window)
            results = await pipe.execute()
            count = results[2]

        allowed = count <= limit
        return RateLimitResult(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - count),
            reset_time=int(now + window),
            retry_after=window if not allowed else None,
        )

    async def reset(self, identifier: str, endpoint: str | None = None) -> bool:
        """Clear recorded hits; returns True if anything was removed."""
        key = self._build_key(identifier, endpoint)
        async with redis_client() as client:
            result = await client.delete(key)
            return result > 0

    async def get_current_count(
        self,
        identifier: str,
        window: int,
        endpoint: str | None = None,
    ) -> int:
        """Count hits in the current window without recording a new one."""
        key = self._build_key(identifier, endpoint)
        async with redis_client() as client:
            await client.zremrangebyscore(key, 0, time.time() - window)
            return int(await client.zcard(key))


def request_identifier(request: Request) -> str:
    """Rate limit identity for a request: the user if known, else the IP."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_client_ip(request) or 'unknown'}"


# Global rate limiter instance
rate_limiter = SlidingWindowRateLimiter()
