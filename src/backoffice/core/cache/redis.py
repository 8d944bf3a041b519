"""Shared Redis connection and the namespaced ``RedisCache`` helper.

One pool backs settings caching, login lockouts, session idle tracking,
revoked-session markers, notification frequency counters and rate limiting.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from backoffice.config import settings
from backoffice.core.cache.serializers import deserialize, serialize


_pool: ConnectionPool | None = None


def _get_pool() -> ConnectionPool:
    global _pool
    if _pool is None:
        _pool = ConnectionPool.from_url(
            str(settings.redis_url),
            max_connections=50,
            decode_responses=True,
        )
    return _pool


@asynccontextmanager
async def redis_client() -> AsyncGenerator[redis.Redis, None]:  # type: ignore[type-arg]
    """Yield a client bound to the shared pool.

    Usage:
        async with redis_client() as client:
            await client.set("key", "value")
    """
    client = redis.Redis(connection_pool=_get_pool())
    try:
        yield client
    finally:
        await client.aclose()


async def close_redis_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None


async def ping() -> bool:
    """Readiness probe."""
    async with redis_client() as client:
        return bool(await client.ping())


class RedisCache:
    """Key/value access under a fixed prefix such as ``"session:activity:"``.

    JSON helpers go through the cache serializers so UUIDs, datetimes and
    decimals survive a round trip.
    """

    def __init__(self, prefix: str = "") -> None:
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> str | None:
        async with redis_client() as client:
            return await client.get(self._key(key))

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        async with redis_client() as client:
            await client.set(self._key(key), value, ex=ttl_seconds or None)

    async def delete(self, key: str) -> bool:
        """Delete a key; returns False if it didn't exist."""
        async with redis_client() as client:
            return await client.delete(self._key(key)) > 0

    async def exists(self, key: str) -> bool:
        async with redis_client() as client:
            return await client.exists(self._key(key)) > 0

    async def incr(self, key: str, ttl_seconds: int | None = None) -> int:
        """Increment a counter inside a fixed window.

        The window starts with the first increment: the key is created with
        ``ttl_seconds`` and later increments leave its expiry alone.

        Returns:
            The counter value after incrementing
        """
        full_key = self._key(key)
        async with redis_client() as client:
            if ttl_seconds:
                await client.set(full_key, 0, ex=ttl_seconds, nx=True)
            return int(await client.incr(full_key))

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds (negative if missing or persistent)."""
        async with redis_client() as client:
            return int(await client.ttl(self._key(key)))

    async def set_json(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        await self.set(key, serialize(value), ttl_seconds)

    async def get_json(self, key: str) -> Any | None:
        data = await self.get(key)
        return None if data is None else deserialize(data)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key under this prefix matching a glob such as ``"stats:*"``."""
        deleted = 0
        async with redis_client() as client:
            cursor = 0
            while True:
                cursor, keys = await client.scan(cursor=cursor, match=self._key(pattern), count=100)
                if keys:
                    deleted += await client.delete(*keys)
                if cursor == 0:
                    return deleted
