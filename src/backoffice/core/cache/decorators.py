"""Result caching for expensive async reads (activity statistics, recent feeds)."""

from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

import structlog

from backoffice.core.cache.redis import redis_client
from backoffice.core.cache.serializers import deserialize, serialize


P = ParamSpec("P")
T = TypeVar("T")

logger = structlog.get_logger()


def cached(
    ttl: int,
    key_builder: Callable[..., str],
    namespace: str = "cache",
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Cache an async function's result in Redis for ``ttl`` seconds.

    The key is ``{namespace}:{key_builder(*args, **kwargs)}``. Writers clear
    a namespace with ``RedisCache(namespace + ":").delete_pattern("*")``.

    Example:
        @cached(ttl=300, key_builder=lambda self, days: f"stats:{days}")
        async def stats(self, days: int) -> dict:
            ...
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            key = f"{namespace}:{key_builder(*args, **kwargs)}"

            async with redis_client() as client:
                hit = await client.get(key)
            if hit is not None:
                logger.debug("cache_hit", key=key)
                value: T = deserialize(hit)
                return value

            result = await func(*args, **kwargs)
            async with redis_client() as client:
                await client.set(key, serialize(result), ex=ttl)
            return result

        return wrapper

    return decorator
