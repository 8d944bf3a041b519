"""Redis-backed caching: shared client, namespaced helper and ``@cached``."""

from backoffice.core.cache.decorators import cached
from backoffice.core.cache.redis import RedisCache, close_redis_pool, redis_client
from backoffice.core.cache.serializers import deserialize, json_default, serialize


__all__ = [
    "RedisCache",
    "cached",
    "close_redis_pool",
    "deserialize",
    "json_default",
    "redis_client",
    "serialize",
]
