"""Shared utilities for job infrastructure."""

from typing import Any

from arq.connections import RedisSettings
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.config import settings


def get_redis_settings() -> RedisSettings:
    """Build ARQ Redis settings from the configured Redis URL.

    Used by both the worker and the enqueueing pool so they always talk
    to the same Redis database.
    """
    return RedisSettings.from_dsn(str(settings.redis_url))


def session_factory_from(ctx: dict[str, Any]) -> async_sessionmaker[AsyncSession]:
    """Return the session factory the worker stored at startup.

    Raises:
        RuntimeError: If the worker was started without ``startup``
    """
    factory = ctx.get("db_session_factory")
    if factory is None:
        raise RuntimeError("Worker context has no db_session_factory")
    return factory
