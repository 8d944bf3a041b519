"""Async engine and session management.

The API process uses the module-level ``async_engine``; the worker builds
its own engine with ``make_engine`` on startup.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from backoffice.config import settings


def make_engine(
    url: str | None = None,
    pool_size: int | None = None,
    max_overflow: int | None = None,
) -> AsyncEngine:
    """Create an engine for ``url`` (default: the configured database).

    SQLite URLs get no pool sizing; their drivers use a single-connection pool.
    """
    url = url or settings.async_database_url
    options: dict[str, Any] = {"echo": settings.database_echo}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=pool_size or settings.database_pool_size,
            max_overflow=max_overflow or settings.database_max_overflow,
            pool_pre_ping=True,
        )
    return create_async_engine(url, **options)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


async_engine = make_engine()
async_session_factory = make_session_factory(async_engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session: commit when the handler returns, roll back on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
