"""Pytest configuration and shared fixtures."""

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from backoffice.core.audit.models import AuditLog  # noqa: F401
from backoffice.core.auth.backend import create_access_token
from backoffice.core.auth.session import session_tracker
from backoffice.core.database import Base, get_db
from backoffice.core.jobs.registry import ArqPoolHolder
from backoffice.core.permissions.models import Permission, Role, UserRole
from backoffice.core.permissions.seed import seed_rbac
from backoffice.main import create_app

# Import all models to ensure they're registered with Base.metadata
from backoffice.modules.activities.models import Activity  # noqa: F401
from backoffice.modules.notifications.models import Notification  # noqa: F401
from backoffice.modules.permissions.models import PermissionTemplate  # noqa: F401
from backoffice.modules.settings.models import Setting  # noqa: F401
from backoffice.modules.users.models import User
from tests.factories.user import UserFactory
from tests.redis_double import InMemoryRedis


TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark tests under tests/unit as ``unit`` so ``-m unit`` selects them."""
    for item in items:
        if "unit" in item.path.parts:
            item.add_marker(pytest.mark.unit)


@pytest.fixture
def redis(monkeypatch: pytest.MonkeyPatch) -> InMemoryRedis:
    """Route every Redis call in the application to an in-memory store."""
    store = InMemoryRedis()

    @asynccontextmanager
    async def client() -> AsyncGenerator[InMemoryRedis, None]:
        yield store

    for target in (
        "backoffice.core.cache.redis.redis_client",
        "backoffice.core.cache.decorators.redis_client",
        "backoffice.core.rate_limit.backend.redis_client",
        "backoffice.api.router.redis_client",
    ):
        monkeypatch.setattr(target, client)
    return store


@pytest.fixture
def arq_pool() -> Any:
    """A stand-in job queue that records enqueued jobs."""
    pool = MagicMock()
    pool.enqueue_job = AsyncMock(return_value=MagicMock(job_id="job-1"))
    ArqPoolHolder.pool = pool
    yield pool
    ArqPoolHolder.pool = None


@pytest.fixture
async def engine():
    """Create the test database engine (in-memory SQLite unless overridden)."""
    if not TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(TEST_DATABASE_URL)
    else:
        engine = create_async_engine(
            TEST_DATABASE_URL,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

        # Let SQLAlchemy own BEGIN so SAVEPOINTs behave; enforce foreign keys
        @event.listens_for(engine.sync_engine, "connect")
        def _on_connect(dbapi_connection: Any, _record: Any) -> None:
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _on_begin(conn: Any) -> None:
            conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db(engine, redis: InMemoryRedis, arq_pool: Any) -> AsyncGenerator[AsyncSession, None]:
    """Provide a transactional database session for tests.

    Each test runs in its own transaction that is rolled back after the
    test completes. Commits inside the application become savepoints.
    """
    async with engine.connect() as conn:
        await conn.begin()

        async with AsyncSession(
            bind=conn,
            expire_on_commit=False,
            autoflush=False,
            join_transaction_mode="create_savepoint",
        ) as session:
            yield session

        await conn.rollback()


@pytest.fixture
async def app(db: AsyncSession):
    """Create test application instance."""
    application = create_app()

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db

    application.dependency_overrides[get_db] = override_get_db

    yield application

    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Provide async HTTP client for API testing."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


# ============================================================
# RBAC and User Fixtures
# ============================================================


@pytest.fixture
async def roles(db: AsyncSession) -> dict[str, Role]:
    """The built-in roles and permissions."""
    return await seed_rbac(db)


async def make_user(db: AsyncSession, *role_list: Role, **overrides: Any) -> User:
    """Persist a user holding the given roles."""
    user = UserFactory.build(**overrides)
    db.add(user)
    await db.flush()
    for role in role_list:
        db.add(UserRole(user_id=user.id, role_id=role.id))
    await db.flush()
    await db.refresh(user, attribute_names=["roles"])
    return user


async def login_headers(user: User) -> dict[str, str]:
    """Authorization headers for a fresh session of ``user``."""
    session_id = uuid4()
    await session_tracker.start(session_id)
    token = create_access_token(user.id, session_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def admin(db: AsyncSession, roles: dict[str, Role]) -> User:
    """A superuser holding the super_admin role."""
    return await make_user(db, roles["super_admin"], is_superuser=True, username="root")


@pytest.fixture
async def admin_headers(admin: User) -> dict[str, str]:
    return await login_headers(admin)


@pytest.fixture
async def viewer(db: AsyncSession, roles: dict[str, Role]) -> User:
    """A user with read-only access."""
    return await make_user(db, roles["viewer"])


@pytest.fixture
async def viewer_headers(viewer: User) -> dict[str, str]:
    return await login_headers(viewer)


@pytest.fixture
async def permission_by_name(db: AsyncSession, roles: dict[str, Role]):
    """Look up a seeded permission by name."""

    async def lookup(name: str) -> Permission:
        result = await db.execute(select(Permission).where(Permission.name == name))
        return result.scalar_one()

    return lookup
