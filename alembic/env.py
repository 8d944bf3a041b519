"""Alembic migration environment (async engine)."""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from backoffice.config import settings
from backoffice.core.database.base import Base

# Imported for their side effect of registering tables on Base.metadata
from backoffice.core.audit import models as audit_models  # noqa: F401
from backoffice.core.permissions import models as permission_models  # noqa: F401
from backoffice.modules.activities import models as activity_models  # noqa: F401
from backoffice.modules.notifications import models as notification_models  # noqa: F401
from backoffice.modules.permissions import models as template_models  # noqa: F401
from backoffice.modules.settings import models as setting_models  # noqa: F401
from backoffice.modules.users import models as user_models  # noqa: F401


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=settings.async_database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(settings.async_database_url)
    async with engine.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
