"""ARQ worker configuration.

Defines the worker settings including registered jobs,
cron schedules, and startup/shutdown hooks.
"""

from typing import Any, ClassVar

import structlog
from arq import cron

from backoffice.config import settings
from backoffice.core.database.session import make_engine, make_session_factory
from backoffice.core.jobs.tasks.cleanup import (
    cleanup_audit_logs,
    cleanup_expired_tokens,
    cleanup_old_activities,
    cleanup_read_notifications,
)
from backoffice.core.jobs.tasks.export import export_activities
from backoffice.core.jobs.tasks.notifications import (
    deliver_webhook,
    evaluate_notification_rules,
)
from backoffice.core.jobs.utils import get_redis_settings
from backoffice.core.logging import configure_logging


async def startup(ctx: dict[str, Any]) -> None:
    """Initialize resources for the worker.

    Called once when the worker starts. Sets up the database
    connection shared by all jobs.

    Args:
        ctx: Worker context dict (shared across all jobs)
    """
    configure_logging()
    log = structlog.get_logger()
    log.info("worker_startup", environment=settings.environment)

    engine = make_engine(pool_size=5, max_overflow=10)
    ctx["db_engine"] = engine
    ctx["db_session_factory"] = make_session_factory(engine)

    log.info("worker_startup_complete")


async def shutdown(ctx: dict[str, Any]) -> None:
    log = structlog.get_logger()
    log.info("worker_shutdown")

    engine = ctx.get("db_engine")
    if engine:
        await engine.dispose()
        log.info("database_engine_disposed")

    log.info("worker_shutdown_complete")


class WorkerSettings:
    """ARQ worker settings.

    Run the worker with:
        arq backoffice.core.jobs.worker.WorkerSettings
    """

    functions: ClassVar[list[Any]] = [
        cleanup_expired_tokens,
        cleanup_old_activities,
        cleanup_audit_logs,
        cleanup_read_notifications,
        export_activities,
        evaluate_notification_rules,
        deliver_webhook,
    ]

    cron_jobs: ClassVar[list[Any]] = [
        cron(cleanup_expired_tokens, hour=3, minute=0),
        cron(cleanup_old_activities, hour=3, minute=30),
        cron(cleanup_read_notifications, hour=4, minute=0),
        # Sundays
        cron(cleanup_audit_logs, weekday=6, hour=4, minute=30),
    ]

    on_startup = startup
    on_shutdown = shutdown

    redis_settings = get_redis_settings()

    max_jobs = 10
    job_timeout = 300  # 5 minutes per job
    keep_result = 3600
    retry_jobs = True
    max_tries = max(3, settings.notification_webhook_retries)
