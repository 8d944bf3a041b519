"""ARQ pool lifecycle and job enqueueing.

Exports that must run raise ``job_queue_unavailable`` when the queue is
down; rule evaluation and webhook delivery go through ``enqueue_optional``
and are dropped with a warning instead.
"""

from datetime import timedelta
from typing import Any

import structlog
from arq import ArqRedis, create_pool
from redis.exceptions import RedisError

from backoffice.core.errors import ServiceUnavailableError
from backoffice.core.jobs.utils import get_redis_settings


logger = structlog.get_logger()


class ArqPoolHolder:
    """Process-wide ARQ pool, set on startup and cleared on shutdown."""

    pool: ArqRedis | None = None


async def init_arq_pool() -> ArqRedis:
    if ArqPoolHolder.pool is None:
        ArqPoolHolder.pool = await create_pool(get_redis_settings())
    return ArqPoolHolder.pool


async def close_arq_pool() -> None:
    if ArqPoolHolder.pool is not None:
        await ArqPoolHolder.pool.close()
        ArqPoolHolder.pool = None


def queue_status() -> str:
    """``ok`` when the API holds a pool, ``unavailable`` otherwise."""
    return "ok" if ArqPoolHolder.pool is not None else "unavailable"


async def enqueue(
    job_name: str,
    *args: Any,
    _defer_by: timedelta | None = None,
    _job_id: str | None = None,
    **kwargs: Any,
) -> Any:
    """Queue ``job_name`` for the worker.

    Args:
        job_name: Name of a function registered in ``WorkerSettings.functions``
        *args: Positional arguments for the job
        _defer_by: Delay execution by this duration
        _job_id: Custom job ID; a duplicate ID is not queued twice
        **kwargs: Keyword arguments for the job

    Returns:
        The arq Job, or None if a job with the same ID is already queued

    Raises:
        ServiceUnavailableError: If there is no pool or Redis refuses the job
    """
    pool = ArqPoolHolder.pool
    if pool is None:
        raise ServiceUnavailableError("Job queue unavailable", error_code="job_queue_unavailable")
    try:
        return await pool.enqueue_job(
            job_name, *args, _defer_by=_defer_by, _job_id=_job_id, **kwargs
        )
    except (RedisError, OSError) as exc:
        logger.error("job_enqueue_failed", job=job_name, error=str(exc))
        raise ServiceUnavailableError(
            "Job queue unavailable", error_code="job_queue_unavailable"
        ) from exc


async def enqueue_optional(job_name: str, *args: Any, **kwargs: Any) -> Any:
    """Like ``enqueue`` but returns None with a warning when the queue is down."""
    try:
        return await enqueue(job_name, *args, **kwargs)
    except ServiceUnavailableError:
        logger.warning("job_enqueue_skipped", job=job_name)
        return None
