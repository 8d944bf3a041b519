"""Background job processing with ARQ.

Provides Redis-based async background jobs for activity exports,
notification rule evaluation, webhook delivery and scheduled cleanup.
"""

from backoffice.core.jobs.registry import (
    close_arq_pool,
    enqueue,
    enqueue_optional,
    init_arq_pool,
    queue_status,
)


__all__ = [
    "close_arq_pool",
    "enqueue",
    "enqueue_optional",
    "init_arq_pool",
    "queue_status",
]
