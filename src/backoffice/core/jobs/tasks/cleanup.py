"""Cleanup tasks for expired data.

Background jobs that remove expired tokens, old activity entries,
old audit entries and read notifications.
"""

from datetime import UTC, datetime
from typing import Any

import structlog

from backoffice.core.audit.service import AuditService
from backoffice.core.jobs.utils import session_factory_from
from backoffice.modules.activities.retention import RetentionService
from backoffice.modules.notifications.services import NotificationService
from backoffice.modules.settings.reader import SettingsReader
from backoffice.modules.users.repos import RefreshTokenRepository


log = structlog.get_logger()


async def cleanup_expired_tokens(ctx: dict[str, Any]) -> dict[str, int]:
    """Delete expired and revoked refresh tokens.

    Scheduled daily at 3 AM to keep the token table small.

    Args:
        ctx: Worker context containing database session factory

    Returns:
        Dict with the number of deleted tokens
    """
    session_factory = session_factory_from(ctx)

    async with session_factory() as session:
        deleted = await RefreshTokenRepository(session).cleanup_expired(datetime.now(UTC))
        await session.commit()

    log.info("cleanup_expired_tokens_complete", refresh_tokens_deleted=deleted)
    return {"refresh_tokens_deleted": deleted}


async def cleanup_old_activities(ctx: dict[str, Any]) -> dict[str, Any]:
    """Apply activity retention.

    Entries older than ``security.audit_log_retention_days`` are deleted,
    then every active retention policy runs.
    """
    session_factory = session_factory_from(ctx)

    async with session_factory() as session:
        service = RetentionService(session)
        days = await SettingsReader(session).get_int("security.audit_log_retention_days")
        baseline = await service.manual_cleanup({"older_than_days": days}, action="delete")
        policies = await service.execute_all_policies()
        await session.commit()

    log.info(
        "cleanup_old_activities_complete",
        retention_days=days,
        deleted=baseline["processed"],
        policies_run=len(policies),
    )
    return {
        "retention_days": days,
        "deleted": baseline["processed"],
        "policies": [
            {"policy": r["policy"], "processed": r["processed"], "error": r.get("error")}
            for r in policies
        ],
    }


async def cleanup_audit_logs(ctx: dict[str, Any]) -> dict[str, int]:
    """Delete audit entries past the default retention window."""
    session_factory = session_factory_from(ctx)

    async with session_factory() as session:
        deleted = await AuditService(session).cleanup()
        await session.commit()

    log.info("cleanup_audit_logs_complete", deleted=deleted)
    return {"audit_logs_deleted": deleted}


async def cleanup_read_notifications(ctx: dict[str, Any]) -> dict[str, int]:
    session_factory = session_factory_from(ctx)

    async with session_factory() as session:
        deleted = await NotificationService(session).cleanup()
        await session.commit()

    log.info("cleanup_read_notifications_complete", deleted=deleted)
    return {"notifications_deleted": deleted}
