"""Audit service for logging actions and reviewing the audit trail.

Provides the manual logging API used for changes the automatic listeners
can't describe well (permission sets, dependency links, role assignments,
imports and exports), plus search, statistics and retention cleanup.
"""

from collections import Counter
from datetime import UTC, date, datetime, time, timedelta
from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import Depends
from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import DBSession
from backoffice.core.audit.middleware import get_audit_context, serialize_value
from backoffice.core.audit.models import AuditLog
from backoffice.core.errors import NotFoundError


log = structlog.get_logger()

DEFAULT_AUDIT_RETENTION_DAYS = 365


class AuditContext:
    """Request-level information included in manual audit entries."""

    def __init__(
        self,
        user_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        request_id: str | None = None,
        session_id: UUID | None = None,
    ) -> None:
        self.user_id = user_id
        self.session_id = session_id
        self.ip_address = ip_address
        self.user_agent = user_agent
        self.request_id = request_id

    @classmethod
    def current(cls) -> "AuditContext":
        """Build a context from the request's audit ContextVar."""
        ctx = get_audit_context()
        return cls(
            user_id=ctx.get("user_id"),
            ip_address=ctx.get("ip_address"),
            user_agent=ctx.get("user_agent"),
            request_id=ctx.get("request_id"),
            session_id=ctx.get("session_id"),
        )


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=UTC)


def _day_end(value: date) -> datetime:
    return datetime.combine(value, time.max, tzinfo=UTC)


class AuditService:
    """Service for creating and querying audit log entries."""

    def __init__(
        self,
        session: AsyncSession,
        context: AuditContext | None = None,
    ) -> None:
        """Initialize audit service.

        Args:
            session: Database session
            context: Audit context with request info (defaults to the
                current request's context)
        """
        self.session = session
        self.context = context or AuditContext.current()

    async def log(
        self,
        action: str,
        resource_type: str,
        resource_id: str | None = None,
        changes: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Create an audit log entry.

        Args:
            action: Type of action (e.g., "permissions_changed", "export")
            resource_type: Type of resource (e.g., "roles", "permissions")
            resource_id: ID of the affected resource
            changes: Dictionary of field changes
            metadata: Additional context data

        Returns:
            Created audit log entry

        Example:
            await audit.log(
                action="export",
                resource_type="permissions",
                metadata={"format": "json", "total": 42}
            )
        """
        entry = AuditLog(
            user_id=self.context.user_id,
            session_id=self.context.session_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            ip_address=self.context.ip_address,
            user_agent=self.context.user_agent,
            request_id=self.context.request_id,
            changes=serialize_value(changes) if changes else None,
            metadata_=serialize_value(metadata) if metadata else None,
        )

        self.session.add(entry)
        await self.session.flush()

        log.info(
            "audit_log_created",
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            user_id=str(self.context.user_id) if self.context.user_id else None,
        )

        return entry

    async def log_permissions_changed(
        self,
        role_id: UUID,
        role_name: str,
        added: list[str],
        removed: list[str],
        auto_added: list[str] | None = None,
    ) -> AuditLog:
        """Record a change to a role's permission set."""
        return await self.log(
            action="permissions_changed",
            resource_type="roles",
            resource_id=str(role_id),
            changes={"permissions": {"added": sorted(added), "removed": sorted(removed)}},
            metadata={
                "role_name": role_name,
                "auto_added_dependencies": sorted(auto_added or []),
            },
        )

    async def log_dependencies_changed(
        self,
        permission_id: UUID,
        permission_name: str,
        old: list[str],
        new: list[str],
    ) -> AuditLog:
        """Record a change to a permission's dependencies."""
        return await self.log(
            action="dependencies_changed",
            resource_type="permissions",
            resource_id=str(permission_id),
            changes={"dependencies": {"old": sorted(old), "new": sorted(new)}},
            metadata={"permission_name": permission_name},
        )

    async def log_roles_assigned(
        self,
        user_id: UUID,
        added: list[str],
        removed: list[str],
    ) -> AuditLog:
        """Record a change to a user's roles."""
        return await self.log(
            action="roles_changed",
            resource_type="users",
            resource_id=str(user_id),
            changes={"roles": {"added": sorted(added), "removed": sorted(removed)}},
        )

    async def log_transfer(
        self,
        action: str,
        resource_type: str,
        summary: dict[str, Any],
    ) -> AuditLog:
        """Record an import or export."""
        return await self.log(action=action, resource_type=resource_type, metadata=summary)

    async def log_permission_denied(
        self,
        resource_type: str,
        resource_id: str | None,
        required_permission: str,
    ) -> AuditLog:
        return await self.log(
            action="permission_denied",
            resource_type=resource_type,
            resource_id=resource_id,
            metadata={"required_permission": required_permission},
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get(self, entry_id: UUID) -> AuditLog:
        entry = await self.session.get(AuditLog, entry_id)
        if entry is None:
            raise NotFoundError(
                "Audit entry not found",
                resource="audit_log",
                resource_id=str(entry_id),
            )
        return entry

    def _apply_filters(
        self, stmt: Select[Any], filters: dict[str, Any]
    ) -> Select[Any]:
        if filters.get("action"):
            stmt = stmt.where(AuditLog.action == filters["action"])
        if filters.get("resource_type"):
            stmt = stmt.where(AuditLog.resource_type == filters["resource_type"])
        if filters.get("resource_id"):
            stmt = stmt.where(AuditLog.resource_id == str(filters["resource_id"]))
        if filters.get("user_id"):
            stmt = stmt.where(AuditLog.user_id == filters["user_id"])
        if filters.get("date_from"):
            stmt = stmt.where(AuditLog.created_at >= _day_start(filters["date_from"]))
        if filters.get("date_to"):
            stmt = stmt.where(AuditLog.created_at <= _day_end(filters["date_to"]))
        if filters.get("search"):
            term = f"%{filters['search']}%"
            stmt = stmt.where(
                or_(
                    AuditLog.action.ilike(term),
                    AuditLog.resource_type.ilike(term),
                    AuditLog.resource_id.ilike(term),
                    AuditLog.ip_address.ilike(term),
                )
            )
        return stmt

    async def search(
        self,
        filters: dict[str, Any],
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[AuditLog], int]:
        """Search the audit trail, newest first.

        Args:
            filters: action, resource_type, resource_id, user_id,
                date_from, date_to (dates, inclusive) and search
            page: Page number (1-indexed)
            page_size: Number of items per page

        Returns:
            Tuple of (entries, total count)
        """
        count_stmt = self._apply_filters(select(func.count(AuditLog.id)), filters)
        total = (await self.session.execute(count_stmt)).scalar_one()

        stmt = (
            self._apply_filters(select(AuditLog), filters)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def _entries_since(self, since: datetime) -> list[AuditLog]:
        result = await self.session.execute(
            select(AuditLog).where(AuditLog.created_at >= since)
        )
        return list(result.scalars().all())

    async def get_stats(self, days: int = 30) -> dict[str, Any]:
        """Summary statistics over the last ``days`` days.

        Daily counts are filled with zeros for days without entries.
        """
        today = datetime.now(UTC).date()
        start = today - timedelta(days=days - 1)
        entries = await self._entries_since(_day_start(start))

        daily = Counter(entry.created_at.date().isoformat() for entry in entries)
        daily_activity = {
            (start + timedelta(days=i)).isoformat(): daily.get(
                (start + timedelta(days=i)).isoformat(), 0
            )
            for i in range(days)
        }
        most_active_day = max(daily_activity, key=lambda d: daily_activity[d]) if entries else None

        return {
            "period_days": days,
            "total_actions": len(entries),
            "unique_users": len({e.user_id for e in entries if e.user_id}),
            "unique_resources": len(
                {(e.resource_type, e.resource_id) for e in entries if e.resource_id}
            ),
            "actions_by_type": dict(Counter(e.action for e in entries).most_common()),
            "actions_by_resource": dict(
                Counter(e.resource_type for e in entries).most_common()
            ),
            "daily_activity": daily_activity,
            "most_active_day": most_active_day,
            "average_daily_activity": round(len(entries) / days, 2) if days else 0,
        }

    async def get_detailed_analysis(self, days: int = 30) -> dict[str, Any]:
        """User and hour-of-day breakdown over the last ``days`` days."""
        since = datetime.now(UTC) - timedelta(days=days)
        entries = await self._entries_since(since)

        hourly = Counter(entry.created_at.hour for entry in entries)
        hourly_activity = {hour: hourly.get(hour, 0) for hour in range(24)}
        top_users = [
            {"user_id": str(user_id), "count": count}
            for user_id, count in Counter(
                e.user_id for e in entries if e.user_id
            ).most_common(10)
        ]

        return {
            "period_days": days,
            "total_actions": len(entries),
            "actions_by_type": dict(Counter(e.action for e in entries).most_common()),
            "actions_by_resource": dict(
                Counter(e.resource_type for e in entries).most_common()
            ),
            "top_users": top_users,
            "hourly_activity": hourly_activity,
            "peak_hour": max(hourly_activity, key=lambda h: hourly_activity[h])
            if entries
            else None,
        }

    async def get_cleanup_stats(
        self, days_to_keep: int = DEFAULT_AUDIT_RETENTION_DAYS
    ) -> dict[str, Any]:
        """Preview what ``cleanup`` would remove."""
        cutoff = datetime.now(UTC) - timedelta(days=days_to_keep)
        total = (await self.session.execute(select(func.count(AuditLog.id)))).scalar_one()
        expired = (
            await self.session.execute(
                select(func.count(AuditLog.id)).where(AuditLog.created_at < cutoff)
            )
        ).scalar_one()
        oldest = (
            await self.session.execute(select(func.min(AuditLog.created_at)))
        ).scalar_one_or_none()

        return {
            "total_records": total,
            "records_to_delete": expired,
            "records_to_keep": total - expired,
            "cutoff_date": cutoff.isoformat(),
            "oldest_record": oldest.isoformat() if oldest else None,
        }

    async def cleanup(self, days_to_keep: int = DEFAULT_AUDIT_RETENTION_DAYS) -> int:
        """Delete entries older than ``days_to_keep`` days.

        Returns:
            Number of entries deleted
        """
        cutoff = datetime.now(UTC) - timedelta(days=days_to_keep)
        result = await self.session.execute(
            delete(AuditLog).where(AuditLog.created_at < cutoff)
        )
        deleted = result.rowcount or 0
        log.info("audit_logs_cleaned_up", deleted=deleted, days_to_keep=days_to_keep)
        return deleted

    async def export(self, filters: dict[str, Any]) -> dict[str, Any]:
        """Export matching entries as a JSON-ready document."""
        stmt = self._apply_filters(select(AuditLog), filters).order_by(
            AuditLog.created_at.desc()
        )
        entries = list((await self.session.execute(stmt)).scalars().all())

        await self.log_transfer(
            "export",
            "audit_logs",
            {"total": len(entries), "filters": serialize_value(filters)},
        )

        return {
            "export_info": {
                "exported_at": datetime.now(UTC).isoformat(),
                "total_records": len(entries),
                "filters": serialize_value(filters),
            },
            "entries": [
                {
                    "id": str(e.id),
                    "user_id": str(e.user_id) if e.user_id else None,
                    "session_id": str(e.session_id) if e.session_id else None,
                    "action": e.action,
                    "resource_type": e.resource_type,
                    "resource_id": e.resource_id,
                    "ip_address": e.ip_address,
                    "request_id": e.request_id,
                    "changes": e.changes,
                    "metadata": e.metadata_,
                    "created_at": e.created_at.isoformat(),
                }
                for e in entries
            ],
        }


def get_audit_service(db: DBSession) -> AuditService:
    return AuditService(db)


AuditSvc = Annotated[AuditService, Depends(get_audit_service)]
