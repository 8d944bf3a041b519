"""Activity logger: records user and security activity.

Sensitive property keys are filtered before anything is stored, rows are
signed when integrity protection is enabled, and every recorded activity
is handed to the notification rules in the background.
"""

from collections.abc import Sequence
from datetime import timedelta
from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import Depends
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import DBSession
from backoffice.config import settings
from backoffice.core.audit import get_audit_context
from backoffice.core.audit.middleware import serialize_value
from backoffice.core.cache import RedisCache
from backoffice.core.constants import ACTIVITY_BATCH_SIZE, FILTERED_VALUE, MAX_RISK_LEVEL
from backoffice.core.database.base import utcnow
from backoffice.core.jobs.registry import enqueue_optional
from backoffice.modules.activities.integrity import sign
from backoffice.modules.activities.models import Activity, SECURITY_ACTIVITY_TYPES
from backoffice.modules.settings.reader import SettingsReader


logger = structlog.get_logger()

SENSITIVE_KEYS = ("password", "token", "secret", "key", "credit_card", "ssn", "api_key")

SECURITY_BASE_RISK = {
    "login_failed": 3,
    "permission_escalation": 8,
    "sensitive_data_access": 6,
    "system_config_change": 7,
    "suspicious_ip_access": 5,
    "bulk_operation": 4,
}

HIGH_RISK_SETTING_PATTERNS = (
    "security.",
    "integration.",
    "notification.smtp",
    "maintenance.maintenance_mode",
    "performance.cache",
)
MEDIUM_RISK_SETTING_PATTERNS = ("app.name", "app.url", "timezone", "locale")

recent_cache = RedisCache(prefix="activity_repository:")

NOTIFICATION_DELAY = timedelta(seconds=2)


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def filter_sensitive(data: Any) -> Any:
    """Replace values under sensitive keys with ``[FILTERED]``, recursively."""
    if isinstance(data, dict):
        return {
            key: FILTERED_VALUE
            if is_sensitive_key(str(key)) and not isinstance(value, dict | list)
            else filter_sensitive(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [filter_sensitive(item) for item in data]
    return data


def security_risk_level(event: str, context: dict[str, Any]) -> int:
    """Risk level for a security event, adjusted by its context (max 10)."""
    risk = SECURITY_BASE_RISK.get(event, 2)
    if context.get("failed_attempts", 0) > 5:
        risk += 2
    if context.get("unusual_time"):
        risk += 1
    if context.get("unknown_ip"):
        risk += 2
    return min(risk, MAX_RISK_LEVEL)


def setting_risk_level(key: str) -> int:
    lowered = key.lower()
    if any(pattern in lowered for pattern in HIGH_RISK_SETTING_PATTERNS):
        return 7
    if any(pattern in lowered for pattern in MEDIUM_RISK_SETTING_PATTERNS):
        return 4
    return 2


class ActivityLogger:
    """Records activities for the current request or job.

    Request context (user, client address, user agent) is taken from the
    audit context unless given explicitly.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _logging_enabled(self, activity_type: str) -> bool:
        # Security events are recorded even when activity logging is off
        if activity_type in SECURITY_ACTIVITY_TYPES:
            return True
        return await SettingsReader(self.session).get_bool("security.enable_audit_logging")

    def _prepare(
        self,
        activity_type: str,
        description: str,
        *,
        module: str | None = None,
        user_id: UUID | None = None,
        subject_type: str | None = None,
        subject_id: Any = None,
        properties: dict[str, Any] | None = None,
        result: str = "success",
        risk_level: int = 1,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> dict[str, Any]:
        context = get_audit_context()
        fields: dict[str, Any] = {
            "type": activity_type,
            "description": description,
            "module": module,
            "user_id": user_id if user_id is not None else context.get("user_id"),
            "subject_type": subject_type,
            "subject_id": str(subject_id) if subject_id is not None else None,
            "properties": filter_sensitive(serialize_value(properties)) if properties else None,
            "ip_address": ip_address or context.get("ip_address"),
            "user_agent": user_agent or context.get("user_agent"),
            "result": result,
            "risk_level": max(1, min(risk_level, MAX_RISK_LEVEL)),
            "created_at": utcnow(),
        }
        fields["signature"] = sign(fields) if settings.activity_integrity_enabled else None
        return fields

    async def log(
        self,
        activity_type: str,
        description: str,
        **kwargs: Any,
    ) -> Activity | None:
        """Record an activity.

        Args:
            activity_type: Activity type, e.g. ``user_created``
            description: Human-readable summary
            **kwargs: module, user_id, subject_type, subject_id, properties,
                result, risk_level, ip_address, user_agent

        Returns:
            The stored activity, or None when activity logging is disabled
        """
        if not await self._logging_enabled(activity_type):
            return None

        activity = Activity(**self._prepare(activity_type, description, **kwargs))
        self.session.add(activity)
        await self.session.flush()

        logger.info(
            "activity_logged",
            activity_id=str(activity.id),
            type=activity.type,
            user_id=str(activity.user_id) if activity.user_id else None,
            risk_level=activity.risk_level,
        )

        await recent_cache.delete_pattern("recent:*")
        # Deferred so the job runs after the request transaction commits
        await enqueue_optional(
            "evaluate_notification_rules",
            str(activity.id),
            _defer_by=NOTIFICATION_DELAY,
        )
        return activity

    async def log_batch(self, items: Sequence[dict[str, Any]]) -> int:
        """Insert many activities in chunks.

        Args:
            items: Dicts with ``type`` and ``description`` plus any of the
                keyword arguments accepted by ``log``

        Returns:
            Number of activities inserted
        """
        rows = []
        for item in items:
            data = dict(item)
            rows.append(self._prepare(data.pop("type"), data.pop("description"), **data))

        for start in range(0, len(rows), ACTIVITY_BATCH_SIZE):
            await self.session.execute(insert(Activity), rows[start : start + ACTIVITY_BATCH_SIZE])

        logger.info("activity_batch_logged", count=len(rows))
        return len(rows)

    async def log_security_event(
        self,
        event: str,
        description: str,
        context: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Activity | None:
        context = context or {}
        kwargs.setdefault("result", "warning")
        return await self.log(
            event,
            description,
            module="security",
            risk_level=security_risk_level(event, context),
            properties=context,
            **kwargs,
        )

    async def log_login(self, user_id: UUID, **kwargs: Any) -> Activity | None:
        return await self.log(
            "login", "User logged in", module="auth", user_id=user_id, risk_level=2, **kwargs
        )

    async def log_logout(self, user_id: UUID, **kwargs: Any) -> Activity | None:
        return await self.log(
            "logout", "User logged out", module="auth", user_id=user_id, risk_level=1, **kwargs
        )

    async def log_login_failed(
        self,
        email: str,
        failed_attempts: int,
        **kwargs: Any,
    ) -> Activity | None:
        return await self.log_security_event(
            "login_failed",
            f"Failed login for {email}",
            {"email": email, "failed_attempts": failed_attempts},
            result="failed",
            **kwargs,
        )

    async def log_password_changed(self, user_id: UUID, **kwargs: Any) -> Activity | None:
        return await self.log(
            "password_changed",
            "Password changed",
            module="auth",
            user_id=user_id,
            subject_type="users",
            subject_id=user_id,
            risk_level=4,
            **kwargs,
        )

    async def log_role_assigned(
        self, user_id: UUID, role_names: list[str], **kwargs: Any
    ) -> Activity | None:
        return await self.log(
            "role_assigned",
            f"Assigned roles: {', '.join(role_names)}",
            module="users",
            subject_type="users",
            subject_id=user_id,
            properties={"roles": role_names},
            risk_level=5,
            **kwargs,
        )

    async def log_role_removed(
        self, user_id: UUID, role_names: list[str], **kwargs: Any
    ) -> Activity | None:
        return await self.log(
            "role_removed",
            f"Removed roles: {', '.join(role_names)}",
            module="users",
            subject_type="users",
            subject_id=user_id,
            properties={"roles": role_names},
            risk_level=5,
            **kwargs,
        )

    async def log_user_status_changed(
        self, user_id: UUID, is_active: bool, **kwargs: Any
    ) -> Activity | None:
        return await self.log(
            "user_status_changed",
            "User activated" if is_active else "User deactivated",
            module="users",
            subject_type="users",
            subject_id=user_id,
            properties={"is_active": is_active},
            risk_level=4 if not is_active else 3,
            **kwargs,
        )

    async def log_data_export(
        self, data_type: str, properties: dict[str, Any] | None = None, **kwargs: Any
    ) -> Activity | None:
        return await self.log(
            "data_export",
            f"Exported {data_type}",
            module=data_type,
            properties={"data_type": data_type, **(properties or {})},
            risk_level=4,
            **kwargs,
        )

    async def log_data_import(
        self, data_type: str, properties: dict[str, Any] | None = None, **kwargs: Any
    ) -> Activity | None:
        return await self.log(
            "data_import",
            f"Imported {data_type}",
            module=data_type,
            properties={"data_type": data_type, **(properties or {})},
            risk_level=5,
            **kwargs,
        )

    async def log_setting_changed(
        self,
        key: str,
        old_value: Any,
        new_value: Any,
        category: str | None = None,
        secret: bool = False,
        **kwargs: Any,
    ) -> Activity | None:
        """Record a setting change; ``secret`` values are stored as ``[FILTERED]``."""
        return await self.log(
            "setting_changed",
            f"Changed setting {key}",
            module="settings",
            subject_type="settings",
            subject_id=key,
            properties={
                "setting": key,
                "old": FILTERED_VALUE if secret else old_value,
                "new": FILTERED_VALUE if secret else new_value,
                "category": category or "general",
            },
            risk_level=setting_risk_level(key),
            **kwargs,
        )


def get_activity_logger(db: DBSession) -> ActivityLogger:
    return ActivityLogger(db)


ActivityLog = Annotated[ActivityLogger, Depends(get_activity_logger)]
