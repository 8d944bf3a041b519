"""Access policy for the activity log."""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ClassVar

import structlog

from backoffice.config import settings
from backoffice.core.audit import get_audit_context
from backoffice.core.constants import HIGH_RISK_LEVEL
from backoffice.core.errors import ForbiddenError, RateLimitError
from backoffice.core.permissions.policy import Policy
from backoffice.core.rate_limit.backend import rate_limiter
from backoffice.modules.activities.logger import filter_sensitive
from backoffice.modules.activities.models import SECURITY_ACTIVITY_TYPES, Activity


if TYPE_CHECKING:
    from backoffice.modules.users.models import User


logger = structlog.get_logger()

ACCESS_WINDOW_SECONDS = 3600
USER_AGENT_PREVIEW_LENGTH = 50


def mask_ip(ip_address: str | None) -> str | None:
    """Keep the network part of an address: ``10.1.2.3`` becomes ``10.1.2.*``."""
    if not ip_address:
        return ip_address
    if "." in ip_address:
        return ".".join([*ip_address.split(".")[:3], "*"])
    # IPv6: keep the first four groups
    return ":".join([*ip_address.split(":")[:4], "*"])


def is_sensitive_activity(activity: Activity) -> bool:
    return activity.type in SECURITY_ACTIVITY_TYPES or activity.risk_level >= HIGH_RISK_LEVEL


class ActivityPolicy(Policy):
    """Who may see, export and delete activity rows.

    Beyond the permission mapping, sensitive rows need ``security.view``,
    and users without it only see their own activity. Access can further
    be limited by client address and hour of day through configuration.
    """

    resource: ClassVar[str] = "activity"
    action_permissions: ClassVar[dict[str, str]] = {
        "view": "activity_logs.view",
        "export": "activity_logs.export",
        "delete": "activity_logs.delete",
        "manage": "activity_logs.manage",
        "audit": "security.audit",
        "view_raw": "security.audit",
    }

    async def check_object(self, user: "User", action: str, obj: Any) -> str | None:
        if user.is_superuser:
            return None
        if is_sensitive_activity(obj) and not await self.can(user, "security.view"):
            return "sensitive_activity"
        if obj.user_id != user.id and not await self.can(user, "security.view"):
            return "activity_not_owned"
        return None

    async def authorize(self, user: "User", action: str, obj: Any = None) -> None:
        await self._check_access_window(user)
        await self._check_rate_limit(user, action)
        await super().authorize(user, action, obj)

    async def _check_access_window(self, user: "User") -> None:
        if user.is_superuser:
            return
        if settings.activity_allowed_hours:
            hour = datetime.now(UTC).hour
            if hour not in settings.activity_allowed_hours:
                raise ForbiddenError(
                    "Activity logs cannot be accessed at this time",
                    error_code="activity_access_hours",
                )
        if settings.activity_allowed_ips:
            ip_address = get_audit_context().get("ip_address")
            if ip_address not in settings.activity_allowed_ips:
                raise ForbiddenError(
                    "Activity logs cannot be accessed from this address",
                    error_code="activity_access_ip",
                )

    async def _check_rate_limit(self, user: "User", action: str) -> None:
        if not settings.rate_limit_enabled:
            return
        result = await rate_limiter.is_allowed(
            f"user:{user.id}",
            limit=settings.activity_access_rate_limit,
            window=ACCESS_WINDOW_SECONDS,
            endpoint=f"activity_access:{action}",
        )
        if not result.allowed:
            logger.warning("activity_access_rate_limited", user_id=str(user.id), action=action)
            raise RateLimitError(
                "Too many activity log requests",
                details={"retry_after": result.retry_after},
            )

    async def filter_activity_data(self, data: dict[str, Any], user: "User") -> dict[str, Any]:
        """Redact a serialized activity for users without ``security.audit``.

        Sensitive properties are filtered, the IP address is masked, the
        user agent is shortened and the signature is dropped.
        """
        if await self.can(user, "security.audit"):
            return data

        redacted = dict(data)
        redacted["properties"] = filter_sensitive(data.get("properties"))
        redacted["ip_address"] = mask_ip(data.get("ip_address"))
        user_agent = data.get("user_agent")
        if user_agent and len(user_agent) > USER_AGENT_PREVIEW_LENGTH:
            redacted["user_agent"] = user_agent[:USER_AGENT_PREVIEW_LENGTH] + "..."
        redacted["signature"] = None
        return redacted
