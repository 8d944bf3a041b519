"""Activity log database models."""

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.constants import (
    HIGH_RISK_LEVEL,
    MAX_ACTIVITY_TYPE_LENGTH,
    MAX_IPV6_LENGTH,
    MAX_MODULE_LENGTH,
    MAX_NAME_LENGTH,
    SHA256_HEX_LENGTH,
)
from backoffice.core.database.base import (
    AuditMixin,
    Base,
    TimestampMixin,
    UUIDMixin,
    utcnow,
)
from backoffice.core.database.types import JSONType, UTCDateTime


if TYPE_CHECKING:
    from backoffice.modules.users.models import User


ACTIVITY_RESULTS = ("success", "failed", "warning")

# Activity types treated as security events regardless of risk level
SECURITY_ACTIVITY_TYPES = (
    "login_failed",
    "account_locked",
    "password_changed",
    "permission_denied",
    "permission_escalation",
    "sensitive_data_access",
    "system_config_change",
    "suspicious_ip_access",
    "bulk_operation",
    "session_revoked",
)

RETENTION_ACTIONS = ("delete", "archive")


class _ActivityColumns:
    """Columns shared by live and archived activities."""

    type: Mapped[str] = mapped_column(
        String(MAX_ACTIVITY_TYPE_LENGTH), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    module: Mapped[str | None] = mapped_column(
        String(MAX_MODULE_LENGTH), nullable=True, index=True
    )
    user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    subject_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    subject_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    properties: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(
        String(MAX_IPV6_LENGTH), nullable=True, index=True
    )
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    result: Mapped[str] = mapped_column(String(20), default="success", nullable=False)
    risk_level: Mapped[int] = mapped_column(Integer, default=1, nullable=False, index=True)
    signature: Mapped[str | None] = mapped_column(String(SHA256_HEX_LENGTH), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    @property
    def is_security_event(self) -> bool:
        return self.type in SECURITY_ACTIVITY_TYPES or self.risk_level >= HIGH_RISK_LEVEL


class Activity(_ActivityColumns, Base, UUIDMixin):
    """A recorded user or system action.

    Attributes:
        type: Activity type, e.g. ``login`` or ``setting_changed``
        description: Human-readable summary
        module: Module the action happened in
        user_id: Acting user (None for system activity)
        subject_type: Type of the affected record, e.g. ``users``
        subject_id: ID of the affected record
        properties: Extra context with sensitive keys filtered
        ip_address: Client address
        user_agent: Client user agent
        result: success, failed or warning
        risk_level: 1 (routine) to 10 (critical)
        signature: HMAC-SHA256 over the canonical fields
        created_at: When the action happened
    """

    __tablename__ = "activities"

    user: Mapped["User | None"] = relationship("User", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Activity(id={self.id}, type={self.type}, risk={self.risk_level})>"


class ArchivedActivity(_ActivityColumns, Base, UUIDMixin):
    """An activity moved out of the live table by a retention policy."""

    __tablename__ = "archived_activities"

    original_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    archived_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    archive_reason: Mapped[str | None] = mapped_column(String(MAX_NAME_LENGTH), nullable=True)

    def __repr__(self) -> str:
        return f"<ArchivedActivity(original_id={self.original_id}, type={self.type})>"


class RetentionPolicy(Base, UUIDMixin, TimestampMixin, AuditMixin):
    """Rule deciding how long matching activities are kept.

    Attributes:
        name: Policy label
        activity_type: Only activities of this type (None matches all)
        module: Only activities of this module (None matches all)
        retention_days: Activities older than this are processed
        action: ``delete`` or ``archive``
        is_active: Inactive policies are skipped
        priority: Higher priority policies run first
        last_executed_at: When the policy last ran (not on dry runs)
    """

    __tablename__ = "retention_policies"

    name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    activity_type: Mapped[str | None] = mapped_column(
        String(MAX_ACTIVITY_TYPE_LENGTH), nullable=True
    )
    module: Mapped[str | None] = mapped_column(String(MAX_MODULE_LENGTH), nullable=True)
    retention_days: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(20), default="delete", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_executed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<RetentionPolicy(name={self.name}, days={self.retention_days})>"
