"""Notification database models."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.constants import MAX_DESCRIPTION_LENGTH, MAX_NAME_LENGTH
from backoffice.core.database.base import AuditMixin, Base, TimestampMixin, UUIDMixin
from backoffice.core.database.types import JSONType, UTCDateTime


# Rule priority (1-4) to notification priority
PRIORITY_NAMES = {1: "low", 2: "normal", 3: "high", 4: "urgent"}

ACTION_TYPES = ("in_app", "webhook", "security_alert")


class NotificationRule(Base, UUIDMixin, TimestampMixin, AuditMixin):
    """A rule that notifies people when a matching activity is recorded.

    Attributes:
        name: Rule name shown to administrators
        description: What the rule watches for
        conditions: Match conditions, all of which must hold (see
            ``matching.failed_conditions``)
        actions: List of ``{"type": "in_app" | "webhook" | "security_alert", ...}``
        priority: 1 (low) to 4 (urgent); higher priority rules run first
        is_active: Inactive rules are never evaluated
        created_by: Administrator who created the rule
        triggered_count: How many activities matched
        last_triggered_at: When the rule last matched
    """

    __tablename__ = "notification_rules"

    name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    description: Mapped[str | None] = mapped_column(
        String(MAX_DESCRIPTION_LENGTH), nullable=True
    )
    conditions: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    actions: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    triggered_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_triggered_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<NotificationRule(id={self.id}, name={self.name})>"


class Notification(Base, UUIDMixin, TimestampMixin):
    """An in-app notification for one user."""

    __tablename__ = "notifications"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="activity_log")
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True, index=True)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user_id={self.user_id})>"
