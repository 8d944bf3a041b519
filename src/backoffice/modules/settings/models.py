"""System settings database models."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.constants import (
    MAX_DESCRIPTION_LENGTH,
    MAX_IPV6_LENGTH,
    MAX_NAME_LENGTH,
    MAX_SETTING_KEY_LENGTH,
)
from backoffice.core.database.base import (
    AuditMixin,
    Base,
    TimestampMixin,
    UUIDMixin,
    utcnow,
)
from backoffice.core.database.types import JSONType, UTCDateTime


class Setting(Base, UUIDMixin, TimestampMixin, AuditMixin):
    """A stored setting value.

    Only settings an operator has changed (or the seed wrote) have rows;
    everything else falls back to the definition default.

    Attributes:
        key: Dotted setting key, e.g. ``security.login_max_attempts``
        value: Current value (a Fernet token string when encrypted)
        category: Category the setting belongs to
        type: Input type from the definition
        default_value: Definition default at the time the row was written
        description: Human-readable description
        is_system: System settings cannot be removed
        is_encrypted: Whether ``value`` is stored encrypted
        sort_order: Display order within the category
    """

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(
        String(MAX_SETTING_KEY_LENGTH),
        nullable=False,
        unique=True,
        index=True,
    )
    value: Mapped[Any] = mapped_column(JSONType, nullable=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    default_value: Mapped[Any] = mapped_column(JSONType, nullable=True)
    description: Mapped[str | None] = mapped_column(
        String(MAX_DESCRIPTION_LENGTH),
        nullable=True,
    )
    is_system: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_encrypted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def audit_excluded(self) -> tuple[str, ...]:
        if self.is_encrypted:
            return ("value", "default_value")
        return ()

    def __repr__(self) -> str:
        return f"<Setting({self.key})>"


class SettingChange(Base, UUIDMixin):
    """History entry for one setting change.

    Secret values are recorded masked.
    """

    __tablename__ = "setting_changes"

    setting_key: Mapped[str] = mapped_column(
        String(MAX_SETTING_KEY_LENGTH),
        nullable=False,
        index=True,
    )
    old_value: Mapped[Any] = mapped_column(JSONType, nullable=True)
    new_value: Mapped[Any] = mapped_column(JSONType, nullable=True)
    changed_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    ip_address: Mapped[str | None] = mapped_column(String(MAX_IPV6_LENGTH), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<SettingChange(key={self.setting_key}, at={self.created_at})>"


class SettingBackup(Base, UUIDMixin):
    """Named snapshot of every stored setting value."""

    __tablename__ = "setting_backups"

    name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    settings_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    created_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<SettingBackup(id={self.id}, name={self.name})>"
