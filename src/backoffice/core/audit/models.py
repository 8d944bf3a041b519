"""Audit trail of administrative changes.

Rows are written by the flush listeners for audited models (roles,
permissions, settings, notification rules) and by ``AuditService.log`` for
actions without a row change such as exports and role syncs. Each entry
records the acting user and the login session it came from.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.constants import MAX_IPV6_LENGTH
from backoffice.core.database.base import Base, UUIDMixin, utcnow
from backoffice.core.database.types import JSONType, UTCDateTime


class AuditLog(Base, UUIDMixin):
    """One audited action.

    ``changes`` maps each field to ``{"old": ..., "new": ...}``;
    ``metadata_`` (column ``metadata``) holds free-form context.
    """

    __tablename__ = "audit_logs"

    user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    session_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)

    action: Mapped[str] = mapped_column(String(50), index=True)
    resource_type: Mapped[str] = mapped_column(String(100), index=True)
    resource_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    ip_address: Mapped[str | None] = mapped_column(String(MAX_IPV6_LENGTH), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    changes: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, server_default=func.now(), index=True
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.resource_type}:{self.resource_id}>"
