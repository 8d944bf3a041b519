"""Permission template models."""

from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.constants import MAX_DESCRIPTION_LENGTH, MAX_MODULE_LENGTH, MAX_NAME_LENGTH
from backoffice.core.database.base import AuditMixin, Base, TimestampMixin, UUIDMixin
from backoffice.core.database.types import JSONType


class PermissionTemplate(Base, UUIDMixin, TimestampMixin, AuditMixin):
    """A reusable set of actions that can be stamped onto a module.

    Applying the template to a module prefix such as ``reports`` creates
    ``reports.<action>`` for every entry that does not exist yet.

    Attributes:
        name: Unique snake_case identifier
        module: Module the template was designed for
        permissions: List of ``{"action", "display_name", "description", "type"}``
        is_system: System templates cannot be edited or deleted
        created_by: Administrator who created the template
    """

    __tablename__ = "permission_templates"

    name: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    description: Mapped[str | None] = mapped_column(
        String(MAX_DESCRIPTION_LENGTH), nullable=True
    )
    module: Mapped[str] = mapped_column(String(MAX_MODULE_LENGTH), nullable=False, index=True)
    permissions: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<PermissionTemplate(id={self.id}, name={self.name})>"
