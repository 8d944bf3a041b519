"""Permission system database models.

This module defines the RBAC (Role-Based Access Control) models:
- Permission: a named action ``module.action`` that may depend on others
- Role: a named set of permissions that inherits from an optional parent
- UserRole: junction table linking users to roles
"""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Column, ForeignKey, Select, String, Table, Uuid, select
from sqlalchemy.orm import Mapped, mapped_column, relationship, selectinload

from backoffice.core.constants import (
    MAX_DESCRIPTION_LENGTH,
    MAX_MODULE_LENGTH,
    MAX_NAME_LENGTH,
    MAX_PERMISSION_NAME_LENGTH,
    MAX_ROLE_NAME_LENGTH,
)
from backoffice.core.database.base import AuditMixin, Base, TimestampMixin, UUIDMixin


if TYPE_CHECKING:
    from backoffice.modules.users.models import User


WILDCARD = "*"

PERMISSION_TYPES = ("view", "create", "edit", "delete", "manage")


# Junction table for Role <-> Permission many-to-many relationship
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column(
        "role_id", Uuid, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True
    ),
    Column(
        "permission_id",
        Uuid,
        ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)

# A permission requires every permission it depends on
permission_dependencies = Table(
    "permission_dependencies",
    Base.metadata,
    Column(
        "permission_id",
        Uuid,
        ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "depends_on_permission_id",
        Uuid,
        ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Permission(Base, UUIDMixin, TimestampMixin, AuditMixin):
    """Permission model.

    Attributes:
        name: Unique dotted name, e.g. ``roles.edit`` or ``activity_logs.*``
        display_name: Label shown to administrators
        description: Human-readable description
        module: Module the permission belongs to (the name prefix)
        type: One of view, create, edit, delete, manage
        is_system: System permissions cannot be deleted
    """

    __tablename__ = "permissions"

    name: Mapped[str] = mapped_column(
        String(MAX_PERMISSION_NAME_LENGTH),
        nullable=False,
        unique=True,
        index=True,
    )
    display_name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    description: Mapped[str | None] = mapped_column(
        String(MAX_DESCRIPTION_LENGTH),
        nullable=True,
    )
    module: Mapped[str] = mapped_column(
        String(MAX_MODULE_LENGTH),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="view")
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Direct dependencies only; use PermissionGraph for transitive chains
    dependencies: Mapped[list["Permission"]] = relationship(
        "Permission",
        secondary=permission_dependencies,
        primaryjoin=lambda: Permission.id == permission_dependencies.c.permission_id,
        secondaryjoin=lambda: Permission.id
        == permission_dependencies.c.depends_on_permission_id,
        lazy="selectin",
    )
    roles: Mapped[list["Role"]] = relationship(
        "Role",
        secondary=role_permissions,
        back_populates="permissions",
        lazy="raise",
        passive_deletes=True,
    )

    @property
    def action(self) -> str:
        """The part of the name after the module prefix."""
        return self.name.split(".", 1)[1] if "." in self.name else self.name

    def grants(self, name: str) -> bool:
        """Check whether this permission grants ``name``, honouring wildcards.

        ``*`` grants everything and ``module.*`` grants every action in
        that module.
        """
        if self.name in (name, WILDCARD):
            return True
        if self.name.endswith(".*"):
            return name.startswith(self.name[:-1])
        return False

    def __repr__(self) -> str:
        return f"<Permission({self.name})>"


class Role(Base, UUIDMixin, TimestampMixin, AuditMixin):
    """Role model representing a named set of permissions.

    Roles form a tree through ``parent_id``; a role inherits every
    permission of its ancestors.

    Attributes:
        name: Unique snake_case identifier
        display_name: Label shown to administrators
        description: Human-readable description
        parent_id: Parent role to inherit permissions from
        is_system: System roles cannot be deleted, renamed or deactivated
        is_active: Inactive roles grant nothing and cannot be assigned
    """

    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(
        String(MAX_ROLE_NAME_LENGTH),
        nullable=False,
        unique=True,
        index=True,
    )
    display_name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    description: Mapped[str | None] = mapped_column(
        String(MAX_DESCRIPTION_LENGTH),
        nullable=True,
    )
    parent_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("roles.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    permissions: Mapped[list["Permission"]] = relationship(
        "Permission",
        secondary=role_permissions,
        back_populates="roles",
        lazy="selectin",
    )
    users: Mapped[list["User"]] = relationship(
        "User",
        secondary="user_roles",
        back_populates="roles",
        lazy="raise",
        passive_deletes=True,
    )

    def has_permission(self, name: str) -> bool:
        """Check if this role directly grants a permission.

        Inherited permissions are resolved by PermissionChecker.

        Args:
            name: Permission name, e.g. ``roles.edit``

        Returns:
            True if one of the role's own permissions grants it
        """
        return any(permission.grants(name) for permission in self.permissions)

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name})>"


class UserRole(Base, TimestampMixin):
    """Junction table linking users to roles.

    A user's effective permissions are the union of all their active
    roles' permissions, including inherited ones. ``created_at`` records
    when the role was assigned.
    """

    __tablename__ = "user_roles"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    role_id: Mapped[UUID] = mapped_column(
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<UserRole(user_id={self.user_id}, role_id={self.role_id})>"


def with_dependencies() -> Select[tuple[Permission]]:
    """Select permissions with their direct dependencies loaded.

    Self-referential eager loading stops one level down, so a permission
    first loaded as another one's dependency has no loaded collection
    until it is selected again with ``populate_existing``.
    """
    return (
        select(Permission)
        .options(selectinload(Permission.dependencies))
        .execution_options(populate_existing=True)
    )
