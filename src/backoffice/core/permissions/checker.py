"""Permission checking logic.

This module provides functions for checking if a user has
specific permissions based on their assigned roles, including
permissions inherited from parent roles.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.permissions.graph import RoleTree
from backoffice.core.permissions.models import Permission, Role, UserRole


def grants_any(permission_names: Iterable[str], name: str) -> bool:
    """Check a set of granted names against one required name (wildcards aware)."""
    for granted in permission_names:
        if granted in (name, "*"):
            return True
        if granted.endswith(".*") and name.startswith(granted[:-1]):
            return True
    return False


class PermissionChecker:
    """Service for checking user permissions.

    Evaluates whether a user has specific permissions based on their
    active roles and every active ancestor of those roles.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._tree: RoleTree | None = None

    async def _role_tree(self) -> RoleTree:
        if self._tree is None:
            self._tree = await RoleTree.load(self.session)
        return self._tree

    async def get_user_roles(self, user_id: UUID) -> list[Role]:
        """Get the active roles assigned to a user.

        Args:
            user_id: The user's UUID

        Returns:
            List of active roles assigned to the user
        """
        stmt = (
            select(Role)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id, Role.is_active.is_(True))
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_inherited_permissions(self, role: Role) -> list[Permission]:
        """Permissions a role receives from its active ancestors."""
        tree = await self._role_tree()
        inherited: dict[UUID, Permission] = {}
        for ancestor in tree.ancestors(role.id):
            if not ancestor.is_active:
                continue
            for permission in ancestor.permissions:
                inherited.setdefault(permission.id, permission)
        direct_ids = {p.id for p in role.permissions}
        return [p for pid, p in inherited.items() if pid not in direct_ids]

    async def get_role_permission_names(self, role: Role) -> set[str]:
        """All permission names of a role, direct and inherited."""
        names = {permission.name for permission in role.permissions}
        names.update(p.name for p in await self.get_inherited_permissions(role))
        return names

    async def get_user_permissions(self, user_id: UUID) -> set[str]:
        """Get all permission names granted to a user.

        Args:
            user_id: The user's UUID

        Returns:
            Set of permission names, e.g. ``{"roles.view", "users.*"}``
        """
        permissions: set[str] = set()
        for role in await self.get_user_roles(user_id):
            permissions |= await self.get_role_permission_names(role)
        return permissions

    async def has_permission(self, user_id: UUID, name: str) -> bool:
        """Check if a user has a specific permission."""
        return grants_any(await self.get_user_permissions(user_id), name)

    async def has_any_permission(self, user_id: UUID, names: list[str]) -> bool:
        """Check if a user has at least one of the permissions."""
        granted = await self.get_user_permissions(user_id)
        return any(grants_any(granted, name) for name in names)

    async def has_all_permissions(self, user_id: UUID, names: list[str]) -> bool:
        """Check if a user has every one of the permissions."""
        granted = await self.get_user_permissions(user_id)
        return all(grants_any(granted, name) for name in names)

