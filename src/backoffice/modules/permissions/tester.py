"""Permission tester.

Answers "does this user (or role) hold this permission, and why?". The
answer comes from PermissionChecker, so it matches what the API enforces;
the grant path is rebuilt by walking the role tree.
"""

from typing import Annotated, Any
from uuid import UUID

from fastapi import Depends

from backoffice.api.dependencies import DBSession
from backoffice.core.errors import NotFoundError
from backoffice.core.permissions.checker import PermissionChecker, grants_any
from backoffice.core.permissions.graph import RoleTree
from backoffice.core.permissions.models import Permission, Role, with_dependencies
from backoffice.modules.users.models import User


class PermissionTester:
    """Explain how a permission reaches a user or a role."""

    def __init__(self, session: DBSession) -> None:
        self.session = session
        self.checker = PermissionChecker(session)
        self._tree: RoleTree | None = None

    async def _role_tree(self) -> RoleTree:
        if self._tree is None:
            self._tree = await RoleTree.load(self.session)
        return self._tree

    async def _permission(self, name: str) -> Permission:
        stmt = with_dependencies().where(Permission.name == name)
        permission = (await self.session.execute(stmt)).scalar_one_or_none()
        if permission is None:
            raise NotFoundError("Permission not found", resource="permission", resource_id=name)
        return permission

    async def _user(self, user_id: UUID) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found", resource="user", resource_id=str(user_id))
        return user

    async def _role(self, role_id: UUID) -> Role:
        role = (await self._role_tree()).roles.get(role_id)
        if role is None:
            raise NotFoundError("Role not found", resource="role", resource_id=str(role_id))
        return role

    def role_path(
        self,
        tree: RoleTree,
        role: Role,
        name: str,
        seen: set[UUID] | None = None,
    ) -> list[dict[str, Any]]:
        """Steps by which ``role`` holds ``name``; empty when it does not.

        The role's own permissions always count. Ancestors count only while
        active, but an inactive parent still passes on what its own active
        ancestors grant.
        """
        top = seen is None
        seen = seen if seen is not None else {role.id}
        steps: list[dict[str, Any]] = []

        if top or role.is_active:
            matches = sorted(p.name for p in role.permissions if grants_any([p.name], name))
            if matches:
                steps.append(
                    {
                        "type": "direct",
                        "role_id": role.id,
                        "role_name": role.name,
                        "granted_by": matches[0],
                    }
                )

        parent = tree.roles.get(role.parent_id) if role.parent_id else None
        if parent is not None and parent.id not in seen:
            seen.add(parent.id)
            parent_path = self.role_path(tree, parent, name, seen)
            if parent_path:
                steps.append(
                    {
                        "type": "inherited",
                        "role_id": role.id,
                        "role_name": role.name,
                        "parent_role_id": parent.id,
                        "parent_role_name": parent.name,
                        "path": parent_path,
                    }
                )
        return steps

    async def _user_grants(self, user: User) -> tuple[set[str], list[Role]]:
        roles = await self.checker.get_user_roles(user.id)
        return await self.checker.get_user_permissions(user.id), roles

    async def _user_path(self, user: User, roles: list[Role], name: str) -> list[dict[str, Any]]:
        if user.is_superuser:
            return [{"type": "superuser"}]
        tree = await self._role_tree()
        path = []
        for role in sorted(roles, key=lambda r: r.name):
            steps = self.role_path(tree, tree.roles[role.id], name)
            if steps:
                path.append(
                    {"type": "role", "role_id": role.id, "role_name": role.name, "path": steps}
                )
        return path

    @staticmethod
    def _dependencies(permission: Permission, granted: set[str], superuser: bool) -> list[dict]:
        return [
            {"name": dep.name, "granted": superuser or grants_any(granted, dep.name)}
            for dep in sorted(permission.dependencies, key=lambda p: p.name)
        ]

    async def test_user(self, user_id: UUID, name: str) -> dict[str, Any]:
        """Test a user against one permission.

        Raises:
            NotFoundError: If the user or permission does not exist
        """
        user = await self._user(user_id)
        permission = await self._permission(name)
        granted, roles = await self._user_grants(user)
        return {
            "subject": {"type": "user", "id": user.id, "name": user.username},
            "permission": permission,
            "granted": user.is_superuser or grants_any(granted, name),
            "path": await self._user_path(user, roles, name),
            "dependencies": self._dependencies(permission, granted, user.is_superuser),
        }

    async def test_role(self, role_id: UUID, name: str) -> dict[str, Any]:
        """Test a role against one permission, inherited grants included.

        Raises:
            NotFoundError: If the role or permission does not exist
        """
        role = await self._role(role_id)
        permission = await self._permission(name)
        granted = await self.checker.get_role_permission_names(role)
        return {
            "subject": {"type": "role", "id": role.id, "name": role.name},
            "permission": permission,
            "granted": grants_any(granted, name),
            "path": self.role_path(await self._role_tree(), role, name),
            "dependencies": self._dependencies(permission, granted, False),
        }

    async def batch(self, subject_type: str, subject_id: UUID, names: list[str]) -> list[dict]:
        """Test several permission names at once; names need not exist."""
        if subject_type == "user":
            user = await self._user(subject_id)
            granted, roles = await self._user_grants(user)
            return [
                {
                    "permission": name,
                    "granted": user.is_superuser or grants_any(granted, name),
                    "path": await self._user_path(user, roles, name),
                }
                for name in names
            ]

        role = await self._role(subject_id)
        tree = await self._role_tree()
        granted = await self.checker.get_role_permission_names(role)
        return [
            {
                "permission": name,
                "granted": grants_any(granted, name),
                "path": self.role_path(tree, role, name),
            }
            for name in names
        ]


Tester = Annotated[PermissionTester, Depends(PermissionTester)]
