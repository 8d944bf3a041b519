"""Role service for business logic.

Role names are unique snake_case identifiers. Roles inherit the
permissions of their ancestors, so every change to ``parent_id`` is
checked against cycles and the maximum hierarchy depth.
"""

from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import Depends
from sqlalchemy import delete, insert

from backoffice.api.dependencies import DBSession
from backoffice.core.audit.service import AuditService
from backoffice.core.constants import MAX_ROLE_DEPTH
from backoffice.core.errors import BadRequestError, ConflictError, NotFoundError, SystemRoleError
from backoffice.core.permissions.checker import PermissionChecker, grants_any
from backoffice.core.permissions.graph import PermissionGraph, RoleTree
from backoffice.core.permissions.models import Permission, Role, role_permissions
from backoffice.modules.activities.logger import ActivityLogger
from backoffice.modules.permissions.repos import PermissionRepository
from backoffice.modules.roles.repos import RoleRepository
from backoffice.modules.roles.schemas import RoleCreate, RoleUpdate


logger = structlog.get_logger()

BULK_MODES = ("add", "remove", "replace")


class RoleService:
    """Service for role management operations."""

    def __init__(self, session: DBSession) -> None:
        self.session = session
        self.repo = RoleRepository(session)
        self.activity = ActivityLogger(session)

    async def list_roles(
        self,
        search: str | None = None,
        is_active: bool | None = None,
        is_system: bool | None = None,
        page: int = 1,
        page_size: int = 20,
        sort: str = "name",
    ) -> tuple[list[dict[str, Any]], int]:
        rows, total = await self.repo.list_roles(
            {"search": search, "is_active": is_active, "is_system": is_system},
            page=page,
            page_size=page_size,
            sort=sort,
        )
        items = [
            {"role": role, "user_count": users, "permission_count": permissions}
            for role, users, permissions in rows
        ]
        return items, total

    async def get(self, role_id: UUID) -> Role:
        """Get a role by ID.

        Raises:
            NotFoundError: If role not found
        """
        role = await self.repo.get_by_id(role_id)
        if not role:
            raise NotFoundError(
                "Role not found",
                resource="role",
                resource_id=str(role_id),
            )
        return role

    async def get_role(self, role_id: UUID) -> dict[str, Any]:
        """A role with direct and inherited permissions, user count and depth."""
        role = await self.get(role_id)
        checker = PermissionChecker(self.session)
        tree = await RoleTree.load(self.session)
        return {
            "role": role,
            "permissions": sorted(role.permissions, key=lambda p: p.name),
            "inherited_permissions": sorted(
                await checker.get_inherited_permissions(role), key=lambda p: p.name
            ),
            "user_count": await self.repo.user_count(role.id),
            "depth": tree.depth(role.id),
        }

    async def _ensure_name_available(self, name: str, exclude: UUID | None = None) -> None:
        existing = await self.repo.get_by_name(name)
        if existing and existing.id != exclude:
            raise ConflictError(
                "Role name already exists",
                error_code="role_name_exists",
                details={"name": name},
            )

    async def _validate_parent(self, role_id: UUID | None, parent_id: UUID | None) -> None:
        """Check that ``parent_id`` exists and keeps the hierarchy acyclic and shallow."""
        if parent_id is None:
            return
        tree = await RoleTree.load(self.session)
        if parent_id not in tree.roles:
            raise NotFoundError(
                "Parent role not found",
                resource="role",
                resource_id=str(parent_id),
            )
        if role_id is not None and tree.would_cycle(role_id, parent_id):
            raise BadRequestError(
                "Role hierarchy would contain a cycle",
                error_code="circular_hierarchy",
            )
        height = tree.subtree_height(role_id) if role_id in tree.roles else 1
        if tree.depth(parent_id) + height > MAX_ROLE_DEPTH:
            raise BadRequestError(
                f"Role hierarchy cannot be deeper than {MAX_ROLE_DEPTH} levels",
                error_code="hierarchy_too_deep",
                details={"max_depth": MAX_ROLE_DEPTH},
            )

    async def create_role(self, data: RoleCreate) -> Role:
        """Create a role.

        Raises:
            ConflictError: If the name is taken
            NotFoundError: If the parent does not exist
        """
        await self._ensure_name_available(data.name)
        await self._validate_parent(None, data.parent_id)

        role = await self.repo.create(
            Role(
                name=data.name,
                display_name=data.display_name,
                description=data.description,
                parent_id=data.parent_id,
                is_active=data.is_active,
                is_system=False,
            )
        )
        if data.permission_ids:
            await self.sync_permissions(role.id, data.permission_ids)

        await self.activity.log(
            "role_created",
            f"Created role {role.name}",
            module="roles",
            subject_type="roles",
            subject_id=role.id,
            properties={"name": role.name},
            risk_level=4,
        )
        logger.info("role_created", role_id=str(role.id), name=role.name)
        return role

    async def update_role(self, role_id: UUID, data: RoleUpdate) -> Role:
        """Update a role.

        Raises:
            BadRequestError: If a system role would be renamed or deactivated,
                or the new parent breaks the hierarchy
        """
        role = await self.get(role_id)
        updates = data.model_dump(exclude_unset=True)

        if role.is_system:
            if "name" in updates and updates["name"] != role.name:
                raise SystemRoleError("System roles cannot be renamed")
            if updates.get("is_active") is False:
                raise SystemRoleError("System roles cannot be deactivated")

        if updates.get("name"):
            await self._ensure_name_available(updates["name"], exclude=role.id)
        if "parent_id" in updates and updates["parent_id"] != role.parent_id:
            await self._validate_parent(role.id, updates["parent_id"])

        for field, value in updates.items():
            if value is not None or field in ("parent_id", "description"):
                setattr(role, field, value)

        role = await self.repo.update(role)
        await self.activity.log(
            "role_updated",
            f"Updated role {role.name}",
            module="roles",
            subject_type="roles",
            subject_id=role.id,
            properties={"fields": sorted(updates)},
            risk_level=4,
        )
        return role

    async def delete_role(self, role_id: UUID) -> None:
        """Delete a role.

        Raises:
            BadRequestError: If the role is a system role, still assigned to
                users, or has child roles
        """
        role = await self.get(role_id)
        if role.is_system:
            raise SystemRoleError("System roles cannot be deleted")
        users = await self.repo.user_count(role.id)
        if users:
            raise BadRequestError(
                "Role is assigned to users",
                error_code="role_in_use",
                details={"user_count": users},
            )
        children = await self.repo.child_count(role.id)
        if children:
            raise BadRequestError(
                "Role has child roles",
                error_code="role_has_children",
                details={"child_count": children},
            )

        name = role.name
        await self.repo.delete(role)
        await self.activity.log(
            "role_deleted",
            f"Deleted role {name}",
            module="roles",
            subject_type="roles",
            subject_id=role_id,
            properties={"name": name},
            risk_level=5,
        )
        logger.info("role_deleted", role_id=str(role_id), name=name)

    async def duplicate_role(
        self,
        role_id: UUID,
        new_name: str,
        display_name: str | None = None,
    ) -> Role:
        """Copy a role's permissions and parent under a new name.

        The copy is never a system role.
        """
        source = await self.get(role_id)
        await self._ensure_name_available(new_name)

        copy = await self.repo.create(
            Role(
                name=new_name,
                display_name=display_name or f"{source.display_name} (copy)",
                description=source.description,
                parent_id=source.parent_id,
                is_active=True,
                is_system=False,
            )
        )
        await self._replace_permissions(copy, {p.id for p in source.permissions})
        logger.info("role_duplicated", source_id=str(source.id), role_id=str(copy.id))
        return copy

    async def _replace_permissions(
        self,
        role: Role,
        permission_ids: set[UUID],
    ) -> tuple[list[Permission], list[Permission]]:
        """Make ``permission_ids`` the role's direct permissions.

        Returns:
            Tuple of (added permissions, removed permissions)
        """
        current = {p.id: p for p in role.permissions}
        target = {p.id: p for p in await self.repo.get_permissions(list(permission_ids))}
        missing = permission_ids - set(target)
        if missing:
            raise NotFoundError(
                "Permission not found",
                resource="permission",
                resource_id=str(sorted(missing, key=str)[0]),
            )

        added = [p for pid, p in target.items() if pid not in current]
        removed = [p for pid, p in current.items() if pid not in target]

        if removed:
            await self.session.execute(
                delete(role_permissions).where(
                    role_permissions.c.role_id == role.id,
                    role_permissions.c.permission_id.in_([p.id for p in removed]),
                )
            )
        if added:
            await self.session.execute(
                insert(role_permissions),
                [{"role_id": role.id, "permission_id": p.id} for p in added],
            )
        await self.session.flush()
        await self.session.refresh(role, attribute_names=["permissions"])
        return added, removed

    async def sync_permissions(self, role_id: UUID, permission_ids: list[UUID]) -> dict[str, Any]:
        """Set a role's permissions, adding every dependency they need.

        Returns:
            Names added, removed and auto-added as dependencies
        """
        role = await self.get(role_id)
        graph = await PermissionGraph.load(self.session)
        requested = set(permission_ids)
        full = graph.closure(requested)

        added, removed = await self._replace_permissions(role, full)
        auto_added = [p.name for p in added if p.id not in requested]

        if added or removed:
            await AuditService(self.session).log_permissions_changed(
                role.id,
                role.name,
                added=[p.name for p in added],
                removed=[p.name for p in removed],
                auto_added=auto_added,
            )
            logger.info(
                "role_permissions_synced",
                role_id=str(role.id),
                added=len(added),
                removed=len(removed),
            )

        return {
            "role_id": role.id,
            "added": sorted(p.name for p in added),
            "removed": sorted(p.name for p in removed),
            "auto_added": sorted(auto_added),
        }

    async def bulk_assign_permissions(
        self,
        role_ids: list[UUID],
        permission_ids: list[UUID],
        mode: str = "add",
    ) -> list[dict[str, Any]]:
        """Add, remove or replace permissions on several roles.

        Each role is handled in its own savepoint so one failure does not
        undo the others. System roles cannot be replaced wholesale.

        Returns:
            One result per role
        """
        if mode not in BULK_MODES:
            raise BadRequestError(
                f"Unknown bulk mode '{mode}'",
                error_code="invalid_bulk_mode",
            )

        results: list[dict[str, Any]] = []
        for role_id in role_ids:
            role = await self.repo.get_by_id(role_id)
            if role is None:
                results.append({"role_id": role_id, "success": False, "error": "role_not_found"})
                continue
            if role.is_system and mode == "replace":
                results.append(
                    {
                        "role_id": role_id,
                        "role_name": role.name,
                        "success": False,
                        "error": "system_role",
                    }
                )
                continue

            current = {p.id for p in role.permissions}
            if mode == "add":
                target = current | set(permission_ids)
            elif mode == "remove":
                target = current - set(permission_ids)
            else:
                target = set(permission_ids)

            try:
                async with self.session.begin_nested():
                    outcome = await self.sync_permissions(role.id, list(target))
            except NotFoundError as exc:
                results.append(
                    {
                        "role_id": role_id,
                        "role_name": role.name,
                        "success": False,
                        "error": exc.error_code,
                    }
                )
                continue

            results.append(
                {
                    "role_id": role_id,
                    "role_name": role.name,
                    "success": True,
                    "permission_count": len(target) + len(outcome["auto_added"]),
                }
            )

        logger.info(
            "bulk_permissions_assigned",
            mode=mode,
            roles=len(role_ids),
            failed=sum(1 for r in results if not r["success"]),
        )
        return results

    async def bulk_update_status(self, role_ids: list[UUID], is_active: bool) -> int:
        """Activate or deactivate several roles; system roles cannot be deactivated."""
        roles = await self.repo.get_many(role_ids)
        if not is_active and any(role.is_system for role in roles):
            raise SystemRoleError("System roles cannot be deactivated")
        changed = [role for role in roles if role.is_active != is_active]
        for role in changed:
            role.is_active = is_active
        await self.session.flush()
        logger.info("roles_status_updated", count=len(changed), is_active=is_active)
        return len(changed)

    async def get_hierarchy(self) -> list[dict[str, Any]]:
        """Tree of root roles and their descendants."""
        tree = await RoleTree.load(self.session)

        def node(role: Role, seen: frozenset[UUID]) -> dict[str, Any]:
            return {
                "id": role.id,
                "name": role.name,
                "display_name": role.display_name,
                "is_active": role.is_active,
                "is_system": role.is_system,
                "children": [
                    node(child, seen | {child.id})
                    for child in tree.children.get(role.id, [])
                    if child.id not in seen
                ],
            }

        return [node(root, frozenset({root.id})) for root in tree.children.get(None, [])]

    async def get_statistics(self) -> dict[str, Any]:
        roles = await self.repo.all()
        user_counts = await self.repo.user_counts()
        tree = RoleTree(roles)

        total = len(roles)
        permission_total = sum(len(role.permissions) for role in roles)
        most_used = sorted(
            (role for role in roles if user_counts.get(role.id)),
            key=lambda r: user_counts[r.id],
            reverse=True,
        )[:5]

        return {
            "total_roles": total,
            "active_roles": sum(1 for role in roles if role.is_active),
            "system_roles": sum(1 for role in roles if role.is_system),
            "roles_with_users": sum(1 for role in roles if user_counts.get(role.id)),
            "average_permissions_per_role": round(permission_total / total, 2) if total else 0.0,
            "max_hierarchy_depth": tree.max_depth(),
            "most_used_roles": [
                {
                    "id": str(role.id),
                    "name": role.name,
                    "display_name": role.display_name,
                    "user_count": user_counts[role.id],
                }
                for role in most_used
            ],
        }

    async def get_permission_matrix(self) -> dict[str, Any]:
        """Which role holds which permission, grouped by module.

        Inherited and wildcard grants count as held.
        """
        roles = await self.repo.all()
        permissions = await PermissionRepository(self.session).all()
        checker = PermissionChecker(self.session)
        granted = {role.id: await checker.get_role_permission_names(role) for role in roles}

        modules: dict[str, list[dict[str, Any]]] = {}
        for permission in permissions:
            modules.setdefault(permission.module, []).append(
                {
                    "id": permission.id,
                    "name": permission.name,
                    "display_name": permission.display_name,
                    "type": permission.type,
                    "roles": {
                        str(role.id): grants_any(granted[role.id], permission.name)
                        for role in roles
                    },
                }
            )

        return {
            "roles": [
                {"id": role.id, "name": role.name, "display_name": role.display_name}
                for role in roles
            ],
            "modules": dict(sorted(modules.items())),
        }


RoleSvc = Annotated[RoleService, Depends(RoleService)]
