"""Permission repository for database operations."""

from typing import Annotated, Any
from uuid import UUID

from fastapi import Depends
from sqlalchemy import delete, func, insert, or_, select

from backoffice.api.dependencies import DBSession
from backoffice.core.permissions.models import (
    Permission,
    Role,
    permission_dependencies,
    role_permissions,
    with_dependencies,
)
from backoffice.modules.permissions.models import PermissionTemplate


PERMISSION_SORT_FIELDS = ("name", "module", "created_at")


class PermissionRepository:
    """Repository for Permission database operations."""

    def __init__(self, session: DBSession) -> None:
        self.session = session

    async def get_by_id(self, permission_id: UUID) -> Permission | None:
        stmt = with_dependencies().where(Permission.id == permission_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Permission | None:
        result = await self.session.execute(select(Permission).where(Permission.name == name))
        return result.scalar_one_or_none()

    async def get_many(self, permission_ids: list[UUID]) -> list[Permission]:
        if not permission_ids:
            return []
        result = await self.session.execute(
            select(Permission).where(Permission.id.in_(permission_ids)).order_by(Permission.name)
        )
        return list(result.scalars().all())

    async def all(self) -> list[Permission]:
        result = await self.session.execute(
            select(Permission).order_by(Permission.module, Permission.name)
        )
        return list(result.scalars().all())

    def _conditions(self, filters: dict[str, Any]) -> list[Any]:
        conditions: list[Any] = []
        if search := filters.get("search"):
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    Permission.name.ilike(pattern),
                    Permission.display_name.ilike(pattern),
                    Permission.description.ilike(pattern),
                )
            )
        if module := filters.get("module"):
            conditions.append(Permission.module == module)
        if type_ := filters.get("type"):
            conditions.append(Permission.type == type_)

        used = select(role_permissions.c.permission_id)
        if filters.get("usage") == "used":
            conditions.append(Permission.id.in_(used))
        elif filters.get("usage") == "unused":
            conditions.append(Permission.id.not_in(used))
        return conditions

    async def list_permissions(
        self,
        filters: dict[str, Any] | None = None,
        page: int = 1,
        page_size: int = 20,
        sort: str = "name",
    ) -> tuple[list[tuple[Permission, int]], int]:
        """List permissions with the number of roles using each.

        Args:
            filters: ``search``, ``module``, ``type`` and ``usage``
                (``used`` or ``unused``)
            page: Page number (1-indexed)
            page_size: Number of items per page
            sort: Field name, prefixed with ``-`` for descending order

        Returns:
            Tuple of ([(permission, role_count)], total count)
        """
        conditions = self._conditions(filters or {})

        count_stmt = select(func.count()).select_from(Permission).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar_one()

        role_count = (
            select(func.count())
            .select_from(role_permissions)
            .where(role_permissions.c.permission_id == Permission.id)
            .correlate(Permission)
            .scalar_subquery()
        )
        field = sort.lstrip("-")
        column = getattr(Permission, field if field in PERMISSION_SORT_FIELDS else "name")
        order = column.desc() if sort.startswith("-") else column.asc()
        stmt = (
            select(Permission, role_count)
            .where(*conditions)
            .order_by(order, Permission.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        rows = (await self.session.execute(stmt)).all()
        return [(row[0], row[1]) for row in rows], total

    async def find(self, filters: dict[str, Any] | None = None) -> list[Permission]:
        """All permissions matching the filters, unpaginated."""
        stmt = (
            with_dependencies()
            .where(*self._conditions(filters or {}))
            .order_by(Permission.module, Permission.name)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def role_count(self, permission_id: UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(role_permissions)
            .where(role_permissions.c.permission_id == permission_id)
        )
        return (await self.session.execute(stmt)).scalar_one()

    async def used_ids(self) -> set[UUID]:
        result = await self.session.execute(select(role_permissions.c.permission_id).distinct())
        return set(result.scalars().all())

    async def roles_for(self, permission_id: UUID) -> list[Role]:
        stmt = (
            select(Role)
            .join(role_permissions, role_permissions.c.role_id == Role.id)
            .where(role_permissions.c.permission_id == permission_id)
            .order_by(Role.name)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def dependents(self, permission_id: UUID) -> list[Permission]:
        """Permissions that directly depend on ``permission_id``."""
        stmt = (
            select(Permission)
            .join(
                permission_dependencies,
                permission_dependencies.c.permission_id == Permission.id,
            )
            .where(permission_dependencies.c.depends_on_permission_id == permission_id)
            .order_by(Permission.name)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def modules(self) -> list[tuple[str, int]]:
        stmt = (
            select(Permission.module, func.count())
            .group_by(Permission.module)
            .order_by(Permission.module)
        )
        return [(row[0], row[1]) for row in (await self.session.execute(stmt)).all()]

    async def set_dependencies(self, permission: Permission, dependency_ids: set[UUID]) -> None:
        """Replace a permission's direct dependencies."""
        await self.session.execute(
            delete(permission_dependencies).where(
                permission_dependencies.c.permission_id == permission.id
            )
        )
        if dependency_ids:
            await self.session.execute(
                insert(permission_dependencies),
                [
                    {"permission_id": permission.id, "depends_on_permission_id": dep}
                    for dep in dependency_ids
                ],
            )
        await self.session.flush()
        stmt = with_dependencies().where(Permission.id == permission.id)
        (await self.session.execute(stmt)).scalar_one()

    async def create(self, permission: Permission) -> Permission:
        self.session.add(permission)
        await self.session.flush()
        await self.session.refresh(permission)
        return permission

    async def update(self, permission: Permission) -> Permission:
        await self.session.flush()
        await self.session.refresh(permission)
        return permission

    async def delete(self, permission: Permission) -> None:
        await self.session.delete(permission)
        await self.session.flush()

    async def names_in(self, names: list[str]) -> set[str]:
        """The subset of ``names`` that already exist."""
        if not names:
            return set()
        stmt = select(Permission.name).where(Permission.name.in_(names))
        result = await self.session.execute(stmt)
        return set(result.scalars().all())


class PermissionTemplateRepository:
    """Repository for PermissionTemplate database operations."""

    def __init__(self, session: DBSession) -> None:
        self.session = session

    async def get_by_id(self, template_id: UUID) -> PermissionTemplate | None:
        return await self.session.get(PermissionTemplate, template_id)

    async def get_by_name(self, name: str) -> PermissionTemplate | None:
        result = await self.session.execute(
            select(PermissionTemplate).where(PermissionTemplate.name == name)
        )
        return result.scalar_one_or_none()

    async def list_templates(
        self,
        module: str | None = None,
        search: str | None = None,
    ) -> list[PermissionTemplate]:
        stmt = select(PermissionTemplate).order_by(
            PermissionTemplate.is_system.desc(), PermissionTemplate.name
        )
        if module:
            stmt = stmt.where(PermissionTemplate.module == module)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(
                    PermissionTemplate.name.ilike(pattern),
                    PermissionTemplate.display_name.ilike(pattern),
                )
            )
        return list((await self.session.execute(stmt)).scalars().all())

    async def create(self, template: PermissionTemplate) -> PermissionTemplate:
        self.session.add(template)
        await self.session.flush()
        await self.session.refresh(template)
        return template

    async def update(self, template: PermissionTemplate) -> PermissionTemplate:
        await self.session.flush()
        await self.session.refresh(template)
        return template

    async def delete(self, template: PermissionTemplate) -> None:
        await self.session.delete(template)
        await self.session.flush()


PermissionRepo = Annotated[PermissionRepository, Depends(PermissionRepository)]
