"""Role repository for database operations."""

from typing import Annotated, Any
from uuid import UUID

from fastapi import Depends
from sqlalchemy import func, or_, select

from backoffice.api.dependencies import DBSession
from backoffice.core.permissions.models import Permission, Role, UserRole, role_permissions


ROLE_SORT_FIELDS = ("name", "display_name", "created_at")


class RoleRepository:
    """Repository for Role database operations."""

    def __init__(self, session: DBSession) -> None:
        self.session = session

    async def get_by_id(self, role_id: UUID) -> Role | None:
        result = await self.session.execute(select(Role).where(Role.id == role_id))
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Role | None:
        result = await self.session.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def get_many(self, role_ids: list[UUID]) -> list[Role]:
        result = await self.session.execute(select(Role).where(Role.id.in_(role_ids)))
        return list(result.scalars().all())

    async def all(self) -> list[Role]:
        result = await self.session.execute(select(Role).order_by(Role.name))
        return list(result.scalars().all())

    async def list_roles(
        self,
        filters: dict[str, Any] | None = None,
        page: int = 1,
        page_size: int = 20,
        sort: str = "name",
    ) -> tuple[list[tuple[Role, int, int]], int]:
        """List roles with their user and permission counts.

        Args:
            filters: ``search`` (name, display name, description),
                ``is_active`` and ``is_system``
            page: Page number (1-indexed)
            page_size: Number of items per page
            sort: Field name, prefixed with ``-`` for descending order

        Returns:
            Tuple of ([(role, user_count, permission_count)], total count)
        """
        filters = filters or {}
        conditions = []
        if search := filters.get("search"):
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    Role.name.ilike(pattern),
                    Role.display_name.ilike(pattern),
                    Role.description.ilike(pattern),
                )
            )
        for flag in ("is_active", "is_system"):
            if (value := filters.get(flag)) is not None:
                conditions.append(getattr(Role, flag) == value)

        count_stmt = select(func.count()).select_from(Role).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar_one()

        user_count = (
            select(func.count())
            .select_from(UserRole)
            .where(UserRole.role_id == Role.id)
            .correlate(Role)
            .scalar_subquery()
        )
        permission_count = (
            select(func.count())
            .select_from(role_permissions)
            .where(role_permissions.c.role_id == Role.id)
            .correlate(Role)
            .scalar_subquery()
        )

        field = sort.lstrip("-")
        column = getattr(Role, field if field in ROLE_SORT_FIELDS else "name")
        order = column.desc() if sort.startswith("-") else column.asc()
        stmt = (
            select(Role, user_count, permission_count)
            .where(*conditions)
            .order_by(order, Role.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        rows = (await self.session.execute(stmt)).all()
        return [(row[0], row[1], row[2]) for row in rows], total

    async def user_count(self, role_id: UUID) -> int:
        stmt = select(func.count()).select_from(UserRole).where(UserRole.role_id == role_id)
        return (await self.session.execute(stmt)).scalar_one()

    async def user_counts(self) -> dict[UUID, int]:
        stmt = select(UserRole.role_id, func.count()).group_by(UserRole.role_id)
        return {row[0]: row[1] for row in (await self.session.execute(stmt)).all()}

    async def child_count(self, role_id: UUID) -> int:
        stmt = select(func.count()).select_from(Role).where(Role.parent_id == role_id)
        return (await self.session.execute(stmt)).scalar_one()

    async def get_permissions(self, permission_ids: list[UUID]) -> list[Permission]:
        if not permission_ids:
            return []
        result = await self.session.execute(
            select(Permission).where(Permission.id.in_(permission_ids))
        )
        return list(result.scalars().all())

    async def create(self, role: Role) -> Role:
        self.session.add(role)
        await self.session.flush()
        await self.session.refresh(role)
        return role

    async def update(self, role: Role) -> Role:
        await self.session.flush()
        await self.session.refresh(role)
        return role

    async def delete(self, role: Role) -> None:
        await self.session.delete(role)
        await self.session.flush()


RoleRepo = Annotated[RoleRepository, Depends(RoleRepository)]
