"""Integration tests for seeding the built-in permissions and roles."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.permissions.defaults import DEFAULT_ROLES, all_default_permissions
from backoffice.core.permissions.models import Permission, Role
from backoffice.core.permissions.seed import seed_rbac


pytestmark = pytest.mark.integration


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


class TestSeedRbac:
    """Tests for seed_rbac."""

    async def test_creates_every_built_in(self, db: AsyncSession):
        roles = await seed_rbac(db)

        assert set(roles) == {r["name"] for r in DEFAULT_ROLES}
        assert await _count(db, Permission) == len(all_default_permissions())
        assert all(role.is_system for role in roles.values())

    async def test_is_idempotent(self, db: AsyncSession):
        """Running the seed twice creates nothing new."""
        first = await seed_rbac(db)
        second = await seed_rbac(db)

        assert {n: r.id for n, r in first.items()} == {n: r.id for n, r in second.items()}
        assert await _count(db, Role) == len(DEFAULT_ROLES)
        assert await _count(db, Permission) == len(all_default_permissions())

    async def test_links_permissions_and_parents(self, db: AsyncSession):
        roles = await seed_rbac(db)

        auditor = roles["auditor"]
        assert auditor.parent_id == roles["viewer"].id
        assert "audit.view" in {p.name for p in auditor.permissions}

    async def test_links_dependencies(self, db: AsyncSession):
        await seed_rbac(db)

        manage = (
            await db.execute(select(Permission).where(Permission.name == "settings.manage"))
        ).scalar_one()
        assert [p.name for p in manage.dependencies] == ["settings.edit"]

    async def test_keeps_operator_changes(self, db: AsyncSession):
        """Existing roles are left untouched by a later seed."""
        roles = await seed_rbac(db)
        roles["viewer"].display_name = "Read only"
        await db.flush()

        again = await seed_rbac(db)

        assert again["viewer"].display_name == "Read only"
