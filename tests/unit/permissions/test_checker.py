"""Tests for permission checking with role inheritance."""

from uuid import uuid4

import pytest

from backoffice.core.permissions.checker import PermissionChecker
from tests.conftest import make_user


@pytest.fixture
def checker(db) -> PermissionChecker:
    return PermissionChecker(db)


class TestPermissionChecker:
    """Tests for PermissionChecker against the built-in roles."""

    async def test_direct_permissions(self, db, roles, checker):
        user = await make_user(db, roles["viewer"])

        assert await checker.has_permission(user.id, "users.view") is True
        assert await checker.has_permission(user.id, "users.edit") is False

    async def test_permissions_inherited_from_parent(self, db, roles, checker):
        """auditor inherits the viewer role's permissions."""
        user = await make_user(db, roles["auditor"])
        permissions = await checker.get_user_permissions(user.id)

        assert {"activity_logs.view", "users.view", "settings.view"} <= permissions
        inherited = {p.name for p in await checker.get_inherited_permissions(roles["auditor"])}
        assert "roles.view" in inherited
        assert "activity_logs.view" not in inherited

    async def test_inactive_parent_grants_nothing(self, db, roles, checker):
        roles["viewer"].is_active = False
        await db.flush()
        user = await make_user(db, roles["auditor"])

        assert await checker.has_permission(user.id, "activity_logs.view") is True
        assert await checker.has_permission(user.id, "users.view") is False

    async def test_inactive_role_is_ignored(self, db, roles, checker):
        roles["auditor"].is_active = False
        await db.flush()
        user = await make_user(db, roles["auditor"])

        assert await checker.get_user_roles(user.id) == []
        assert await checker.get_user_permissions(user.id) == set()

    async def test_module_wildcard(self, db, roles, checker):
        user = await make_user(db, roles["admin"])

        assert await checker.has_permission(user.id, "users.delete") is True
        assert await checker.has_permission(user.id, "permissions.delete") is False

    async def test_global_wildcard(self, db, roles, checker):
        user = await make_user(db, roles["super_admin"])

        assert await checker.has_all_permissions(user.id, ["roles.manage", "settings.edit"])

    async def test_any_and_all(self, db, roles, checker):
        user = await make_user(db, roles["viewer"])

        assert await checker.has_any_permission(user.id, ["users.edit", "users.view"])
        assert not await checker.has_all_permissions(user.id, ["users.edit", "users.view"])

    async def test_user_without_roles(self, checker, roles):
        assert await checker.get_user_permissions(uuid4()) == set()
