"""Integration tests for the permission tester."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.conftest import login_headers, make_user


pytestmark = pytest.mark.integration

URL = "/api/v1/permissions/test"


class TestUserPermission:
    """Tests for POST /permissions/test/user."""

    async def test_inherited_grant_path(
        self, client: AsyncClient, viewer_headers, db: AsyncSession, roles
    ):
        auditor = await make_user(db, roles["auditor"])

        response = await client.post(
            f"{URL}/user",
            json={"subject_id": str(auditor.id), "permission": "users.view"},
            headers=viewer_headers,
        )

        assert response.status_code == 200
        result = response.json()
        assert result["granted"] is True
        assert result["subject"] == {
            "type": "user",
            "id": str(auditor.id),
            "name": auditor.username,
        }
        (role_step,) = result["path"]
        assert role_step["type"] == "role"
        assert role_step["role_name"] == "auditor"
        (inherited,) = role_step["path"]
        assert inherited["type"] == "inherited"
        assert inherited["parent_role_name"] == "viewer"
        assert inherited["path"][0]["type"] == "direct"
        assert inherited["path"][0]["granted_by"] == "users.view"

    async def test_denied_reports_dependencies(
        self, client: AsyncClient, viewer_headers, viewer
    ):
        response = await client.post(
            f"{URL}/user",
            json={"subject_id": str(viewer.id), "permission": "settings.edit"},
            headers=viewer_headers,
        )

        result = response.json()
        assert result["granted"] is False
        assert result["path"] == []
        assert result["dependencies"] == [{"name": "settings.view", "granted": True}]

    async def test_superuser(self, client: AsyncClient, admin_headers, admin):
        response = await client.post(
            f"{URL}/user",
            json={"subject_id": str(admin.id), "permission": "settings.manage"},
            headers=admin_headers,
        )

        result = response.json()
        assert result["granted"] is True
        assert result["path"] == [
            {
                "type": "superuser",
                "role_id": None,
                "role_name": None,
                "granted_by": None,
                "parent_role_id": None,
                "parent_role_name": None,
                "path": [],
            }
        ]

    async def test_unknown_permission(self, client: AsyncClient, viewer_headers, viewer):
        response = await client.post(
            f"{URL}/user",
            json={"subject_id": str(viewer.id), "permission": "nothing.here"},
            headers=viewer_headers,
        )

        assert response.status_code == 404

    async def test_requires_permissions_view(self, client: AsyncClient, db: AsyncSession, viewer):
        nobody = await make_user(db)

        response = await client.post(
            f"{URL}/user",
            json={"subject_id": str(viewer.id), "permission": "users.view"},
            headers=await login_headers(nobody),
        )

        assert response.status_code == 403


class TestRolePermission:
    """Tests for POST /permissions/test/role."""

    async def test_wildcard_grant(self, client: AsyncClient, viewer_headers, roles):
        response = await client.post(
            f"{URL}/role",
            json={"subject_id": str(roles["admin"].id), "permission": "users.edit"},
            headers=viewer_headers,
        )

        result = response.json()
        assert result["granted"] is True
        assert result["subject"]["type"] == "role"
        assert result["path"][0]["type"] == "direct"
        assert result["path"][0]["granted_by"] == "users.*"

    async def test_inactive_parent_grants_nothing(
        self, client: AsyncClient, admin_headers, db: AsyncSession, roles
    ):
        roles["viewer"].is_active = False
        await db.flush()

        response = await client.post(
            f"{URL}/role",
            json={"subject_id": str(roles["auditor"].id), "permission": "users.view"},
            headers=admin_headers,
        )

        result = response.json()
        assert result["granted"] is False
        assert result["path"] == []

    async def test_unknown_role(self, client: AsyncClient, viewer_headers, viewer):
        response = await client.post(
            f"{URL}/role",
            json={"subject_id": str(viewer.id), "permission": "users.view"},
            headers=viewer_headers,
        )

        assert response.status_code == 404


class TestBatch:
    """Tests for POST /permissions/test/batch/{subject_type}."""

    async def test_role_batch(self, client: AsyncClient, viewer_headers, roles):
        response = await client.post(
            f"{URL}/batch/role",
            json={
                "subject_id": str(roles["viewer"].id),
                "permissions": ["users.view", "users.edit", "reports.view"],
            },
            headers=viewer_headers,
        )

        assert response.status_code == 200
        assert {item["permission"]: item["granted"] for item in response.json()} == {
            "users.view": True,
            "users.edit": False,
            "reports.view": False,
        }

    async def test_user_batch(self, client: AsyncClient, admin_headers, db: AsyncSession, roles):
        manager = await make_user(db, roles["user_manager"])

        response = await client.post(
            f"{URL}/batch/user",
            json={"subject_id": str(manager.id), "permissions": ["users.edit", "roles.edit"]},
            headers=admin_headers,
        )

        items = {item["permission"]: item for item in response.json()}
        assert items["users.edit"]["granted"] is True
        assert items["users.edit"]["path"][0]["role_name"] == "user_manager"
        assert items["roles.edit"]["granted"] is False

    async def test_unknown_subject_type(self, client: AsyncClient, admin_headers, admin):
        response = await client.post(
            f"{URL}/batch/group",
            json={"subject_id": str(admin.id), "permissions": ["users.view"]},
            headers=admin_headers,
        )

        assert response.status_code == 422
