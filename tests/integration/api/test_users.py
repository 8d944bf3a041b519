"""Integration tests for user management endpoints."""

from uuid import uuid4

import pytest
from httpx import AsyncClient

from tests.conftest import login_headers, make_user


pytestmark = pytest.mark.integration


def _error_code(response) -> str:
    return response.json()["type"].rsplit("/", 1)[-1]


NEW_USER = {
    "email": "new.user@example.com",
    "username": "new_user",
    "full_name": "New User",
    "password": "Strong1Password",
}


class TestUserCrud:
    """Tests for /api/v1/users."""

    async def test_create_user_with_roles(self, client: AsyncClient, admin_headers, roles):
        response = await client.post(
            "/api/v1/users",
            json={**NEW_USER, "role_ids": [str(roles["viewer"].id)]},
            headers=admin_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "new.user@example.com"
        assert [r["name"] for r in data["roles"]] == ["viewer"]
        assert "password_hash" not in data

    async def test_duplicate_email(self, client: AsyncClient, admin_headers):
        await client.post("/api/v1/users", json=NEW_USER, headers=admin_headers)

        response = await client.post(
            "/api/v1/users", json={**NEW_USER, "username": "other"}, headers=admin_headers
        )

        assert response.status_code == 409
        assert _error_code(response) == "email_exists"

    async def test_weak_password_is_rejected(self, client: AsyncClient, admin_headers):
        response = await client.post(
            "/api/v1/users", json={**NEW_USER, "password": "alllowercase"}, headers=admin_headers
        )

        assert response.status_code == 422
        assert _error_code(response) == "weak_password"

    async def test_list_and_search(self, client: AsyncClient, db, admin_headers):
        await make_user(db, full_name="Grace Hopper")
        await make_user(db, full_name="Alan Turing")

        response = await client.get(
            "/api/v1/users", params={"search": "hopper"}, headers=admin_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["full_name"] == "Grace Hopper"

    async def test_update_user(self, client: AsyncClient, db, admin_headers):
        user = await make_user(db)

        response = await client.patch(
            f"/api/v1/users/{user.id}", json={"full_name": "Renamed"}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["full_name"] == "Renamed"

    async def test_cannot_delete_self(self, client: AsyncClient, admin, admin_headers):
        response = await client.delete(f"/api/v1/users/{admin.id}", headers=admin_headers)

        assert response.status_code == 400
        assert _error_code(response) == "cannot_delete_self"

    async def test_delete_user(self, client: AsyncClient, db, admin_headers):
        user = await make_user(db)

        response = await client.delete(f"/api/v1/users/{user.id}", headers=admin_headers)
        assert response.status_code == 204

        response = await client.get(f"/api/v1/users/{user.id}", headers=admin_headers)
        assert response.status_code == 404

    async def test_deactivated_user_loses_access(self, client: AsyncClient, db, roles, admin_headers):
        user = await make_user(db, roles["viewer"])
        headers = await login_headers(user)

        response = await client.post(
            f"/api/v1/users/{user.id}/deactivate", headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        response = await client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 403


class TestUserPermissions:
    """Authorization rules for user management."""

    async def test_viewer_cannot_create(self, client: AsyncClient, viewer_headers):
        response = await client.post("/api/v1/users", json=NEW_USER, headers=viewer_headers)

        assert response.status_code == 403
        assert _error_code(response) == "permission_denied"

    async def test_viewer_can_list(self, client: AsyncClient, viewer_headers):
        response = await client.get("/api/v1/users", headers=viewer_headers)

        assert response.status_code == 200

    async def test_only_superusers_grant_superuser(self, client: AsyncClient, db, roles):
        manager = await make_user(db, roles["user_manager"])
        headers = await login_headers(manager)

        response = await client.post(
            "/api/v1/users", json={**NEW_USER, "is_superuser": True}, headers=headers
        )

        assert response.status_code == 403
        assert _error_code(response) == "not_superuser"


class TestUserRoles:
    """Tests for role assignment."""

    async def test_assign_and_remove_roles(self, client: AsyncClient, db, roles, admin_headers):
        user = await make_user(db)

        response = await client.post(
            f"/api/v1/users/{user.id}/roles",
            json={"role_ids": [str(roles["auditor"].id)]},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert [r["name"] for r in response.json()["roles"]] == ["auditor"]

        response = await client.get(f"/api/v1/users/{user.id}/permissions", headers=admin_headers)
        permissions = response.json()["permissions"]
        assert "activity_logs.view" in permissions
        assert "users.view" in permissions  # inherited from viewer

        response = await client.request(
            "DELETE",
            f"/api/v1/users/{user.id}/roles",
            json={"role_ids": [str(roles["auditor"].id)]},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["roles"] == []

    async def test_inactive_role_cannot_be_assigned(self, client: AsyncClient, db, roles, admin_headers):
        roles["auditor"].is_active = False
        await db.flush()
        user = await make_user(db)

        response = await client.post(
            f"/api/v1/users/{user.id}/roles",
            json={"role_ids": [str(roles["auditor"].id)]},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert _error_code(response) == "role_inactive"


class TestLocalePreference:
    async def test_locale_is_normalized_and_applied(self, client: AsyncClient, viewer_headers):
        response = await client.patch(
            "/api/v1/users/me/locale", json={"locale": "en-US"}, headers=viewer_headers
        )
        assert response.status_code == 200
        assert response.json()["locale"] == "en"

        # Error details now follow the stored preference
        response = await client.get(f"/api/v1/users/{uuid4()}", headers=viewer_headers)
        assert response.status_code == 404
        assert response.json()["detail"] == "Resource not found"

    async def test_default_locale_without_preference(self, client: AsyncClient, viewer_headers):
        response = await client.get(f"/api/v1/users/{uuid4()}", headers=viewer_headers)

        assert response.json()["detail"] == "找不到資源"

    async def test_unsupported_locale(self, client: AsyncClient, viewer_headers):
        response = await client.patch(
            "/api/v1/users/me/locale", json={"locale": "fr"}, headers=viewer_headers
        )

        assert response.status_code == 422
