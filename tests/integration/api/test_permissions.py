"""Integration tests for permission management endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.modules.permissions.services import PermissionService


pytestmark = pytest.mark.integration


def _error_code(response) -> str:
    return response.json()["type"].rsplit("/", 1)[-1]


async def _create(client: AsyncClient, headers, name: str, **extra) -> dict:
    response = await client.post(
        "/api/v1/permissions",
        json={"name": name, "display_name": name, "module": name.split(".")[0], **extra},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def _document(*entries: dict) -> dict:
    return {"export_info": {"version": "1.0"}, "permissions": list(entries)}


class TestPermissionCrud:
    """Tests for /api/v1/permissions."""

    async def test_create_with_dependencies(self, client: AsyncClient, admin_headers):
        view = await _create(client, admin_headers, "reports.view")
        manage = await _create(
            client, admin_headers, "reports.manage", type="manage", dependency_ids=[view["id"]]
        )

        response = await client.get(f"/api/v1/permissions/{manage['id']}", headers=admin_headers)

        assert response.status_code == 200
        assert [d["name"] for d in response.json()["dependencies"]] == ["reports.view"]
        assert manage["is_system"] is False

    async def test_module_must_match_name(self, client: AsyncClient, admin_headers):
        response = await client.post(
            "/api/v1/permissions",
            json={"name": "reports.view", "display_name": "View", "module": "users"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert _error_code(response) == "module_mismatch"

    async def test_duplicate_name(self, client: AsyncClient, admin_headers, roles):
        response = await client.post(
            "/api/v1/permissions",
            json={"name": "users.view", "display_name": "Again", "module": "users"},
            headers=admin_headers,
        )

        assert response.status_code == 409
        assert _error_code(response) == "permission_name_exists"

    async def test_system_permission_cannot_be_deleted(
        self, client: AsyncClient, admin_headers, permission_by_name
    ):
        permission = await permission_by_name("users.view")

        response = await client.delete(
            f"/api/v1/permissions/{permission.id}", headers=admin_headers
        )

        assert response.status_code == 400
        assert _error_code(response) == "system_permission"

    async def test_dependency_cannot_be_deleted(self, client: AsyncClient, admin_headers):
        view = await _create(client, admin_headers, "reports.view")
        await _create(client, admin_headers, "reports.edit", dependency_ids=[view["id"]])

        response = await client.delete(f"/api/v1/permissions/{view['id']}", headers=admin_headers)

        assert response.status_code == 400
        assert _error_code(response) == "permission_has_dependents"

    async def test_list_filters_by_module(self, client: AsyncClient, admin_headers, roles):
        response = await client.get(
            "/api/v1/permissions", params={"module": "roles"}, headers=admin_headers
        )

        assert response.status_code == 200
        names = {item["name"] for item in response.json()["items"]}
        assert "roles.view" in names
        assert all(name.startswith("roles.") for name in names)


class TestDependencies:
    """Tests for the dependency graph endpoints."""

    async def test_cycle_is_rejected(self, client: AsyncClient, admin_headers):
        view = await _create(client, admin_headers, "reports.view")
        edit = await _create(client, admin_headers, "reports.edit", dependency_ids=[view["id"]])

        response = await client.put(
            f"/api/v1/permissions/{view['id']}/dependencies",
            json={"dependency_ids": [edit["id"]]},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert _error_code(response) == "circular_dependency"

    async def test_chain_is_transitive(self, client: AsyncClient, admin_headers):
        view = await _create(client, admin_headers, "reports.view")
        edit = await _create(client, admin_headers, "reports.edit", dependency_ids=[view["id"]])
        manage = await _create(
            client, admin_headers, "reports.manage", dependency_ids=[edit["id"]]
        )

        response = await client.get(
            f"/api/v1/permissions/{manage['id']}/chain", headers=admin_headers
        )
        assert {d["name"] for d in response.json()["dependencies"]} == {
            "reports.view",
            "reports.edit",
        }

        response = await client.get(f"/api/v1/permissions/{view['id']}/chain", headers=admin_headers)
        assert {d["name"] for d in response.json()["dependents"]} == {
            "reports.edit",
            "reports.manage",
        }


class TestImportExport:
    """Tests for permission import and export."""

    async def test_export_lists_dependencies_by_name(self, client: AsyncClient, admin_headers, roles):
        response = await client.get(
            "/api/v1/permissions/export", params={"module": "roles"}, headers=admin_headers
        )

        assert response.status_code == 200
        document = response.json()
        assert document["export_info"]["version"] == "1.0"
        manage = next(p for p in document["permissions"] if p["name"] == "roles.manage")
        assert manage["dependencies"] == ["permissions.view", "roles.edit"]

    async def test_export_loads_dependencies_of_fresh_rows(self, db: AsyncSession, roles):
        # Start from an empty identity map so dependencies are loaded from scratch
        db.expunge_all()

        document = await PermissionService(db).export_permissions({"module": "settings"})

        by_name = {p["name"]: p["dependencies"] for p in document["permissions"]}
        assert by_name == {
            "settings.view": [],
            "settings.edit": ["settings.view"],
            "settings.manage": ["settings.edit"],
        }

    async def test_dry_run_keeps_nothing(self, client: AsyncClient, admin_headers, roles):
        response = await client.post(
            "/api/v1/permissions/import",
            json={
                "document": _document({"name": "reports.view", "display_name": "View reports"}),
                "dry_run": True,
            },
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["created"] == 1
        assert response.json()["dry_run"] is True

        response = await client.get(
            "/api/v1/permissions", params={"module": "reports"}, headers=admin_headers
        )
        assert response.json()["total"] == 0

    async def test_import_links_dependencies(self, client: AsyncClient, admin_headers, roles):
        document = _document(
            {"name": "reports.edit", "display_name": "Edit", "dependencies": ["reports.view"]},
            {"name": "reports.view", "display_name": "View"},
            {"name": "users.view", "display_name": "Users"},
        )

        response = await client.post(
            "/api/v1/permissions/import", json={"document": document}, headers=admin_headers
        )

        data = response.json()
        assert data["success"] is True
        assert (data["created"], data["skipped"]) == (2, 1)

        exported = (
            await client.get(
                "/api/v1/permissions/export", params={"module": "reports"}, headers=admin_headers
            )
        ).json()
        edit = next(p for p in exported["permissions"] if p["name"] == "reports.edit")
        assert edit["dependencies"] == ["reports.view"]

    async def test_invalid_entry_rolls_back_everything(self, client: AsyncClient, admin_headers, roles):
        document = _document(
            {"name": "reports.view", "display_name": "View"},
            {"name": "broken", "display_name": "No module"},
        )

        response = await client.post(
            "/api/v1/permissions/import", json={"document": document}, headers=admin_headers
        )

        data = response.json()
        assert data["success"] is False
        assert data["errors"][0]["name"] == "broken"

        response = await client.get(
            "/api/v1/permissions", params={"module": "reports"}, headers=admin_headers
        )
        assert response.json()["total"] == 0

    async def test_unsupported_version(self, client: AsyncClient, admin_headers, roles):
        response = await client.post(
            "/api/v1/permissions/import",
            json={"document": {"export_info": {"version": "9"}, "permissions": []}},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert _error_code(response) == "unsupported_import_version"
