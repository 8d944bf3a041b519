"""Integration tests for permission templates."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.modules.permissions.models import PermissionTemplate


pytestmark = pytest.mark.integration

URL = "/api/v1/permissions/templates"

CRUD_ENTRIES = [
    {"action": "view", "display_name": "View", "type": "view"},
    {"action": "create", "display_name": "Create", "type": "create"},
    {"action": "delete", "display_name": "Delete", "type": "delete"},
]


def _error_code(response) -> str:
    return response.json()["type"].rsplit("/", 1)[-1]


async def _template(client: AsyncClient, headers, name: str = "crud", **extra) -> dict:
    response = await client.post(
        URL,
        json={
            "name": name,
            "display_name": "Basic CRUD",
            "module": "general",
            "permissions": CRUD_ENTRIES,
            **extra,
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestTemplateCrud:
    """Tests for creating and editing templates."""

    async def test_create_and_list(self, client: AsyncClient, admin_headers, admin):
        created = await _template(client, admin_headers)

        assert created["is_system"] is False
        assert created["created_by"] == str(admin.id)
        assert [e["action"] for e in created["permissions"]] == ["view", "create", "delete"]
        listing = await client.get(URL, headers=admin_headers)
        assert [t["name"] for t in listing.json()] == ["crud"]

    async def test_duplicate_name(self, client: AsyncClient, admin_headers):
        await _template(client, admin_headers)

        response = await client.post(
            URL,
            json={
                "name": "crud",
                "display_name": "Again",
                "module": "general",
                "permissions": CRUD_ENTRIES,
            },
            headers=admin_headers,
        )

        assert response.status_code == 409
        assert _error_code(response) == "template_name_exists"

    async def test_viewer_cannot_create(self, client: AsyncClient, viewer_headers):
        response = await client.post(
            URL,
            json={
                "name": "crud",
                "display_name": "Basic CRUD",
                "module": "general",
                "permissions": CRUD_ENTRIES,
            },
            headers=viewer_headers,
        )

        assert response.status_code == 403

    async def test_system_template_is_protected(
        self, client: AsyncClient, admin_headers, db: AsyncSession, roles
    ):
        template = PermissionTemplate(
            name="builtin",
            display_name="Built-in",
            module="general",
            permissions=CRUD_ENTRIES,
            is_system=True,
        )
        db.add(template)
        await db.flush()

        updated = await client.patch(
            f"{URL}/{template.id}", json={"display_name": "Mine"}, headers=admin_headers
        )
        deleted = await client.delete(f"{URL}/{template.id}", headers=admin_headers)

        assert updated.status_code == 400
        assert _error_code(updated) == "system_template"
        assert deleted.status_code == 400

    async def test_update_and_delete(self, client: AsyncClient, admin_headers):
        template = await _template(client, admin_headers)

        updated = await client.patch(
            f"{URL}/{template['id']}",
            json={"permissions": CRUD_ENTRIES[:1], "is_active": False},
            headers=admin_headers,
        )
        assert updated.json()["is_active"] is False
        assert len(updated.json()["permissions"]) == 1

        deleted = await client.delete(f"{URL}/{template['id']}", headers=admin_headers)
        assert deleted.status_code == 204
        missing = await client.get(f"{URL}/{template['id']}", headers=admin_headers)
        assert missing.status_code == 404


class TestApplyTemplate:
    """Tests for previewing and applying templates."""

    async def test_preview_marks_existing(self, client: AsyncClient, admin_headers):
        template = await _template(client, admin_headers)

        response = await client.get(
            f"{URL}/{template['id']}/preview",
            params={"module_prefix": "users"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        items = {item["name"]: item for item in response.json()}
        assert items["users.view"]["exists"] is True
        assert items["users.view"]["will_create"] is False
        assert set(items) == {"users.view", "users.create", "users.delete"}

    async def test_apply_creates_missing_permissions(self, client: AsyncClient, admin_headers):
        template = await _template(client, admin_headers)

        response = await client.post(
            f"{URL}/{template['id']}/apply",
            json={"module_prefix": "reports"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        result = response.json()
        assert sorted(p["name"] for p in result["created"]) == [
            "reports.create",
            "reports.delete",
            "reports.view",
        ]
        assert result["skipped"] == []
        listing = await client.get(
            "/api/v1/permissions", params={"module": "reports"}, headers=admin_headers
        )
        assert listing.json()["total"] == 3

    async def test_apply_skips_existing(self, client: AsyncClient, admin_headers):
        template = await _template(client, admin_headers)
        await client.post(
            f"{URL}/{template['id']}/apply",
            json={"module_prefix": "reports"},
            headers=admin_headers,
        )

        again = await client.post(
            f"{URL}/{template['id']}/apply",
            json={"module_prefix": "reports"},
            headers=admin_headers,
        )

        result = again.json()
        assert result["created"] == []
        assert [s["name"] for s in result["skipped"]] == [
            "reports.view",
            "reports.create",
            "reports.delete",
        ]
        assert all(s["reason"] for s in result["skipped"])

    async def test_inactive_template_is_not_applied(self, client: AsyncClient, admin_headers):
        template = await _template(client, admin_headers)
        await client.patch(
            f"{URL}/{template['id']}", json={"is_active": False}, headers=admin_headers
        )

        response = await client.post(
            f"{URL}/{template['id']}/apply",
            json={"module_prefix": "reports"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert _error_code(response) == "template_inactive"


class TestTemplateSources:
    """Tests for building templates from permissions, copies and documents."""

    async def test_from_permissions_uses_actions(
        self, client: AsyncClient, admin_headers, permission_by_name
    ):
        view = await permission_by_name("users.view")
        edit = await permission_by_name("users.edit")

        response = await client.post(
            f"{URL}/from-permissions",
            json={
                "permission_ids": [str(view.id), str(edit.id)],
                "name": "view_edit",
                "display_name": "View and edit",
                "module": "general",
            },
            headers=admin_headers,
        )

        assert response.status_code == 201
        entries = {e["action"]: e for e in response.json()["permissions"]}
        assert set(entries) == {"view", "edit"}
        assert entries["edit"]["type"] == "edit"

    async def test_duplicate_is_never_system(
        self, client: AsyncClient, admin_headers, db: AsyncSession, roles
    ):
        source = PermissionTemplate(
            name="builtin",
            display_name="Built-in",
            module="general",
            permissions=CRUD_ENTRIES,
            is_system=True,
        )
        db.add(source)
        await db.flush()

        response = await client.post(
            f"{URL}/{source.id}/duplicate", json={"name": "builtin_copy"}, headers=admin_headers
        )

        assert response.status_code == 201
        copy = response.json()
        assert copy["is_system"] is False
        assert copy["display_name"] == "Built-in (copy)"
        assert [e["action"] for e in copy["permissions"]] == ["view", "create", "delete"]

    async def test_export_then_import_renames_on_conflict(
        self, client: AsyncClient, admin_headers
    ):
        template = await _template(client, admin_headers)
        exported = await client.get(f"{URL}/{template['id']}/export", headers=admin_headers)
        document = exported.json()
        assert document["version"] == "1.0"

        response = await client.post(
            f"{URL}/import", json={"document": document}, headers=admin_headers
        )

        assert response.status_code == 201
        imported = response.json()
        assert imported["name"].startswith("crud_imported_")
        assert imported["permissions"] == template["permissions"]

    async def test_import_rejects_invalid_document(self, client: AsyncClient, admin_headers):
        response = await client.post(
            f"{URL}/import",
            json={"document": {"name": "broken", "permissions": []}},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert _error_code(response) == "invalid_import_document"
