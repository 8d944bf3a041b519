"""Integration tests for settings endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from backoffice.modules.activities.models import Activity
from backoffice.modules.settings.definitions import MASKED_VALUE
from backoffice.modules.settings.services import SettingsService


pytestmark = pytest.mark.integration

URL = "/api/v1/settings"


def _error_code(response) -> str:
    return response.json()["type"].rsplit("/", 1)[-1]


class TestReadSettings:
    """Tests for reading settings."""

    async def test_list_category_with_defaults(self, client: AsyncClient, viewer_headers):
        response = await client.get(URL, params={"category": "basic"}, headers=viewer_headers)

        assert response.status_code == 200
        items = {item["key"]: item for item in response.json()}
        assert items["app.name"]["value"] == "Backoffice"
        assert items["app.name"]["is_default"] is True
        assert all(item["category"] == "basic" for item in items.values())

    async def test_unknown_category(self, client: AsyncClient, viewer_headers):
        response = await client.get(URL, params={"category": "nope"}, headers=viewer_headers)

        assert response.status_code == 404

    async def test_categories_are_counted(self, client: AsyncClient, viewer_headers):
        response = await client.get(f"{URL}/categories", headers=viewer_headers)

        assert response.status_code == 200
        categories = response.json()
        assert [c["order"] for c in categories] == sorted(c["order"] for c in categories)
        assert all(c["count"] > 0 for c in categories)

    async def test_unknown_key(self, client: AsyncClient, viewer_headers):
        response = await client.get(f"{URL}/app.unknown", headers=viewer_headers)

        assert response.status_code == 404
        assert _error_code(response) == "unknown_setting"

    async def test_viewer_cannot_edit(self, client: AsyncClient, viewer_headers):
        response = await client.put(
            f"{URL}/app.name", json={"value": "Ops"}, headers=viewer_headers
        )

        assert response.status_code == 403


class TestUpdateSettings:
    """Tests for changing settings."""

    async def test_update_records_change(self, client: AsyncClient, admin_headers):
        response = await client.put(
            f"{URL}/app.name",
            json={"value": "Ops Console", "reason": "rebrand"},
            headers=admin_headers,
        )

        assert response.json() == {"key": "app.name", "changed": True}
        value = await client.get(f"{URL}/app.name", headers=admin_headers)
        assert value.json()["value"] == "Ops Console"
        changes = await client.get(
            f"{URL}/changes", params={"key": "app.name"}, headers=admin_headers
        )
        (change,) = changes.json()["items"]
        assert change["old_value"] == "Backoffice"
        assert change["new_value"] == "Ops Console"
        assert change["reason"] == "rebrand"

    async def test_same_value_is_unchanged(self, client: AsyncClient, admin_headers):
        response = await client.put(
            f"{URL}/app.name", json={"value": "Backoffice"}, headers=admin_headers
        )

        assert response.json()["changed"] is False

    async def test_out_of_range_value(self, client: AsyncClient, admin_headers):
        response = await client.put(
            f"{URL}/security.session_lifetime", json={"value": 1}, headers=admin_headers
        )

        assert response.status_code == 422
        assert _error_code(response) == "validation_error"
        assert response.json()["errors"][0]["field"] == "security.session_lifetime"

    async def test_session_lifetime_drives_idle_timeout(
        self, client: AsyncClient, admin_headers
    ):
        await client.put(
            f"{URL}/security.session_lifetime", json={"value": 30}, headers=admin_headers
        )

        status = await client.get("/api/v1/sessions/status", headers=admin_headers)

        assert status.json()["timeout_seconds"] == 30 * 60

    async def test_batch_is_all_or_nothing(self, client: AsyncClient, admin_headers):
        """One invalid value rejects the whole batch."""
        response = await client.put(
            URL,
            json={"values": {"app.name": "Changed", "notification.smtp_host": ""}},
            headers=admin_headers,
        )

        assert response.status_code == 422
        name = await client.get(f"{URL}/app.name", headers=admin_headers)
        assert name.json()["value"] == "Backoffice"

    async def test_batch_dependency_lifts_requirement(self, client: AsyncClient, admin_headers):
        """A required setting may be empty once the setting it depends on is off."""
        response = await client.put(
            URL,
            json={
                "values": {
                    "notification.email_enabled": False,
                    "notification.smtp_host": "",
                }
            },
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert sorted(response.json()["updated"]) == [
            "notification.email_enabled",
            "notification.smtp_host",
        ]
        listing = await client.get(
            URL, params={"category": "notification"}, headers=admin_headers
        )
        items = {item["key"]: item for item in listing.json()}
        assert items["notification.smtp_host"]["is_enabled"] is False

    async def test_reenabling_flag_rechecks_dependents(self, client: AsyncClient, admin_headers):
        """Turning a flag back on requires its dependents to be filled in again."""
        await client.put(
            URL,
            json={
                "values": {
                    "notification.email_enabled": False,
                    "notification.smtp_host": "",
                }
            },
            headers=admin_headers,
        )

        response = await client.put(
            URL, json={"values": {"notification.email_enabled": True}}, headers=admin_headers
        )

        assert response.status_code == 422
        assert [e["field"] for e in response.json()["errors"]] == ["notification.smtp_host"]
        flag = await client.get(f"{URL}/notification.email_enabled", headers=admin_headers)
        assert flag.json()["value"] is False

    async def test_secret_is_masked(self, client: AsyncClient, admin_headers):
        await client.put(
            f"{URL}/notification.smtp_password", json={"value": "hunter22"}, headers=admin_headers
        )

        value = await client.get(f"{URL}/notification.smtp_password", headers=admin_headers)
        assert value.json()["value"] == MASKED_VALUE

        resubmitted = await client.put(
            f"{URL}/notification.smtp_password",
            json={"value": MASKED_VALUE},
            headers=admin_headers,
        )
        assert resubmitted.json()["changed"] is False

        changes = await client.get(
            f"{URL}/changes",
            params={"key": "notification.smtp_password"},
            headers=admin_headers,
        )
        assert changes.json()["items"][0]["new_value"] == MASKED_VALUE

    async def test_reset_setting(self, client: AsyncClient, admin_headers):
        await client.put(f"{URL}/app.name", json={"value": "Other"}, headers=admin_headers)

        response = await client.post(f"{URL}/app.name/reset", headers=admin_headers)

        assert response.json()["changed"] is True
        value = await client.get(f"{URL}/app.name", headers=admin_headers)
        assert value.json()["value"] == "Backoffice"


class TestBackupsAndTransfer:
    """Tests for backups, export and import."""

    async def test_backup_and_restore(self, client: AsyncClient, admin_headers):
        backup = await client.post(
            f"{URL}/backups", json={"name": "before"}, headers=admin_headers
        )
        assert backup.status_code == 201
        await client.put(f"{URL}/app.name", json={"value": "Drifted"}, headers=admin_headers)

        restored = await client.post(
            f"{URL}/backups/{backup.json()['id']}/restore", headers=admin_headers
        )

        assert restored.status_code == 200
        assert restored.json()["restored"] == ["app.name"]
        value = await client.get(f"{URL}/app.name", headers=admin_headers)
        assert value.json()["value"] == "Backoffice"

    async def test_export_leaves_out_secrets(self, client: AsyncClient, admin_headers):
        response = await client.get(f"{URL}/export", headers=admin_headers)

        assert response.status_code == 200
        document = response.json()
        assert document["export_info"]["total"] == len(document["settings"])
        assert "app.name" in document["settings"]
        assert "notification.smtp_password" not in document["settings"]

    async def test_import_exported_document(self, client: AsyncClient, admin_headers):
        document = (await client.get(f"{URL}/export", headers=admin_headers)).json()
        document["settings"]["app.name"]["value"] = "Imported"
        document["settings"]["legacy.flag"] = {"value": True}

        response = await client.post(
            f"{URL}/import", json={"document": document}, headers=admin_headers
        )

        assert response.status_code == 200
        result = response.json()
        assert result["updated"] == ["app.name"]
        assert result["skipped"] == ["legacy.flag"]

    async def test_import_without_overwrite_keeps_changes(
        self, client: AsyncClient, admin_headers
    ):
        await client.put(f"{URL}/app.name", json={"value": "Mine"}, headers=admin_headers)

        response = await client.post(
            f"{URL}/import",
            json={"document": {"settings": {"app.name": "Theirs"}}, "overwrite": False},
            headers=admin_headers,
        )

        assert response.json()["skipped"] == ["app.name"]
        value = await client.get(f"{URL}/app.name", headers=admin_headers)
        assert value.json()["value"] == "Mine"

    async def test_import_rejects_malformed_document(self, client: AsyncClient, admin_headers):
        response = await client.post(
            f"{URL}/import", json={"document": {"values": {}}}, headers=admin_headers
        )

        assert response.status_code == 400
        assert _error_code(response) == "invalid_import_document"


class TestSettingActivity:
    """Setting changes in the activity log."""

    async def _changes(self, db) -> dict[str, dict]:
        result = await db.execute(select(Activity).where(Activity.type == "setting_changed"))
        return {a.subject_id: a.properties for a in result.scalars().all()}

    async def test_plain_value_is_logged(self, db, roles):
        await SettingsService(db).update_setting("security.password_min_length", 12)

        changes = await self._changes(db)
        assert changes["security.password_min_length"]["old"] == 8
        assert changes["security.password_min_length"]["new"] == 12

    async def test_secret_value_is_filtered(self, db, roles):
        await SettingsService(db).update_setting("notification.smtp_password", "hunter22")

        changes = await self._changes(db)
        assert changes["notification.smtp_password"]["new"] == "[FILTERED]"
