"""Integration tests for activity log endpoints."""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from httpx import AsyncClient

from backoffice.config import settings
from backoffice.core.permissions.models import Role
from backoffice.modules.activities.logger import ActivityLogger
from tests.conftest import login_headers, make_user


pytestmark = pytest.mark.integration

URL = "/api/v1/activities"


@pytest.fixture
async def log_reader(db, roles, permission_by_name):
    """A user who may view activity logs but not security events."""
    role = Role(name="log_reader", display_name="Log reader", is_system=False, is_active=True)
    role.permissions = [await permission_by_name("activity_logs.view")]
    db.add(role)
    await db.flush()
    return await make_user(db, role)


async def _log(db, user_id=None, **kwargs):
    kwargs.setdefault("module", "users")
    kwargs.setdefault("ip_address", "192.168.10.25")
    return await ActivityLogger(db).log(
        kwargs.pop("type", "user_updated"),
        kwargs.pop("description", "Updated a user"),
        user_id=user_id,
        **kwargs,
    )


async def _age(db, activity, days: int) -> None:
    activity.created_at = datetime.now(UTC) - timedelta(days=days)
    await db.flush()


class TestListActivities:
    """Tests for GET /api/v1/activities."""

    async def test_security_viewer_sees_everything(self, client: AsyncClient, db, admin):
        other = await make_user(db)
        await _log(db, user_id=admin.id)
        await _log(db, user_id=other.id)

        response = await client.get(URL, headers=await login_headers(admin))

        assert response.status_code == 200
        assert response.json()["total"] == 2

    async def test_plain_viewer_sees_only_own(self, client: AsyncClient, db, log_reader):
        other = await make_user(db)
        mine = await _log(db, user_id=log_reader.id)
        await _log(db, user_id=other.id)

        response = await client.get(URL, headers=await login_headers(log_reader))

        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == str(mine.id)

    async def test_redacted_for_non_auditors(self, client: AsyncClient, db, log_reader):
        await _log(db, user_id=log_reader.id, properties={"password": "x", "field": "email"})

        response = await client.get(URL, headers=await login_headers(log_reader))

        item = response.json()["items"][0]
        assert item["ip_address"] == "192.168.10.*"
        assert item["properties"] == {"password": "[FILTERED]", "field": "email"}
        assert item["signature"] is None

    async def test_filter_by_type_and_module(self, client: AsyncClient, db, admin):
        await _log(db, type="user_created", module="users")
        await _log(db, type="role_created", module="roles")

        response = await client.get(
            URL, params={"module": "roles"}, headers=await login_headers(admin)
        )

        assert [i["type"] for i in response.json()["items"]] == ["role_created"]

    async def test_viewer_without_permission(self, client: AsyncClient, viewer_headers):
        response = await client.get(URL, headers=viewer_headers)

        assert response.status_code == 403


class TestActivityDetail:
    """Tests for single activity access."""

    async def test_sensitive_activity_needs_security_view(
        self, client: AsyncClient, db, log_reader
    ):
        event = await _log(
            db, user_id=log_reader.id, type="login_failed", module="auth", risk_level=8
        )

        response = await client.get(f"{URL}/{event.id}", headers=await login_headers(log_reader))

        assert response.status_code == 403

    async def test_get_missing_activity(self, client: AsyncClient, admin_headers):
        response = await client.get(
            f"{URL}/00000000-0000-0000-0000-000000000000", headers=admin_headers
        )

        assert response.status_code == 404


class TestExportAndIntegrity:
    """Tests for export and signature verification."""

    async def test_small_export_is_inline_csv(self, client: AsyncClient, db, admin, admin_headers):
        await _log(db, user_id=admin.id)

        response = await client.post(f"{URL}/export", json={"format": "csv"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "user_updated" in response.text

    async def test_integrity_detects_tampering(self, client: AsyncClient, db, admin_headers):
        good = await _log(db)
        bad = await _log(db)
        bad.description = "Rewritten"
        await db.flush()

        response = await client.post(
            f"{URL}/integrity", json={"ids": [str(good.id), str(bad.id)]}, headers=admin_headers
        )

        data = response.json()
        assert data["total_records"] == 2
        assert data["valid_signatures"] == 1
        assert data["invalid_ids"] == [str(bad.id)]

    async def test_backup_writes_recent_activities(
        self, client: AsyncClient, db, admin, admin_headers, tmp_path, monkeypatch
    ):
        monkeypatch.setattr(settings, "activity_export_dir", str(tmp_path))
        await _log(db, user_id=admin.id, type="user_created")
        old = await _log(db, user_id=admin.id)
        await _age(db, old, 40)

        response = await client.post(
            f"{URL}/backup", params={"time_range": "30d"}, headers=admin_headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["total_records"] == 1
        document = json.loads(Path(data["path"]).read_text(encoding="utf-8"))
        assert document["backup_info"]["days"] == 30
        assert document["backup_info"]["total_records"] == 1
        assert document["backup_info"]["created_by"] == admin.email
        assert [a["type"] for a in document["activities"]] == ["user_created"]
        assert document["activities"][0]["username"] == admin.username

    async def test_backup_requires_manage_permission(self, client: AsyncClient, viewer_headers):
        response = await client.post(f"{URL}/backup", headers=viewer_headers)

        assert response.status_code == 403


class TestRetention:
    """Tests for cleanup, retention policies and the archive."""

    async def test_manual_cleanup_dry_run(self, client: AsyncClient, db, admin_headers):
        old = await _log(db)
        await _age(db, old, 100)
        await _log(db)

        response = await client.post(
            f"{URL}/cleanup", json={"older_than_days": 90, "dry_run": True}, headers=admin_headers
        )

        assert response.json() == {"action": "delete", "processed": 1, "dry_run": True}

    async def test_archive_policy_and_restore(self, client: AsyncClient, db, admin_headers):
        old = await _log(db, module="roles")
        await _age(db, old, 40)
        await _log(db, module="roles")
        policy = await client.post(
            f"{URL}/retention-policies",
            json={"name": "roles-30d", "module": "roles", "retention_days": 30, "action": "archive"},
            headers=admin_headers,
        )
        assert policy.status_code == 201

        preview = await client.get(
            f"{URL}/retention-policies/{policy.json()['id']}/preview", headers=admin_headers
        )
        assert preview.json()["total"] == 1

        executed = await client.post(
            f"{URL}/retention-policies/{policy.json()['id']}/execute", headers=admin_headers
        )
        assert executed.json()["processed"] == 1

        archived = await client.get(f"{URL}/archived", headers=admin_headers)
        (entry,) = archived.json()["items"]
        assert entry["original_id"] == str(old.id)

        restored = await client.post(
            f"{URL}/archived/restore", json={"ids": [entry["id"]]}, headers=admin_headers
        )
        assert restored.json() == {"restored": [entry["id"]], "skipped": []}
        assert (await client.get(f"{URL}/{old.id}", headers=admin_headers)).status_code == 200

    async def test_execute_all_skips_inactive(self, client: AsyncClient, admin_headers):
        await client.post(
            f"{URL}/retention-policies",
            json={"name": "off", "retention_days": 1, "is_active": False},
            headers=admin_headers,
        )
        await client.post(
            f"{URL}/retention-policies",
            json={"name": "on", "retention_days": 365},
            headers=admin_headers,
        )

        response = await client.post(
            f"{URL}/retention-policies/execute", params={"dry_run": True}, headers=admin_headers
        )

        assert [r["policy"] for r in response.json()] == ["on"]
