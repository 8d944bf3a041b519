"""Integration tests for notification rules, evaluation and the inbox."""

import pytest
from httpx import AsyncClient

from backoffice.modules.activities.models import Activity
from backoffice.modules.notifications.models import Notification
from backoffice.modules.notifications.schemas import NotificationRuleCreate
from backoffice.modules.notifications.services import NotificationService
from tests.conftest import login_headers, make_user


pytestmark = pytest.mark.integration

RULES_URL = "/api/v1/notifications/rules"


async def _activity(db, **overrides) -> Activity:
    values = {
        "type": "login_failed",
        "description": "Failed login",
        "module": "auth",
        "result": "failed",
        "risk_level": 6,
        "ip_address": "10.0.0.7",
    }
    values.update(overrides)
    activity = Activity(**values)
    db.add(activity)
    await db.flush()
    await db.refresh(activity)
    return activity


def _rule(**overrides) -> dict:
    body = {
        "name": "Failed logins",
        "conditions": {"activity_types": ["login_failed"], "min_risk_level": 5},
        "actions": [{"type": "in_app"}],
        "priority": 3,
    }
    body.update(overrides)
    return body


class TestRuleManagement:
    """Tests for /api/v1/notifications/rules."""

    async def test_create_and_get_rule(self, client: AsyncClient, admin_headers):
        response = await client.post(RULES_URL, json=_rule(), headers=admin_headers)

        assert response.status_code == 201
        rule = response.json()
        assert rule["triggered_count"] == 0
        assert rule["conditions"]["min_risk_level"] == 5

        fetched = await client.get(f"{RULES_URL}/{rule['id']}", headers=admin_headers)
        assert fetched.json()["name"] == "Failed logins"

    async def test_webhook_action_requires_url(self, client: AsyncClient, admin_headers):
        response = await client.post(
            RULES_URL, json=_rule(actions=[{"type": "webhook"}]), headers=admin_headers
        )

        assert response.status_code == 422

    async def test_update_and_delete_rule(self, client: AsyncClient, admin_headers):
        rule = (await client.post(RULES_URL, json=_rule(), headers=admin_headers)).json()

        updated = await client.patch(
            f"{RULES_URL}/{rule['id']}", json={"is_active": False}, headers=admin_headers
        )
        assert updated.status_code == 200
        assert updated.json()["is_active"] is False

        inactive = await client.get(RULES_URL, params={"is_active": False}, headers=admin_headers)
        assert [r["id"] for r in inactive.json()] == [rule["id"]]

        deleted = await client.delete(f"{RULES_URL}/{rule['id']}", headers=admin_headers)
        assert deleted.status_code == 204
        missing = await client.get(f"{RULES_URL}/{rule['id']}", headers=admin_headers)
        assert missing.status_code == 404

    async def test_viewer_cannot_manage_rules(self, client: AsyncClient, viewer_headers):
        response = await client.get(RULES_URL, headers=viewer_headers)

        assert response.status_code == 403

    async def test_rule_test_reports_failed_conditions(
        self, client: AsyncClient, db, admin_headers
    ):
        """Testing a rule explains which conditions did not match."""
        rule = (await client.post(RULES_URL, json=_rule(), headers=admin_headers)).json()
        quiet = await _activity(db, type="login", result="success", risk_level=1)
        noisy = await _activity(db)

        miss = await client.post(
            f"{RULES_URL}/{rule['id']}/test",
            json={"activity_id": str(quiet.id)},
            headers=admin_headers,
        )
        hit = await client.post(
            f"{RULES_URL}/{rule['id']}/test",
            json={"activity_id": str(noisy.id)},
            headers=admin_headers,
        )

        assert miss.json() == {
            "matches": False,
            "failed_conditions": ["activity_types", "min_risk_level"],
        }
        assert hit.json() == {"matches": True, "failed_conditions": []}

    async def test_rule_test_leaves_no_notifications(
        self, client: AsyncClient, db, admin, admin_headers
    ):
        rule = (await client.post(RULES_URL, json=_rule(), headers=admin_headers)).json()
        activity = await _activity(db)

        await client.post(
            f"{RULES_URL}/{rule['id']}/test",
            json={"activity_id": str(activity.id)},
            headers=admin_headers,
        )

        inbox = await client.get("/api/v1/notifications", headers=admin_headers)
        assert inbox.json()["total"] == 0


class TestEvaluation:
    """Tests for NotificationService.evaluate."""

    async def test_matching_rule_notifies_recipients(self, db, roles, admin):
        """Users who can view notifications receive an in-app message."""
        auditor = await make_user(db, roles["auditor"])
        bystander = await make_user(db, roles["viewer"])
        service = NotificationService(db)
        rule = await service.create_rule(NotificationRuleCreate(**_rule()))

        fired = await service.evaluate(await _activity(db))

        assert fired == [rule.id]
        assert rule.triggered_count == 1
        assert rule.last_triggered_at is not None
        assert await service.unread_count(auditor.id) == 1
        assert await service.unread_count(admin.id) == 1
        assert await service.unread_count(bystander.id) == 0

    async def test_non_matching_activity_is_ignored(self, db, roles, admin):
        service = NotificationService(db)
        await service.create_rule(NotificationRuleCreate(**_rule()))

        fired = await service.evaluate(await _activity(db, risk_level=2))

        assert fired == []
        assert await service.unread_count(admin.id) == 0

    async def test_explicit_recipients_and_templates(self, db, roles):
        target = await make_user(db, full_name="Ada Admin")
        other = await make_user(db, roles["auditor"])
        service = NotificationService(db)
        alert = {
            "type": "security_alert",
            "user_ids": [str(target.id)],
            "title_template": "Alert: {activity_type}",
            "message_template": "{description} from {ip_address}",
        }
        await service.create_rule(NotificationRuleCreate(**_rule(actions=[alert])))

        await service.evaluate(await _activity(db))

        items, total, unread = await service.list_notifications(target.id)
        assert total == unread == 1
        assert items[0].type == "security_alert"
        assert items[0].priority == "urgent"
        assert items[0].title == "Alert: login_failed"
        assert items[0].message == "Failed login from 10.0.0.7"
        assert await service.unread_count(other.id) == 0

    async def test_webhook_action_enqueues_delivery(self, db, arq_pool):
        service = NotificationService(db)
        webhook = {"type": "webhook", "url": "https://hooks.example.com/x"}
        await service.create_rule(NotificationRuleCreate(**_rule(actions=[webhook])))

        await service.evaluate(await _activity(db))

        arq_pool.enqueue_job.assert_awaited_once()
        args = arq_pool.enqueue_job.call_args.args
        assert args[0] == "deliver_webhook"
        assert args[1] == "https://hooks.example.com/x"
        assert args[2]["activity_type"] == "login_failed"

    async def test_frequency_limit_throttles(self, db, admin):
        service = NotificationService(db)
        conditions = {
            "activity_types": ["login_failed"],
            "frequency_limit": {"window": 60, "max_count": 2},
        }
        await service.create_rule(NotificationRuleCreate(**_rule(conditions=conditions)))

        fired = [await service.evaluate(await _activity(db)) for _ in range(3)]

        assert [len(f) for f in fired] == [1, 1, 0]
        assert await service.unread_count(admin.id) == 2

    async def test_inactive_rules_never_fire(self, db, admin):
        service = NotificationService(db)
        await service.create_rule(NotificationRuleCreate(**_rule(is_active=False)))

        assert await service.evaluate(await _activity(db)) == []


class TestInbox:
    """Tests for /api/v1/notifications."""

    async def _seed(self, db, user, count: int) -> list[Notification]:
        notifications = [
            Notification(user_id=user.id, title=f"Note {i}", message="Body")
            for i in range(count)
        ]
        db.add_all(notifications)
        await db.flush()
        return notifications

    async def test_list_counts_unread(self, client: AsyncClient, db, viewer, viewer_headers):
        await self._seed(db, viewer, 3)

        response = await client.get("/api/v1/notifications", headers=viewer_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["unread"] == 3
        assert all(item["is_read"] is False for item in data["items"])

    async def test_mark_read(self, client: AsyncClient, db, viewer, viewer_headers):
        first, _ = await self._seed(db, viewer, 2)

        response = await client.post(
            f"/api/v1/notifications/{first.id}/read", headers=viewer_headers
        )

        assert response.status_code == 200
        assert response.json()["is_read"] is True
        unread = await client.get(
            "/api/v1/notifications", params={"unread_only": True}, headers=viewer_headers
        )
        assert unread.json()["total"] == 1

    async def test_cannot_read_someone_elses(self, client: AsyncClient, db, viewer, roles):
        owner = await make_user(db, roles["viewer"])
        (note,) = await self._seed(db, owner, 1)

        response = await client.post(
            f"/api/v1/notifications/{note.id}/read", headers=await login_headers(viewer)
        )

        assert response.status_code == 404

    async def test_mark_all_read(self, client: AsyncClient, db, viewer, viewer_headers):
        await self._seed(db, viewer, 4)

        response = await client.post("/api/v1/notifications/read-all", headers=viewer_headers)

        assert response.json() == {"marked": 4}
        inbox = await client.get("/api/v1/notifications", headers=viewer_headers)
        assert inbox.json()["unread"] == 0
