"""Integration tests for background job tasks."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.jobs.tasks.cleanup import (
    cleanup_expired_tokens,
    cleanup_old_activities,
    cleanup_read_notifications,
)
from backoffice.core.jobs.tasks.notifications import evaluate_notification_rules
from backoffice.modules.activities.models import Activity, RetentionPolicy
from backoffice.modules.notifications.models import Notification, NotificationRule
from backoffice.modules.users.models import RefreshToken
from tests.conftest import make_user


pytestmark = pytest.mark.integration


class MockSessionFactory:
    """Hands the test session to a task without closing it."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def __aenter__(self) -> AsyncSession:
        return self.db

    async def __aexit__(self, *args) -> None:
        pass


@pytest.fixture
def ctx(db: AsyncSession) -> dict:
    return {"db_session_factory": lambda: MockSessionFactory(db), "job_try": 1}


def _activity(days_old: int = 0, **overrides) -> Activity:
    values = {
        "type": "user_updated",
        "description": "Updated a user",
        "module": "users",
        "risk_level": 1,
        "created_at": datetime.now(UTC) - timedelta(days=days_old),
    }
    values.update(overrides)
    return Activity(**values)


async def test_cleanup_expired_tokens(ctx, db: AsyncSession):
    """Expired and revoked refresh tokens are removed; live ones stay."""
    user = await make_user(db)
    tokens = {
        name: RefreshToken(
            user_id=user.id,
            session_id=uuid4(),
            token_hash=f"{name}_{uuid4().hex}",
            expires_at=datetime.now(UTC) + timedelta(days=days),
            revoked=revoked,
        )
        for name, days, revoked in [("expired", -1, False), ("revoked", 7, True), ("live", 7, False)]
    }
    db.add_all(tokens.values())
    await db.flush()

    result = await cleanup_expired_tokens(ctx)

    assert result == {"refresh_tokens_deleted": 2}
    remaining = (await db.execute(select(RefreshToken.token_hash))).scalars().all()
    assert remaining == [tokens["live"].token_hash]


async def test_cleanup_old_activities(ctx, db: AsyncSession):
    """Baseline retention runs first, then the active policies."""
    db.add_all(
        [
            _activity(days_old=400),
            _activity(days_old=40, module="auth"),
            _activity(days_old=40),
            _activity(),
        ]
    )
    db.add(RetentionPolicy(name="auth-30d", module="auth", retention_days=30, action="delete"))
    await db.flush()

    result = await cleanup_old_activities(ctx)

    assert result["retention_days"] == 90
    assert result["deleted"] == 1
    assert result["policies"] == [{"policy": "auth-30d", "processed": 1, "error": None}]
    modules = (await db.execute(select(Activity.module))).scalars().all()
    assert sorted(modules) == ["users", "users"]


async def test_cleanup_read_notifications(ctx, db: AsyncSession):
    user = await make_user(db)
    old = datetime.now(UTC) - timedelta(days=45)
    db.add_all(
        [
            Notification(user_id=user.id, title="old read", message="-", read_at=old, created_at=old),
            Notification(user_id=user.id, title="old unread", message="-", created_at=old),
            Notification(user_id=user.id, title="new read", message="-", read_at=datetime.now(UTC)),
        ]
    )
    await db.flush()

    result = await cleanup_read_notifications(ctx)

    assert result == {"notifications_deleted": 1}
    titles = (await db.execute(select(Notification.title))).scalars().all()
    assert sorted(titles) == ["new read", "old unread"]


async def test_evaluate_notification_rules(ctx, db: AsyncSession):
    admin = await make_user(db, is_superuser=True)
    rule = NotificationRule(
        name="Everything risky",
        conditions={"min_risk_level": 5},
        actions=[{"type": "in_app"}],
        priority=2,
    )
    activity = _activity(risk_level=7)
    db.add_all([rule, activity])
    await db.flush()

    result = await evaluate_notification_rules(ctx, str(activity.id))

    assert result == {"rules_fired": 1}
    inbox = (
        await db.execute(select(Notification).where(Notification.user_id == admin.id))
    ).scalars().all()
    assert len(inbox) == 1


async def test_evaluate_missing_activity(ctx):
    result = await evaluate_notification_rules(ctx, str(uuid4()))

    assert result == {"rules_fired": 0}
