"""Notification service: rule management, evaluation and the inbox."""

from datetime import UTC, datetime, timedelta
from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import Depends
from sqlalchemy import delete, func, select, update

from backoffice.api.dependencies import DBSession
from backoffice.core.cache import RedisCache
from backoffice.core.errors import NotFoundError
from backoffice.core.jobs.registry import enqueue_optional
from backoffice.core.permissions.checker import PermissionChecker
from backoffice.modules.activities.models import Activity
from backoffice.modules.notifications.matching import (
    DEFAULT_MESSAGE,
    DEFAULT_TITLE,
    failed_conditions,
    priority_for,
    render,
)
from backoffice.modules.notifications.models import Notification, NotificationRule
from backoffice.modules.notifications.schemas import (
    NotificationRuleCreate,
    NotificationRuleUpdate,
)
from backoffice.modules.users.models import User


logger = structlog.get_logger()

frequency_counters = RedisCache(prefix="notifications:frequency:")

RECIPIENT_PERMISSION = "notifications.view"
READ_NOTIFICATION_RETENTION_DAYS = 30


class NotificationService:
    """Service for notification rules and user notifications."""

    def __init__(self, session: DBSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    async def list_rules(self, is_active: bool | None = None) -> list[NotificationRule]:
        stmt = select(NotificationRule).order_by(
            NotificationRule.priority.desc(), NotificationRule.name
        )
        if is_active is not None:
            stmt = stmt.where(NotificationRule.is_active == is_active)
        return list((await self.session.execute(stmt)).scalars().all())

    async def get_rule(self, rule_id: UUID) -> NotificationRule:
        rule = await self.session.get(NotificationRule, rule_id)
        if rule is None:
            raise NotFoundError(
                "Notification rule not found",
                resource="notification_rule",
                resource_id=str(rule_id),
            )
        return rule

    async def create_rule(
        self,
        data: NotificationRuleCreate,
        created_by: UUID | None = None,
    ) -> NotificationRule:
        rule = NotificationRule(
            name=data.name,
            description=data.description,
            conditions=data.conditions.model_dump(mode="json", exclude_none=True),
            actions=[a.model_dump(mode="json", exclude_none=True) for a in data.actions],
            priority=data.priority,
            is_active=data.is_active,
            created_by=created_by,
            triggered_count=0,
        )
        self.session.add(rule)
        await self.session.flush()
        await self.session.refresh(rule)
        logger.info("notification_rule_created", rule_id=str(rule.id))
        return rule

    async def update_rule(self, rule_id: UUID, data: NotificationRuleUpdate) -> NotificationRule:
        rule = await self.get_rule(rule_id)
        updates = data.model_dump(exclude_unset=True)
        if data.conditions is not None:
            updates["conditions"] = data.conditions.model_dump(mode="json", exclude_none=True)
        if data.actions is not None:
            updates["actions"] = [
                a.model_dump(mode="json", exclude_none=True) for a in data.actions
            ]

        for field, value in updates.items():
            if value is not None or field == "description":
                setattr(rule, field, value)
        await self.session.flush()
        await self.session.refresh(rule)
        return rule

    async def delete_rule(self, rule_id: UUID) -> None:
        rule = await self.get_rule(rule_id)
        await self.session.delete(rule)
        await self.session.flush()
        logger.info("notification_rule_deleted", rule_id=str(rule_id))

    async def test_rule(self, rule_id: UUID, activity_id: UUID) -> dict[str, Any]:
        """Check a rule against a stored activity without executing it."""
        rule = await self.get_rule(rule_id)
        activity = await self.session.get(Activity, activity_id)
        if activity is None:
            raise NotFoundError(
                "Activity not found",
                resource="activity",
                resource_id=str(activity_id),
            )
        failed = failed_conditions(rule.conditions or {}, activity)
        return {"matches": not failed, "failed_conditions": failed}

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def _within_frequency(self, rule: NotificationRule, activity: Activity) -> bool:
        limit = (rule.conditions or {}).get("frequency_limit")
        if not limit:
            return True
        count = await frequency_counters.incr(
            f"{rule.id}:{activity.type}", int(limit.get("window", 3600))
        )
        return count <= int(limit.get("max_count", 10))

    async def _recipients(self, user_ids: list[str] | None = None) -> list[User]:
        """Listed users, or every active user who may receive notifications."""
        stmt = select(User).where(User.is_active.is_(True))
        if user_ids:
            stmt = stmt.where(User.id.in_([UUID(str(u)) for u in user_ids]))
            return list((await self.session.execute(stmt)).scalars().all())

        checker = PermissionChecker(self.session)
        recipients = []
        for user in (await self.session.execute(stmt)).scalars().all():
            if user.is_superuser or await checker.has_permission(user.id, RECIPIENT_PERMISSION):
                recipients.append(user)
        return recipients

    async def _notify(
        self,
        recipients: list[User],
        title: str,
        message: str,
        type_: str,
        priority: str,
        data: dict[str, Any],
    ) -> int:
        for user in recipients:
            self.session.add(
                Notification(
                    user_id=user.id,
                    title=title[:255],
                    message=message,
                    type=type_,
                    priority=priority,
                    data=data,
                )
            )
        return len(recipients)

    async def _execute(self, rule: NotificationRule, activity: Activity) -> None:
        actor = await self.session.get(User, activity.user_id) if activity.user_id else None
        actor_name = actor.full_name if actor else None
        data = {
            "rule_id": str(rule.id),
            "activity_id": str(activity.id),
            "activity_type": activity.type,
            "risk_level": activity.risk_level,
        }

        for action in rule.actions or []:
            kind = action.get("type")
            title = render(action.get("title_template") or DEFAULT_TITLE, activity, actor_name)
            message = render(
                action.get("message_template") or DEFAULT_MESSAGE, activity, actor_name
            )

            if kind == "in_app":
                await self._notify(
                    await self._recipients(action.get("user_ids")),
                    title,
                    message,
                    "activity_log",
                    priority_for(activity, rule.priority),
                    data,
                )
            elif kind == "security_alert":
                await self._notify(
                    await self._recipients(action.get("user_ids")),
                    title,
                    message,
                    "security_alert",
                    "urgent",
                    data,
                )
            elif kind == "webhook":
                payload = {
                    **data,
                    "rule": rule.name,
                    "title": title,
                    "message": message,
                    "description": activity.description,
                    "module": activity.module,
                    "user_id": str(activity.user_id) if activity.user_id else None,
                    "ip_address": activity.ip_address,
                    "result": activity.result,
                    "created_at": activity.created_at.isoformat(),
                }
                await enqueue_optional("deliver_webhook", action["url"], payload)
            else:
                logger.warning("unknown_notification_action", rule_id=str(rule.id), action=kind)

    async def evaluate(self, activity: Activity) -> list[UUID]:
        """Run every active rule that matches the activity.

        Returns:
            Ids of the rules that fired
        """
        fired: list[UUID] = []
        for rule in await self.list_rules(is_active=True):
            if failed_conditions(rule.conditions or {}, activity):
                continue
            if not await self._within_frequency(rule, activity):
                logger.info("notification_rule_throttled", rule_id=str(rule.id))
                continue

            await self._execute(rule, activity)
            rule.triggered_count = (rule.triggered_count or 0) + 1
            rule.last_triggered_at = datetime.now(UTC)
            fired.append(rule.id)

        await self.session.flush()
        if fired:
            logger.info(
                "notification_rules_fired",
                activity_id=str(activity.id),
                rules=[str(r) for r in fired],
            )
        return fired

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    async def list_notifications(
        self,
        user_id: UUID,
        unread_only: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Notification], int, int]:
        """A user's notifications, newest first.

        Returns:
            Tuple of (notifications, total, unread count)
        """
        conditions = [Notification.user_id == user_id]
        if unread_only:
            conditions.append(Notification.read_at.is_(None))

        total = (
            await self.session.execute(
                select(func.count()).select_from(Notification).where(*conditions)
            )
        ).scalar_one()
        stmt = (
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc(), Notification.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        items = list((await self.session.execute(stmt)).scalars().all())
        return items, total, await self.unread_count(user_id)

    async def unread_count(self, user_id: UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.read_at.is_(None))
        )
        return (await self.session.execute(stmt)).scalar_one()

    async def mark_read(self, user_id: UUID, notification_id: UUID) -> Notification:
        notification = await self.session.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError(
                "Notification not found",
                resource="notification",
                resource_id=str(notification_id),
            )
        if notification.read_at is None:
            notification.read_at = datetime.now(UTC)
            await self.session.flush()
        return notification

    async def mark_all_read(self, user_id: UUID) -> int:
        result = await self.session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read_at.is_(None))
            .values(read_at=datetime.now(UTC))
        )
        await self.session.flush()
        return result.rowcount or 0

    async def cleanup(self, days: int = READ_NOTIFICATION_RETENTION_DAYS) -> int:
        """Delete read notifications older than ``days``."""
        cutoff = datetime.now(UTC) - timedelta(days=days)
        result = await self.session.execute(
            delete(Notification).where(
                Notification.read_at.is_not(None),
                Notification.created_at < cutoff,
            )
        )
        await self.session.flush()
        return result.rowcount or 0


NotificationSvc = Annotated[NotificationService, Depends(NotificationService)]
