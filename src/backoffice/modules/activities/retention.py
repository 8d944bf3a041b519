"""Retention policies: delete or archive old activities."""

from collections import Counter
from datetime import UTC, datetime, timedelta
from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import Depends
from sqlalchemy import Select, delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from backoffice.api.dependencies import DBSession
from backoffice.core.constants import ACTIVITY_BATCH_SIZE
from backoffice.core.errors import NotFoundError, ValidationError
from backoffice.core.observability import get_tracer
from backoffice.modules.activities.models import (
    RETENTION_ACTIONS,
    Activity,
    ArchivedActivity,
    RetentionPolicy,
)


logger = structlog.get_logger()
tracer = get_tracer(__name__)

COPIED_COLUMNS = (
    "type",
    "description",
    "module",
    "user_id",
    "subject_type",
    "subject_id",
    "properties",
    "ip_address",
    "user_agent",
    "result",
    "risk_level",
    "signature",
    "created_at",
)


def _matching(
    stmt: Select[Any],
    cutoff: datetime,
    activity_type: str | None = None,
    module: str | None = None,
) -> Select[Any]:
    stmt = stmt.where(Activity.created_at < cutoff)
    if activity_type:
        stmt = stmt.where(Activity.type == activity_type)
    if module:
        stmt = stmt.where(Activity.module == module)
    return stmt


class RetentionService:
    """Runs retention policies and manual cleanups."""

    def __init__(self, session: DBSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Policy CRUD
    # ------------------------------------------------------------------

    async def list_policies(self) -> list[RetentionPolicy]:
        result = await self.session.execute(
            select(RetentionPolicy).order_by(
                RetentionPolicy.priority.desc(), RetentionPolicy.name
            )
        )
        return list(result.scalars().all())

    async def get_policy(self, policy_id: UUID) -> RetentionPolicy:
        policy = await self.session.get(RetentionPolicy, policy_id)
        if policy is None:
            raise NotFoundError(
                "Retention policy not found",
                resource="retention_policy",
                resource_id=str(policy_id),
            )
        return policy

    @staticmethod
    def _check_action(action: str) -> None:
        if action not in RETENTION_ACTIONS:
            raise ValidationError(
                "Invalid retention action",
                errors=[{"field": "action", "message": f"Must be one of {RETENTION_ACTIONS}"}],
            )

    async def create_policy(self, data: dict[str, Any]) -> RetentionPolicy:
        self._check_action(data.get("action", "delete"))
        policy = RetentionPolicy(**data)
        self.session.add(policy)
        await self.session.flush()
        return policy

    async def update_policy(self, policy_id: UUID, data: dict[str, Any]) -> RetentionPolicy:
        policy = await self.get_policy(policy_id)
        if "action" in data:
            self._check_action(data["action"])
        for field, value in data.items():
            setattr(policy, field, value)
        await self.session.flush()
        return policy

    async def delete_policy(self, policy_id: UUID) -> None:
        await self.session.delete(await self.get_policy(policy_id))
        await self.session.flush()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _process(
        self,
        cutoff: datetime,
        action: str,
        activity_type: str | None,
        module: str | None,
        reason: str,
    ) -> int:
        processed = 0
        while True:
            stmt = _matching(select(Activity), cutoff, activity_type, module).limit(
                ACTIVITY_BATCH_SIZE
            )
            batch = list((await self.session.execute(stmt)).scalars().all())
            if not batch:
                break

            if action == "archive":
                self.session.add_all(
                    ArchivedActivity(
                        original_id=activity.id,
                        archive_reason=reason,
                        **{column: getattr(activity, column) for column in COPIED_COLUMNS},
                    )
                    for activity in batch
                )
                await self.session.flush()

            await self.session.execute(
                delete(Activity).where(Activity.id.in_([a.id for a in batch]))
            )
            processed += len(batch)
        return processed

    async def _count(
        self,
        cutoff: datetime,
        activity_type: str | None,
        module: str | None,
    ) -> int:
        stmt = _matching(select(func.count(Activity.id)), cutoff, activity_type, module)
        return (await self.session.execute(stmt)).scalar_one()

    async def execute_policy(self, policy: RetentionPolicy, dry_run: bool = False) -> dict[str, Any]:
        """Apply one policy in batches.

        Archiving copies rows to ``archived_activities`` before deleting them.
        """
        cutoff = datetime.now(UTC) - timedelta(days=policy.retention_days)
        with tracer.start_as_current_span("retention.execute_policy") as span:
            span.set_attribute("retention.policy", policy.name)
            span.set_attribute("retention.dry_run", dry_run)

            if dry_run:
                processed = await self._count(cutoff, policy.activity_type, policy.module)
            else:
                processed = await self._process(
                    cutoff,
                    policy.action,
                    policy.activity_type,
                    policy.module,
                    reason=f"retention policy: {policy.name}",
                )
                policy.last_executed_at = datetime.now(UTC)
                await self.session.flush()
            span.set_attribute("retention.processed", processed)

        logger.info(
            "retention_policy_executed",
            policy=policy.name,
            action=policy.action,
            processed=processed,
            dry_run=dry_run,
        )
        return {
            "policy_id": policy.id,
            "policy": policy.name,
            "action": policy.action,
            "processed": processed,
            "dry_run": dry_run,
            "error": None,
        }

    async def execute_all_policies(self, dry_run: bool = False) -> list[dict[str, Any]]:
        """Run every active policy by priority.

        A failing policy is rolled back to its savepoint and reported; the
        remaining policies still run.
        """
        results = []
        for policy in await self.list_policies():
            if not policy.is_active:
                continue
            try:
                async with self.session.begin_nested():
                    results.append(await self.execute_policy(policy, dry_run))
            except SQLAlchemyError as exc:
                logger.exception("retention_policy_failed", policy=policy.name)
                results.append(
                    {
                        "policy_id": policy.id,
                        "policy": policy.name,
                        "action": policy.action,
                        "processed": 0,
                        "dry_run": dry_run,
                        "error": str(exc),
                    }
                )
        return results

    async def manual_cleanup(
        self,
        criteria: dict[str, Any],
        action: str = "delete",
        dry_run: bool = False,
    ) -> dict[str, Any]:
        """Delete or archive activities older than ``criteria["older_than_days"]``.

        ``criteria`` may also narrow by ``activity_type`` and ``module``.
        """
        self._check_action(action)
        cutoff = datetime.now(UTC) - timedelta(days=criteria["older_than_days"])
        activity_type = criteria.get("activity_type")
        module = criteria.get("module")
        if dry_run:
            processed = await self._count(cutoff, activity_type, module)
        else:
            processed = await self._process(
                cutoff, action, activity_type, module, reason="manual cleanup"
            )
        logger.info("activity_manual_cleanup", action=action, processed=processed, dry_run=dry_run)
        return {"action": action, "processed": processed, "dry_run": dry_run}

    async def preview_policy_impact(self, policy: RetentionPolicy) -> dict[str, Any]:
        cutoff = datetime.now(UTC) - timedelta(days=policy.retention_days)
        stmt = _matching(
            select(Activity.type, Activity.module, Activity.risk_level, Activity.created_at),
            cutoff,
            policy.activity_type,
            policy.module,
        )
        rows = (await self.session.execute(stmt)).all()
        dates = [row.created_at for row in rows]
        return {
            "policy": policy.name,
            "action": policy.action,
            "cutoff": cutoff,
            "total": len(rows),
            "oldest": min(dates) if dates else None,
            "newest": max(dates) if dates else None,
            "by_type": dict(Counter(row.type for row in rows).most_common()),
            "by_module": dict(Counter(row.module or "unknown" for row in rows).most_common()),
            "by_risk_level": dict(sorted(Counter(row.risk_level for row in rows).items())),
        }

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    async def list_archived(
        self, page: int = 1, page_size: int = 20
    ) -> tuple[list[ArchivedActivity], int]:
        total = (
            await self.session.execute(select(func.count(ArchivedActivity.id)))
        ).scalar_one()
        result = await self.session.execute(
            select(ArchivedActivity)
            .order_by(ArchivedActivity.archived_at.desc(), ArchivedActivity.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def restore_archived(self, ids: list[UUID]) -> dict[str, Any]:
        """Move archived activities back into the live table.

        Archived rows whose original id still exists are skipped.
        """
        archived = (
            await self.session.execute(
                select(ArchivedActivity).where(ArchivedActivity.id.in_(ids))
            )
        ).scalars().all()
        existing = set(
            (
                await self.session.execute(
                    select(Activity.id).where(Activity.id.in_([a.original_id for a in archived]))
                )
            )
            .scalars()
            .all()
        )

        restored, skipped = [], []
        for entry in archived:
            if entry.original_id in existing:
                skipped.append(entry.id)
                continue
            self.session.add(
                Activity(
                    id=entry.original_id,
                    **{column: getattr(entry, column) for column in COPIED_COLUMNS},
                )
            )
            await self.session.delete(entry)
            restored.append(entry.id)

        await self.session.flush()
        logger.info("archived_activities_restored", restored=len(restored), skipped=len(skipped))
        return {"restored": restored, "skipped": skipped}


# Type alias for dependency injection
RetentionSvc = Annotated[RetentionService, Depends(RetentionService)]
