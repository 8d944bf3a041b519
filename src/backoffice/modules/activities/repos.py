"""Activity repository: filtering, statistics and integrity checks."""

from collections import Counter
from datetime import UTC, date, datetime, time, timedelta
from typing import Annotated, Any
from uuid import UUID

from fastapi import Depends
from sqlalchemy import Select, and_, delete, func, or_, select

from backoffice.api.dependencies import DBSession
from backoffice.core.cache import cached
from backoffice.core.constants import (
    ACTIVITY_STATS_CACHE_TTL,
    HIGH_RISK_LEVEL,
    RECENT_ACTIVITY_CACHE_TTL,
    RELATED_ACTIVITY_LIMIT,
    RELATED_ACTIVITY_WINDOW_HOURS,
)
from backoffice.modules.activities.integrity import verify
from backoffice.modules.activities.models import SECURITY_ACTIVITY_TYPES, Activity
from backoffice.modules.users.models import User


TIME_RANGES = {"1d": 1, "7d": 7, "30d": 30, "90d": 90}
DEFAULT_TIME_RANGE = "7d"

SORT_FIELDS = ("created_at", "type", "module", "risk_level", "result", "user_id")

UNUSUAL_HOURS_START = 6
UNUSUAL_HOURS_END = 22
FAILED_LOGIN_THRESHOLD = 5
UNUSUAL_TIME_THRESHOLD = 10
DISTINCT_IP_THRESHOLD = 5


def range_days(time_range: str | None) -> int:
    """Days covered by a time range like ``30d`` (unknown values mean 7)."""
    return TIME_RANGES.get(time_range or DEFAULT_TIME_RANGE, TIME_RANGES[DEFAULT_TIME_RANGE])


def range_start(time_range: str | None) -> datetime:
    return datetime.now(UTC) - timedelta(days=range_days(time_range))


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=UTC)


def _day_end(value: date) -> datetime:
    return datetime.combine(value, time.max, tzinfo=UTC)


def _security_clause() -> Any:
    return or_(
        Activity.type.in_(SECURITY_ACTIVITY_TYPES),
        Activity.risk_level >= HIGH_RISK_LEVEL,
    )


def _stats_key(self: Any, time_range: str | None = None) -> str:
    return f"stats:{time_range or DEFAULT_TIME_RANGE}"


def _recent_key(self: Any, limit: int = 10) -> str:
    return f"recent:{limit}"


class ActivityRepository:
    """Repository for activity log queries."""

    def __init__(self, session: DBSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Filtering and listing
    # ------------------------------------------------------------------

    def apply_filters(self, stmt: Select[Any], filters: dict[str, Any]) -> Select[Any]:
        """Apply list filters to a query over ``Activity``.

        Args:
            stmt: Select statement including the ``Activity`` entity
            filters: Filter values; missing or None entries are ignored

        Returns:
            The filtered statement
        """
        if search := filters.get("search"):
            pattern = f"%{search}%"
            stmt = stmt.outerjoin(User, Activity.user_id == User.id).where(
                or_(
                    Activity.description.ilike(pattern),
                    Activity.type.ilike(pattern),
                    Activity.ip_address.ilike(pattern),
                    User.username.ilike(pattern),
                    User.full_name.ilike(pattern),
                )
            )

        for field in ("user_id", "type", "module", "result", "ip_address"):
            value = filters.get(field)
            if value is not None:
                stmt = stmt.where(getattr(Activity, field) == value)

        if date_from := filters.get("date_from"):
            stmt = stmt.where(Activity.created_at >= _day_start(date_from))
        if date_to := filters.get("date_to"):
            stmt = stmt.where(Activity.created_at <= _day_end(date_to))

        risk_level = filters.get("risk_level")
        if risk_level == "high":
            stmt = stmt.where(Activity.risk_level >= HIGH_RISK_LEVEL)
        elif risk_level is not None:
            stmt = stmt.where(Activity.risk_level == int(risk_level))

        if (risk_min := filters.get("risk_level_min")) is not None:
            stmt = stmt.where(Activity.risk_level >= risk_min)
        if (risk_max := filters.get("risk_level_max")) is not None:
            stmt = stmt.where(Activity.risk_level <= risk_max)

        if selected := filters.get("selected_ids"):
            stmt = stmt.where(Activity.id.in_(selected))

        if filters.get("security_events_only"):
            stmt = stmt.where(_security_clause())

        return stmt

    async def get_by_id(self, activity_id: UUID) -> Activity | None:
        return await self.session.get(Activity, activity_id)

    async def get_paginated(
        self,
        filters: dict[str, Any],
        page: int = 1,
        page_size: int = 20,
        sort_field: str = "created_at",
        sort_direction: str = "desc",
    ) -> tuple[list[Activity], int]:
        """List activities with filters.

        Args:
            filters: See ``apply_filters``
            page: Page number (1-indexed)
            page_size: Number of items per page
            sort_field: Column to sort by; unknown fields fall back to created_at
            sort_direction: ``asc`` or ``desc``

        Returns:
            Tuple of (activities, total count)
        """
        count_stmt = self.apply_filters(select(func.count(Activity.id)), filters)
        total = (await self.session.execute(count_stmt)).scalar_one()

        column = getattr(Activity, sort_field if sort_field in SORT_FIELDS else "created_at")
        ascending = sort_direction == "asc"
        stmt = (
            self.apply_filters(select(Activity), filters)
            .order_by(
                column.asc() if ascending else column.desc(),
                Activity.id.asc() if ascending else Activity.id.desc(),
            )
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def get_all(self, filters: dict[str, Any], limit: int | None = None) -> list[Activity]:
        stmt = self.apply_filters(select(Activity), filters).order_by(Activity.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count(self, filters: dict[str, Any]) -> int:
        stmt = self.apply_filters(select(func.count(Activity.id)), filters)
        return (await self.session.execute(stmt)).scalar_one()

    async def get_related(self, activity: Activity) -> list[Activity]:
        """Activities by the same user, on the same subject or from the same IP.

        Only activities within a day of the given one are considered.
        """
        window = timedelta(hours=RELATED_ACTIVITY_WINDOW_HOURS)
        links = []
        if activity.user_id is not None:
            links.append(Activity.user_id == activity.user_id)
        if activity.subject_type and activity.subject_id:
            links.append(
                and_(
                    Activity.subject_type == activity.subject_type,
                    Activity.subject_id == activity.subject_id,
                )
            )
        if activity.ip_address:
            links.append(Activity.ip_address == activity.ip_address)
        if not links:
            return []

        stmt = (
            select(Activity)
            .where(
                Activity.id != activity.id,
                Activity.created_at.between(
                    activity.created_at - window, activity.created_at + window
                ),
                or_(*links),
            )
            .order_by(Activity.created_at.desc())
            .limit(RELATED_ACTIVITY_LIMIT)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def _grouped_counts(self, column: Any, since: datetime) -> dict[str, int]:
        stmt = (
            select(column, func.count(Activity.id).label("count"))
            .where(Activity.created_at >= since)
            .group_by(column)
            .order_by(func.count(Activity.id).desc())
        )
        rows = (await self.session.execute(stmt)).all()
        return {str(key) if key is not None else "unknown": count for key, count in rows}

    @cached(ttl=ACTIVITY_STATS_CACHE_TTL, key_builder=_stats_key, namespace="activity_repository")
    async def get_stats(self, time_range: str | None = None) -> dict[str, Any]:
        """Summary statistics for a time range (1d, 7d, 30d or 90d)."""
        days = range_days(time_range)
        since = datetime.now(UTC) - timedelta(days=days)
        in_range = Activity.created_at >= since

        total = (
            await self.session.execute(select(func.count(Activity.id)).where(in_range))
        ).scalar_one()
        unique_users = (
            await self.session.execute(
                select(func.count(func.distinct(Activity.user_id))).where(in_range)
            )
        ).scalar_one()
        security_events = (
            await self.session.execute(
                select(func.count(Activity.id)).where(in_range, _security_clause())
            )
        ).scalar_one()
        high_risk = (
            await self.session.execute(
                select(func.count(Activity.id)).where(
                    in_range, Activity.risk_level >= HIGH_RISK_LEVEL
                )
            )
        ).scalar_one()
        successful = (
            await self.session.execute(
                select(func.count(Activity.id)).where(in_range, Activity.result == "success")
            )
        ).scalar_one()

        timestamps = (
            (await self.session.execute(select(Activity.created_at).where(in_range)))
            .scalars()
            .all()
        )
        hourly = Counter(ts.hour for ts in timestamps)
        daily = Counter(ts.date() for ts in timestamps)
        today = datetime.now(UTC).date()

        return {
            "time_range": time_range or DEFAULT_TIME_RANGE,
            "total_activities": total,
            "unique_users": unique_users,
            "security_events": security_events,
            "high_risk_activities": high_risk,
            "success_rate": round(successful / total * 100, 2) if total else 0.0,
            "activity_by_type": await self._grouped_counts(Activity.type, since),
            "activity_by_module": await self._grouped_counts(Activity.module, since),
            "hourly_distribution": {hour: hourly.get(hour, 0) for hour in range(24)},
            "daily_trends": {
                (today - timedelta(days=offset)).isoformat(): daily.get(
                    today - timedelta(days=offset), 0
                )
                for offset in range(days - 1, -1, -1)
            },
        }

    async def get_top_users(
        self, time_range: str | None = None, limit: int = 10
    ) -> list[dict[str, Any]]:
        stmt = (
            select(
                User.id,
                User.username,
                User.full_name,
                func.count(Activity.id).label("activity_count"),
                func.max(Activity.created_at).label("last_activity_at"),
            )
            .join(User, Activity.user_id == User.id)
            .where(Activity.created_at >= range_start(time_range))
            .group_by(User.id, User.username, User.full_name)
            .order_by(func.count(Activity.id).desc())
            .limit(limit)
        )
        rows = (await self.session.execute(stmt)).all()
        return [
            {
                "user_id": row.id,
                "username": row.username,
                "full_name": row.full_name,
                "activity_count": row.activity_count,
                "last_activity_at": row.last_activity_at,
            }
            for row in rows
        ]

    async def get_security_events(
        self, time_range: str | None = None, limit: int = 100
    ) -> list[Activity]:
        stmt = (
            select(Activity)
            .where(Activity.created_at >= range_start(time_range), _security_clause())
            .order_by(Activity.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    @cached(ttl=RECENT_ACTIVITY_CACHE_TTL, key_builder=_recent_key, namespace="activity_repository")
    async def get_recent(self, limit: int = 10) -> list[dict[str, Any]]:
        """Latest activities as plain dicts (safe to cache)."""
        stmt = select(Activity).order_by(Activity.created_at.desc()).limit(limit)
        activities = (await self.session.execute(stmt)).scalars().all()
        return [
            {
                "id": activity.id,
                "type": activity.type,
                "description": activity.description,
                "module": activity.module,
                "user_id": activity.user_id,
                "username": activity.user.username if activity.user else None,
                "result": activity.result,
                "risk_level": activity.risk_level,
                "created_at": activity.created_at,
            }
            for activity in activities
        ]

    async def get_today_stats(self) -> dict[str, Any]:
        start = _day_start(datetime.now(UTC).date())
        stmt = select(
            func.count(Activity.id),
            func.count(func.distinct(Activity.user_id)),
        ).where(Activity.created_at >= start)
        total, users = (await self.session.execute(stmt)).one()
        security = (
            await self.session.execute(
                select(func.count(Activity.id)).where(
                    Activity.created_at >= start, _security_clause()
                )
            )
        ).scalar_one()
        failed = (
            await self.session.execute(
                select(func.count(Activity.id)).where(
                    Activity.created_at >= start, Activity.result == "failed"
                )
            )
        ).scalar_one()
        return {
            "total_activities": total,
            "unique_users": users,
            "security_events": security,
            "failed_activities": failed,
        }

    async def get_trends(
        self,
        time_range: str | None = None,
        group_by: str = "day",
    ) -> list[dict[str, Any]]:
        """Activity counts per period, grouped in Python.

        Args:
            time_range: 1d, 7d, 30d or 90d
            group_by: ``hour``, ``day``, ``week`` or ``month``

        Returns:
            Ordered list of ``{"period", "count"}`` items
        """
        stmt = select(Activity.created_at).where(Activity.created_at >= range_start(time_range))
        timestamps = (await self.session.execute(stmt)).scalars().all()

        def period(ts: datetime) -> str:
            if group_by == "hour":
                return ts.strftime("%Y-%m-%d %H:00")
            if group_by == "week":
                year, week, _ = ts.isocalendar()
                return f"{year}-W{week:02d}"
            if group_by == "month":
                return ts.strftime("%Y-%m")
            return ts.date().isoformat()

        counts = Counter(period(ts) for ts in timestamps)
        return [{"period": key, "count": counts[key]} for key in sorted(counts)]

    async def detect_suspicious_patterns(
        self,
        user_id: UUID,
        time_range: str | None = None,
    ) -> list[dict[str, Any]]:
        """Flag failed-login bursts, off-hours activity and IP hopping."""
        stmt = select(Activity.type, Activity.created_at, Activity.ip_address).where(
            Activity.user_id == user_id,
            Activity.created_at >= range_start(time_range),
        )
        rows = (await self.session.execute(stmt)).all()

        patterns = []
        failed_logins = sum(1 for row in rows if row.type == "login_failed")
        if failed_logins > FAILED_LOGIN_THRESHOLD:
            patterns.append(
                {
                    "type": "excessive_failed_logins",
                    "severity": "high",
                    "count": failed_logins,
                    "description": f"{failed_logins} failed login attempts",
                }
            )

        off_hours = sum(
            1
            for row in rows
            if row.created_at.hour < UNUSUAL_HOURS_START or row.created_at.hour >= UNUSUAL_HOURS_END
        )
        if off_hours > UNUSUAL_TIME_THRESHOLD:
            patterns.append(
                {
                    "type": "unusual_time_activity",
                    "severity": "medium",
                    "count": off_hours,
                    "description": f"{off_hours} activities outside working hours",
                }
            )

        addresses = {row.ip_address for row in rows if row.ip_address}
        if len(addresses) > DISTINCT_IP_THRESHOLD:
            patterns.append(
                {
                    "type": "multiple_ip_addresses",
                    "severity": "medium",
                    "count": len(addresses),
                    "description": f"Activity from {len(addresses)} different IP addresses",
                }
            )
        return patterns

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def delete_many(self, ids: list[UUID]) -> int:
        result = await self.session.execute(delete(Activity).where(Activity.id.in_(ids)))
        return result.rowcount or 0

    async def cleanup_old(self, days_to_keep: int) -> int:
        """Delete activities older than ``days_to_keep`` days."""
        cutoff = datetime.now(UTC) - timedelta(days=days_to_keep)
        result = await self.session.execute(delete(Activity).where(Activity.created_at < cutoff))
        return result.rowcount or 0

    async def verify_integrity(self, ids: list[UUID] | None = None) -> dict[str, Any]:
        """Check stored signatures.

        Args:
            ids: Only these activities (all when None)
        """
        stmt = select(Activity)
        if ids:
            stmt = stmt.where(Activity.id.in_(ids))
        activities = (await self.session.execute(stmt)).scalars().all()

        signed = [a for a in activities if a.signature]
        invalid_ids = [a.id for a in signed if not verify(a)]
        valid = len(signed) - len(invalid_ids)
        return {
            "total_records": len(activities),
            "records_with_signature": len(signed),
            "valid_signatures": valid,
            "invalid_signatures": len(invalid_ids),
            "integrity_rate": round(valid / len(signed) * 100, 2) if signed else 100.0,
            "invalid_ids": invalid_ids,
            "verified_at": datetime.now(UTC),
        }


# Type alias for dependency injection
ActivityRepo = Annotated[ActivityRepository, Depends(ActivityRepository)]
