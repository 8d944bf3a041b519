"""CSV and JSON export of activity logs."""

import csv
import io
import json
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.config import settings
from backoffice.core.cache.serializers import json_default
from backoffice.modules.activities.models import Activity
from backoffice.modules.activities.repos import ActivityRepository, range_days, range_start


logger = structlog.get_logger()

CSV_HEADERS = (
    "ID",
    "Type",
    "Description",
    "Module",
    "User",
    "IP Address",
    "Result",
    "Risk Level",
    "Created At",
)


def activity_to_dict(activity: Activity) -> dict[str, Any]:
    return {
        "id": str(activity.id),
        "type": activity.type,
        "description": activity.description,
        "module": activity.module,
        "user_id": str(activity.user_id) if activity.user_id else None,
        "username": activity.user.username if activity.user else None,
        "subject_type": activity.subject_type,
        "subject_id": activity.subject_id,
        "properties": activity.properties,
        "ip_address": activity.ip_address,
        "user_agent": activity.user_agent,
        "result": activity.result,
        "risk_level": activity.risk_level,
        "signature": activity.signature,
        "created_at": activity.created_at.isoformat(),
    }


class ActivityExporter:
    """Render activities as CSV or JSON documents."""

    def __init__(self, session: AsyncSession, exported_by: str | None = None) -> None:
        self.session = session
        self.exported_by = exported_by

    def to_csv(self, activities: Sequence[Activity]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL)
        writer.writerow(CSV_HEADERS)
        for activity in activities:
            writer.writerow(
                [
                    str(activity.id),
                    activity.type,
                    activity.description,
                    activity.module or "",
                    activity.user.username if activity.user else "System",
                    activity.ip_address or "",
                    activity.result,
                    activity.risk_level,
                    activity.created_at.isoformat(),
                ]
            )
        return buffer.getvalue()

    def to_json(
        self,
        activities: Sequence[Activity],
        filters: dict[str, Any] | None = None,
    ) -> str:
        document = {
            "export_info": {
                "exported_at": datetime.now(UTC).isoformat(),
                "total_records": len(activities),
                "filters": filters or {},
                "exported_by": self.exported_by,
            },
            "activities": [activity_to_dict(a) for a in activities],
        }
        return json.dumps(document, default=json_default, ensure_ascii=False, indent=2)

    def render(
        self,
        activities: Sequence[Activity],
        fmt: str,
        filters: dict[str, Any] | None = None,
    ) -> str:
        return self.to_csv(activities) if fmt == "csv" else self.to_json(activities, filters)

    def write_file(self, content: str, fmt: str, prefix: str = "activities") -> Path:
        """Write an export under the configured export directory."""
        directory = Path(settings.activity_export_dir)
        directory.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
        path = directory / f"{prefix}_{stamp}.{fmt}"
        path.write_text(content, encoding="utf-8")
        logger.info("activity_export_written", path=str(path), bytes=len(content))
        return path

    async def create_backup(self, time_range: str = "30d") -> dict[str, Any]:
        """Write every activity in a time range to a JSON backup file.

        Returns:
            The file path, record count and time range of the backup
        """
        activities = await ActivityRepository(self.session).get_all(
            {"date_from": range_start(time_range).date()}
        )
        document = {
            "backup_info": {
                "created_at": datetime.now(UTC).isoformat(),
                "time_range": time_range,
                "days": range_days(time_range),
                "total_records": len(activities),
                "created_by": self.exported_by,
            },
            "activities": [activity_to_dict(a) for a in activities],
        }
        content = json.dumps(document, default=json_default, ensure_ascii=False, indent=2)
        path = self.write_file(content, "json", prefix="activities_backup")
        return {"path": str(path), "total_records": len(activities), "time_range": time_range}
