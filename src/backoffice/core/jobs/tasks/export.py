"""Asynchronous activity export for large result sets."""

from typing import Any
from uuid import UUID

import structlog

from backoffice.core.jobs.utils import session_factory_from
from backoffice.modules.activities.export import ActivityExporter
from backoffice.modules.activities.logger import ActivityLogger
from backoffice.modules.activities.repos import ActivityRepository
from backoffice.modules.activities.schemas import ActivityFilters
from backoffice.modules.notifications.models import Notification
from backoffice.modules.users.models import User


log = structlog.get_logger()


async def export_activities(
    ctx: dict[str, Any],
    filters: dict[str, Any],
    export_format: str = "csv",
    requested_by: str | None = None,
) -> dict[str, Any]:
    """Write an activity export to the export directory.

    The requesting user receives an in-app notification with the file
    location once the export is written.

    Args:
        ctx: Worker context containing database session factory
        filters: Activity filters as sent by the export endpoint; may
            carry ``selected_ids`` and a scoping ``user_id``
        export_format: ``csv`` or ``json``
        requested_by: Id of the user who asked for the export

    Returns:
        Dict with the file path and the number of exported records
    """
    session_factory = session_factory_from(ctx)
    selected = filters.pop("selected_ids", None)
    query = ActivityFilters(**filters).model_dump(exclude_none=True)
    if selected:
        query["selected_ids"] = [UUID(str(i)) for i in selected]

    requester_id = UUID(requested_by) if requested_by else None

    async with session_factory() as session:
        requester = await session.get(User, requester_id) if requester_id else None
        activities = await ActivityRepository(session).get_all(query)
        exporter = ActivityExporter(session, exported_by=requester.email if requester else None)
        content = exporter.render(activities, export_format, filters)
        path = exporter.write_file(content, export_format)

        await ActivityLogger(session).log_data_export(
            "activities",
            {"format": export_format, "total": len(activities), "file": path.name},
            user_id=requester_id,
        )
        if requester is not None:
            session.add(
                Notification(
                    user_id=requester.id,
                    title="Activity export ready",
                    message=f"{len(activities)} activities exported to {path.name}",
                    type="export_ready",
                    priority="normal",
                    data={"file": str(path), "format": export_format},
                )
            )
        await session.commit()

    log.info("export_activities_complete", path=str(path), total=len(activities))
    return {"path": str(path), "total_records": len(activities)}
