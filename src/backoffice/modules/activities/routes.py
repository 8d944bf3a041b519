"""Activity log API routes."""

from collections.abc import Sequence
from typing import Annotated, Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from backoffice.api.dependencies import DBSession, PageParams
from backoffice.core.auth.dependencies import CurrentUser
from backoffice.core.constants import ASYNC_EXPORT_THRESHOLD
from backoffice.core.errors import NotFoundError
from backoffice.core.jobs.registry import enqueue
from backoffice.core.permissions import require_permission
from backoffice.modules.activities.export import ActivityExporter
from backoffice.modules.activities.logger import ActivityLogger
from backoffice.modules.activities.models import Activity
from backoffice.modules.activities.policy import ActivityPolicy
from backoffice.modules.activities.repos import ActivityRepository
from backoffice.modules.activities.retention import RetentionSvc
from backoffice.modules.activities.schemas import (
    ActivityDetailResponse,
    ActivityFilters,
    ActivityListResponse,
    ActivityResponse,
    ActivityStatsResponse,
    ArchivedActivityListResponse,
    ArchivedActivityResponse,
    BackupResponse,
    BulkDeleteRequest,
    CleanupRequest,
    CleanupResponse,
    ExportQueuedResponse,
    ExportRequest,
    IntegrityRequest,
    IntegrityResponse,
    PolicyExecutionResult,
    PolicyPreviewResponse,
    RestoreArchivedRequest,
    RestoreArchivedResponse,
    RetentionPolicyCreate,
    RetentionPolicyResponse,
    RetentionPolicyUpdate,
    SuspiciousPattern,
    TimeRange,
    TopUserResponse,
    TrendPoint,
)


router = APIRouter(prefix="/activities", tags=["activities"])

Filters = Annotated[ActivityFilters, Depends()]


async def _scoped_filters(
    policy: ActivityPolicy, user: Any, filters: ActivityFilters
) -> dict[str, Any]:
    # Without security.view a user only sees their own activity
    data = filters.model_dump(exclude_none=True)
    if not await policy.can(user, "security.view"):
        data["user_id"] = user.id
    return data


async def _present(
    policy: ActivityPolicy, user: Any, activities: Sequence[Activity]
) -> list[ActivityResponse]:
    items = []
    for activity in activities:
        data = ActivityResponse.model_validate(activity).model_dump()
        items.append(ActivityResponse(**await policy.filter_activity_data(data, user)))
    return items


@router.get("", response_model=ActivityListResponse, summary="List activities")
async def list_activities(
    filters: Filters,
    pagination: PageParams,
    current_user: CurrentUser,
    db: DBSession,
    sort_field: str = "created_at",
    sort_direction: Literal["asc", "desc"] = "desc",
) -> ActivityListResponse:
    policy = ActivityPolicy(db)
    await policy.authorize(current_user, "view")

    activities, total = await ActivityRepository(db).get_paginated(
        await _scoped_filters(policy, current_user, filters),
        page=pagination.page,
        page_size=pagination.page_size,
        sort_field=sort_field,
        sort_direction=sort_direction,
    )
    return ActivityListResponse(
        items=await _present(policy, current_user, activities),
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.get("/stats", response_model=ActivityStatsResponse, summary="Activity statistics")
@require_permission("activity_logs.view")
async def activity_stats(
    current_user: CurrentUser,
    db: DBSession,
    time_range: TimeRange = "7d",
) -> ActivityStatsResponse:
    return ActivityStatsResponse(**await ActivityRepository(db).get_stats(time_range))


@router.get("/today", summary="Today's activity summary")
@require_permission("activity_logs.view")
async def today_stats(current_user: CurrentUser, db: DBSession) -> dict[str, int]:
    return await ActivityRepository(db).get_today_stats()


@router.get("/recent", summary="Most recent activities")
@require_permission("activity_logs.view")
async def recent_activities(
    current_user: CurrentUser,
    db: DBSession,
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
) -> list[dict[str, Any]]:
    return await ActivityRepository(db).get_recent(limit)


@router.get("/trends", response_model=list[TrendPoint], summary="Activity trends")
@require_permission("activity_logs.view")
async def activity_trends(
    current_user: CurrentUser,
    db: DBSession,
    time_range: TimeRange = "7d",
    group_by: Literal["hour", "day", "week", "month"] = "day",
) -> list[TrendPoint]:
    points = await ActivityRepository(db).get_trends(time_range, group_by)
    return [TrendPoint(**p) for p in points]


@router.get("/top-users", response_model=list[TopUserResponse], summary="Most active users")
@require_permission("activity_logs.view")
async def top_users(
    current_user: CurrentUser,
    db: DBSession,
    time_range: TimeRange = "7d",
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
) -> list[TopUserResponse]:
    rows = await ActivityRepository(db).get_top_users(time_range, limit)
    return [TopUserResponse(**row) for row in rows]


@router.get(
    "/security-events",
    response_model=list[ActivityResponse],
    summary="Security events",
)
@require_permission("security.view")
async def security_events(
    current_user: CurrentUser,
    db: DBSession,
    time_range: TimeRange = "7d",
) -> list[ActivityResponse]:
    events = await ActivityRepository(db).get_security_events(time_range)
    return await _present(ActivityPolicy(db), current_user, events)


@router.get(
    "/users/{user_id}/suspicious-patterns",
    response_model=list[SuspiciousPattern],
    summary="Suspicious patterns for a user",
)
@require_permission("security.view")
async def suspicious_patterns(
    user_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
    time_range: TimeRange = "7d",
) -> list[SuspiciousPattern]:
    patterns = await ActivityRepository(db).detect_suspicious_patterns(user_id, time_range)
    return [SuspiciousPattern(**p) for p in patterns]


@router.post(
    "/export",
    summary="Export activities",
    description=(
        f"Up to {ASYNC_EXPORT_THRESHOLD} rows are returned directly; "
        "larger exports are written to a file by a background job."
    ),
    responses={202: {"model": ExportQueuedResponse}},
)
async def export_activities(
    data: ExportRequest,
    current_user: CurrentUser,
    db: DBSession,
) -> Response:
    policy = ActivityPolicy(db)
    await policy.authorize(current_user, "export")

    filters = await _scoped_filters(policy, current_user, data.filters)
    if data.selected_ids:
        filters["selected_ids"] = data.selected_ids

    repo = ActivityRepository(db)
    total = await repo.count(filters)
    if total > ASYNC_EXPORT_THRESHOLD:
        job_filters = data.filters.model_dump(mode="json", exclude_none=True)
        if data.selected_ids:
            job_filters["selected_ids"] = [str(i) for i in data.selected_ids]
        if "user_id" in filters:
            job_filters["user_id"] = str(filters["user_id"])
        job = await enqueue(
            "export_activities",
            filters=job_filters,
            export_format=data.format,
            requested_by=str(current_user.id),
        )
        queued = ExportQueuedResponse(total_records=total, job_id=job.job_id if job else None)
        return Response(
            content=queued.model_dump_json(),
            media_type="application/json",
            status_code=status.HTTP_202_ACCEPTED,
        )

    activities = await repo.get_all(filters)
    exporter = ActivityExporter(db, exported_by=current_user.email)
    content = exporter.render(activities, data.format, data.filters.model_dump(mode="json"))
    await ActivityLogger(db).log_data_export(
        "activities", {"format": data.format, "total": len(activities)}
    )
    media_type = "text/csv" if data.format == "csv" else "application/json"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="activities.{data.format}"'},
    )


@router.post("/integrity", response_model=IntegrityResponse, summary="Verify signatures")
async def verify_integrity(
    data: IntegrityRequest,
    current_user: CurrentUser,
    db: DBSession,
) -> IntegrityResponse:
    await ActivityPolicy(db).authorize(current_user, "audit")
    return IntegrityResponse(**await ActivityRepository(db).verify_integrity(data.ids))


@router.post("/bulk-delete", summary="Delete selected activities")
async def bulk_delete(
    data: BulkDeleteRequest,
    current_user: CurrentUser,
    db: DBSession,
) -> dict[str, int]:
    await ActivityPolicy(db).authorize(current_user, "delete")
    deleted = await ActivityRepository(db).delete_many(data.ids)
    await ActivityLogger(db).log_security_event(
        "bulk_operation",
        f"Deleted {deleted} activities",
        {"operation": "delete", "count": deleted},
    )
    return {"deleted": deleted}


@router.post("/cleanup", response_model=CleanupResponse, summary="Clean up old activities")
@require_permission("activity_logs.manage")
async def cleanup_activities(
    data: CleanupRequest,
    service: RetentionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> CleanupResponse:
    result = await service.manual_cleanup(
        data.model_dump(include={"older_than_days", "activity_type", "module"}),
        action=data.action,
        dry_run=data.dry_run,
    )
    return CleanupResponse(**result)


@router.post(
    "/backup",
    response_model=BackupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Back up activities to a JSON file",
)
@require_permission("activity_logs.manage")
async def backup_activities(
    current_user: CurrentUser,
    db: DBSession,
    time_range: TimeRange = "30d",
) -> BackupResponse:
    backup = await ActivityExporter(db, exported_by=current_user.email).create_backup(time_range)
    await ActivityLogger(db).log_data_export(
        "activities_backup", {"time_range": time_range, "total": backup["total_records"]}
    )
    return BackupResponse(**backup)


# Retention policies


@router.get(
    "/retention-policies",
    response_model=list[RetentionPolicyResponse],
    summary="List retention policies",
)
@require_permission("activity_logs.manage")
async def list_retention_policies(
    service: RetentionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> list[RetentionPolicyResponse]:
    return [RetentionPolicyResponse.model_validate(p) for p in await service.list_policies()]


@router.post(
    "/retention-policies",
    response_model=RetentionPolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a retention policy",
)
@require_permission("activity_logs.manage")
async def create_retention_policy(
    data: RetentionPolicyCreate,
    service: RetentionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> RetentionPolicyResponse:
    policy = await service.create_policy(data.model_dump())
    return RetentionPolicyResponse.model_validate(policy)


@router.post(
    "/retention-policies/execute",
    response_model=list[PolicyExecutionResult],
    summary="Run all active retention policies",
)
@require_permission("activity_logs.manage")
async def execute_all_retention_policies(
    service: RetentionSvc,
    current_user: CurrentUser,
    db: DBSession,
    dry_run: bool = False,
) -> list[PolicyExecutionResult]:
    results = await service.execute_all_policies(dry_run)
    return [PolicyExecutionResult(**r) for r in results]


@router.patch(
    "/retention-policies/{policy_id}",
    response_model=RetentionPolicyResponse,
    summary="Update a retention policy",
)
@require_permission("activity_logs.manage")
async def update_retention_policy(
    policy_id: UUID,
    data: RetentionPolicyUpdate,
    service: RetentionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> RetentionPolicyResponse:
    policy = await service.update_policy(policy_id, data.model_dump(exclude_unset=True))
    return RetentionPolicyResponse.model_validate(policy)


@router.delete(
    "/retention-policies/{policy_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a retention policy",
)
@require_permission("activity_logs.manage")
async def delete_retention_policy(
    policy_id: UUID,
    service: RetentionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    await service.delete_policy(policy_id)


@router.post(
    "/retention-policies/{policy_id}/execute",
    response_model=PolicyExecutionResult,
    summary="Run one retention policy",
)
@require_permission("activity_logs.manage")
async def execute_retention_policy(
    policy_id: UUID,
    service: RetentionSvc,
    current_user: CurrentUser,
    db: DBSession,
    dry_run: bool = False,
) -> PolicyExecutionResult:
    policy = await service.get_policy(policy_id)
    return PolicyExecutionResult(**await service.execute_policy(policy, dry_run))


@router.get(
    "/retention-policies/{policy_id}/preview",
    response_model=PolicyPreviewResponse,
    summary="Preview what a retention policy would process",
)
@require_permission("activity_logs.manage")
async def preview_retention_policy(
    policy_id: UUID,
    service: RetentionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> PolicyPreviewResponse:
    policy = await service.get_policy(policy_id)
    return PolicyPreviewResponse(**await service.preview_policy_impact(policy))


# Archive


@router.get(
    "/archived",
    response_model=ArchivedActivityListResponse,
    summary="List archived activities",
)
@require_permission("activity_logs.manage")
async def list_archived(
    pagination: PageParams,
    service: RetentionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> ArchivedActivityListResponse:
    entries, total = await service.list_archived(pagination.page, pagination.page_size)
    return ArchivedActivityListResponse(
        items=[ArchivedActivityResponse.model_validate(e) for e in entries],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.post(
    "/archived/restore",
    response_model=RestoreArchivedResponse,
    summary="Restore archived activities",
)
@require_permission("activity_logs.manage")
async def restore_archived(
    data: RestoreArchivedRequest,
    service: RetentionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> RestoreArchivedResponse:
    return RestoreArchivedResponse(**await service.restore_archived(data.ids))


# Single activities. Declared last so the literal paths above win.


async def _get_activity(db: DBSession, activity_id: UUID) -> Activity:
    activity = await ActivityRepository(db).get_by_id(activity_id)
    if activity is None:
        raise NotFoundError(
            "Activity not found", resource="activity", resource_id=str(activity_id)
        )
    return activity


@router.get(
    "/{activity_id}",
    response_model=ActivityDetailResponse,
    summary="Get an activity with related activity",
)
async def get_activity(
    activity_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> ActivityDetailResponse:
    activity = await _get_activity(db, activity_id)
    policy = ActivityPolicy(db)
    await policy.authorize(current_user, "view", activity)

    related = [
        a
        for a in await ActivityRepository(db).get_related(activity)
        if await policy.check_object(current_user, "view", a) is None
    ]
    return ActivityDetailResponse(
        activity=(await _present(policy, current_user, [activity]))[0],
        related=await _present(policy, current_user, related),
    )


@router.delete(
    "/{activity_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an activity",
)
async def delete_activity(
    activity_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    activity = await _get_activity(db, activity_id)
    await ActivityPolicy(db).authorize(current_user, "delete", activity)
    await ActivityRepository(db).delete_many([activity.id])
