"""Audit trail API routes."""

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from backoffice.api.dependencies import DBSession, PageParams
from backoffice.core.audit.schemas import (
    AuditCleanupRequest,
    AuditCleanupResponse,
    AuditFilters,
    AuditLogListResponse,
    AuditLogResponse,
    AuditStatsResponse,
)
from backoffice.core.audit.service import AuditService
from backoffice.core.auth.dependencies import CurrentUser
from backoffice.core.permissions import require_permission


router = APIRouter(prefix="/audit", tags=["audit"])

Filters = Annotated[AuditFilters, Depends()]


@router.get(
    "",
    response_model=AuditLogListResponse,
    summary="Search the audit trail",
)
@require_permission("audit.view")
async def list_audit_logs(
    filters: Filters,
    pagination: PageParams,
    current_user: CurrentUser,
    db: DBSession,
) -> AuditLogListResponse:
    entries, total = await AuditService(db).search(
        filters.model_dump(exclude_none=True),
        page=pagination.page,
        page_size=pagination.page_size,
    )
    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(e) for e in entries],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.get("/stats", response_model=AuditStatsResponse, summary="Audit statistics")
@require_permission("audit.view")
async def audit_stats(
    current_user: CurrentUser,
    db: DBSession,
    days: Annotated[int, Query(ge=1, le=365)] = 30,
) -> AuditStatsResponse:
    return AuditStatsResponse(**await AuditService(db).get_stats(days))


@router.get("/analysis", summary="Detailed audit analysis")
@require_permission("audit.view")
async def audit_analysis(
    current_user: CurrentUser,
    db: DBSession,
    days: Annotated[int, Query(ge=1, le=365)] = 30,
) -> dict[str, Any]:
    return await AuditService(db).get_detailed_analysis(days)


@router.get("/export", summary="Export the audit trail as JSON")
@require_permission("audit.export")
async def export_audit_logs(
    filters: Filters,
    current_user: CurrentUser,
    db: DBSession,
) -> dict[str, Any]:
    return await AuditService(db).export(filters.model_dump(exclude_none=True))


@router.post(
    "/cleanup",
    response_model=AuditCleanupResponse,
    summary="Delete old audit entries",
    description="With dry_run the entries that would be deleted are only counted.",
)
@require_permission("audit.manage")
async def cleanup_audit_logs(
    data: AuditCleanupRequest,
    current_user: CurrentUser,
    db: DBSession,
) -> AuditCleanupResponse:
    service = AuditService(db)
    preview = await service.get_cleanup_stats(data.days_to_keep)
    deleted = 0
    if not data.dry_run:
        deleted = await service.cleanup(data.days_to_keep)
        await service.log(
            "cleanup",
            "audit_logs",
            metadata={"days_to_keep": data.days_to_keep, "deleted": deleted},
        )
    return AuditCleanupResponse(**preview, deleted=deleted, dry_run=data.dry_run)


@router.get("/{entry_id}", response_model=AuditLogResponse, summary="Get an audit entry")
@require_permission("audit.view")
async def get_audit_log(
    entry_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> AuditLogResponse:
    return AuditLogResponse.model_validate(await AuditService(db).get(entry_id))
