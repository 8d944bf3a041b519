"""Pydantic schemas for the audit trail API."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AuditLogResponse(BaseModel):
    """A single audit trail entry."""

    id: UUID
    user_id: UUID | None
    session_id: UUID | None = None
    action: str
    resource_type: str
    resource_id: str | None
    ip_address: str | None
    user_agent: str | None
    request_id: str | None
    changes: dict[str, Any] | None
    metadata: dict[str, Any] | None = Field(None, validation_alias="metadata_")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class AuditLogListResponse(BaseModel):
    items: list[AuditLogResponse]
    total: int
    page: int
    page_size: int


class AuditFilters(BaseModel):
    """Query filters for searching and exporting the audit trail."""

    action: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    user_id: UUID | None = None
    date_from: date | None = None
    date_to: date | None = None
    search: str | None = Field(None, max_length=255)


class AuditStatsResponse(BaseModel):
    period_days: int
    total_actions: int
    unique_users: int
    unique_resources: int
    actions_by_type: dict[str, int]
    actions_by_resource: dict[str, int]
    daily_activity: dict[str, int]
    most_active_day: str | None
    average_daily_activity: float


class AuditCleanupRequest(BaseModel):
    days_to_keep: int = Field(365, ge=1, le=3650)
    dry_run: bool = False


class AuditCleanupResponse(BaseModel):
    """Cleanup preview, plus the deleted count when not a dry run."""

    total_records: int
    records_to_delete: int
    records_to_keep: int
    cutoff_date: str
    oldest_record: str | None
    deleted: int = 0
    dry_run: bool
