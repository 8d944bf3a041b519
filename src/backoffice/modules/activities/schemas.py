"""Activity log Pydantic schemas for request/response validation."""

from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


TimeRange = Literal["1d", "7d", "30d", "90d"]


class ActivityFilters(BaseModel):
    """Query filters for listing and exporting activities."""

    search: str | None = None
    user_id: UUID | None = None
    type: str | None = None
    module: str | None = None
    result: Literal["success", "failed", "warning"] | None = None
    ip_address: str | None = None
    risk_level: str | None = Field(None, description="'high' (7 and above) or an exact level")
    risk_level_min: int | None = Field(None, ge=1, le=10)
    risk_level_max: int | None = Field(None, ge=1, le=10)
    date_from: date | None = None
    date_to: date | None = None
    security_events_only: bool = False

    @field_validator("risk_level")
    @classmethod
    def check_risk_level(cls, v: str | None) -> str | None:
        if v is None or v == "high":
            return v
        if not v.isdigit() or not 1 <= int(v) <= 10:
            raise ValueError("risk_level must be 'high' or a number from 1 to 10")
        return v


class ActivityUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    username: str
    full_name: str


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    description: str
    module: str | None
    user_id: UUID | None
    user: ActivityUser | None = None
    subject_type: str | None
    subject_id: str | None
    properties: dict[str, Any] | None
    ip_address: str | None
    user_agent: str | None
    result: str
    risk_level: int
    signature: str | None
    is_security_event: bool
    created_at: datetime


class ActivityListResponse(BaseModel):
    items: list[ActivityResponse]
    total: int
    page: int
    page_size: int


class ActivityDetailResponse(BaseModel):
    activity: ActivityResponse
    related: list[ActivityResponse]


class ActivityStatsResponse(BaseModel):
    time_range: str
    total_activities: int
    unique_users: int
    security_events: int
    high_risk_activities: int
    success_rate: float
    activity_by_type: dict[str, int]
    activity_by_module: dict[str, int]
    hourly_distribution: dict[int, int]
    daily_trends: dict[str, int]


class TrendPoint(BaseModel):
    period: str
    count: int


class TopUserResponse(BaseModel):
    user_id: UUID
    username: str
    full_name: str
    activity_count: int
    last_activity_at: datetime | None


class SuspiciousPattern(BaseModel):
    type: str
    severity: Literal["low", "medium", "high"]
    count: int
    description: str


class IntegrityRequest(BaseModel):
    ids: list[UUID] | None = None


class IntegrityResponse(BaseModel):
    total_records: int
    records_with_signature: int
    valid_signatures: int
    invalid_signatures: int
    integrity_rate: float
    invalid_ids: list[UUID]
    verified_at: datetime


class ExportRequest(BaseModel):
    format: Literal["csv", "json"] = "csv"
    filters: ActivityFilters = Field(default_factory=ActivityFilters)
    selected_ids: list[UUID] | None = None


class ExportQueuedResponse(BaseModel):
    queued: bool = True
    total_records: int
    job_id: str | None = None


class BackupResponse(BaseModel):
    path: str
    total_records: int
    time_range: TimeRange


class BulkDeleteRequest(BaseModel):
    ids: list[UUID] = Field(..., min_length=1)


class CleanupRequest(BaseModel):
    older_than_days: int = Field(..., ge=1)
    activity_type: str | None = None
    module: str | None = None
    action: Literal["delete", "archive"] = "delete"
    dry_run: bool = False


class CleanupResponse(BaseModel):
    action: str
    processed: int
    dry_run: bool


class RetentionPolicyBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    activity_type: str | None = None
    module: str | None = None
    retention_days: int = Field(..., ge=1)
    action: Literal["delete", "archive"] = "delete"
    is_active: bool = True
    priority: int = 0


class RetentionPolicyCreate(RetentionPolicyBase):
    pass


class RetentionPolicyUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    activity_type: str | None = None
    module: str | None = None
    retention_days: int | None = Field(None, ge=1)
    action: Literal["delete", "archive"] | None = None
    is_active: bool | None = None
    priority: int | None = None


class RetentionPolicyResponse(RetentionPolicyBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    last_executed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class PolicyExecutionResult(BaseModel):
    policy_id: UUID
    policy: str
    action: str
    processed: int
    dry_run: bool
    error: str | None = None


class PolicyPreviewResponse(BaseModel):
    policy: str
    action: str
    cutoff: datetime
    total: int
    oldest: datetime | None
    newest: datetime | None
    by_type: dict[str, int]
    by_module: dict[str, int]
    by_risk_level: dict[int, int]


class ArchivedActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    original_id: UUID
    type: str
    description: str
    module: str | None
    user_id: UUID | None
    risk_level: int
    created_at: datetime
    archived_at: datetime
    archive_reason: str | None


class ArchivedActivityListResponse(BaseModel):
    items: list[ArchivedActivityResponse]
    total: int
    page: int
    page_size: int


class RestoreArchivedRequest(BaseModel):
    ids: list[UUID] = Field(..., min_length=1)


class RestoreArchivedResponse(BaseModel):
    restored: list[UUID]
    skipped: list[UUID]
