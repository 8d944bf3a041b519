"""Pydantic schemas for permission operations."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from backoffice.core.constants import (
    MAX_DESCRIPTION_LENGTH,
    MAX_MODULE_LENGTH,
    MAX_PERMISSION_NAME_LENGTH,
)


PERMISSION_NAME_PATTERN = r"^[a-z][a-z0-9_]*\.([a-z][a-z0-9_]*|\*)$"

PermissionType = Literal["view", "create", "edit", "delete", "manage"]


class PermissionCreate(BaseModel):
    name: str = Field(
        ...,
        max_length=MAX_PERMISSION_NAME_LENGTH,
        pattern=PERMISSION_NAME_PATTERN,
        description="Dotted name, e.g. ``reports.view``",
    )
    display_name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    module: str = Field(..., min_length=1, max_length=MAX_MODULE_LENGTH)
    type: PermissionType = "view"
    dependency_ids: list[UUID] = Field(default_factory=list)


class PermissionUpdate(BaseModel):
    name: str | None = Field(
        None, max_length=MAX_PERMISSION_NAME_LENGTH, pattern=PERMISSION_NAME_PATTERN
    )
    display_name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    module: str | None = Field(None, min_length=1, max_length=MAX_MODULE_LENGTH)
    type: PermissionType | None = None


class PermissionResponse(BaseModel):
    """Schema for permission response data."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    display_name: str
    description: str | None
    module: str
    type: str
    is_system: bool
    created_at: datetime
    updated_at: datetime


class PermissionListItem(PermissionResponse):
    role_count: int = 0


class PermissionListResponse(BaseModel):
    items: list[PermissionListItem]
    total: int
    page: int
    page_size: int


class PermissionRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    display_name: str


class PermissionDetailResponse(PermissionResponse):
    dependencies: list[PermissionRef]
    dependents: list[PermissionRef]
    roles: list[PermissionRef]


class SyncDependenciesRequest(BaseModel):
    dependency_ids: list[UUID]


class DependencyChainResponse(BaseModel):
    """Transitive dependencies and dependents of a permission."""

    permission_id: UUID
    dependencies: list[PermissionRef]
    dependents: list[PermissionRef]


class ModuleUsage(BaseModel):
    total: int
    used: int
    unused: int


class UsageStatsResponse(BaseModel):
    total: int
    used: int
    unused: int
    usage_percentage: float
    by_module: dict[str, ModuleUsage]
    unused_permissions: list[PermissionRef]


class ModuleResponse(BaseModel):
    module: str
    count: int


class PermissionImportRequest(BaseModel):
    document: dict[str, Any]
    conflict_resolution: Literal["skip", "update"] = "skip"
    dry_run: bool = False


class ImportIssue(BaseModel):
    name: str | None = None
    message: str


class PermissionImportResponse(BaseModel):
    created: int
    updated: int
    skipped: int
    warnings: list[ImportIssue]
    errors: list[ImportIssue]
    dry_run: bool
    success: bool


PermissionSort = Literal["name", "-name", "module", "-module", "created_at", "-created_at"]


# Templates

TEMPLATE_NAME_PATTERN = r"^[a-z][a-z_]*$"
MODULE_PREFIX_PATTERN = r"^[a-z][a-z0-9_]*$"


class TemplateEntry(BaseModel):
    """One action of a template, stamped as ``<module>.<action>``."""

    action: str = Field(..., pattern=MODULE_PREFIX_PATTERN, max_length=50)
    display_name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    type: PermissionType = "view"


class TemplateCreate(BaseModel):
    name: str = Field(..., pattern=TEMPLATE_NAME_PATTERN, max_length=100)
    display_name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    module: str = Field(..., min_length=1, max_length=MAX_MODULE_LENGTH)
    permissions: list[TemplateEntry] = Field(..., min_length=1)


class TemplateUpdate(BaseModel):
    display_name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    module: str | None = Field(None, min_length=1, max_length=MAX_MODULE_LENGTH)
    permissions: list[TemplateEntry] | None = Field(None, min_length=1)
    is_active: bool | None = None


class TemplateFromPermissions(BaseModel):
    """Build a template from existing permissions; actions come from their names."""

    permission_ids: list[UUID] = Field(..., min_length=1)
    name: str = Field(..., pattern=TEMPLATE_NAME_PATTERN, max_length=100)
    display_name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    module: str = Field(..., min_length=1, max_length=MAX_MODULE_LENGTH)


class TemplateDuplicate(BaseModel):
    name: str = Field(..., pattern=TEMPLATE_NAME_PATTERN, max_length=100)
    display_name: str | None = Field(None, min_length=1, max_length=255)
    module: str | None = Field(None, min_length=1, max_length=MAX_MODULE_LENGTH)


class TemplateApply(BaseModel):
    module_prefix: str = Field(..., pattern=MODULE_PREFIX_PATTERN, max_length=MAX_MODULE_LENGTH)


class TemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    display_name: str
    description: str | None
    module: str
    permissions: list[TemplateEntry]
    is_system: bool
    is_active: bool
    created_by: UUID | None
    created_at: datetime
    updated_at: datetime


class TemplatePreviewItem(BaseModel):
    name: str
    action: str
    display_name: str
    description: str | None
    type: str
    exists: bool
    will_create: bool


class TemplateApplySkip(BaseModel):
    name: str
    reason: str


class TemplateApplyResponse(BaseModel):
    module_prefix: str
    created: list[PermissionRef]
    skipped: list[TemplateApplySkip]


class TemplateImportRequest(BaseModel):
    document: dict[str, Any]


# Permission tester


class PermissionTestRequest(BaseModel):
    subject_id: UUID
    permission: str = Field(..., min_length=1, max_length=MAX_PERMISSION_NAME_LENGTH)


class BatchPermissionTestRequest(BaseModel):
    subject_id: UUID
    permissions: list[str] = Field(..., min_length=1, max_length=100)


class TestedSubject(BaseModel):
    type: Literal["user", "role"]
    id: UUID
    name: str


class GrantStep(BaseModel):
    """One link in the chain that grants a permission.

    ``direct`` means the role holds a matching permission (``granted_by``
    may be a wildcard); ``inherited`` means it comes from ``parent_role_*``
    and ``path`` explains how the parent holds it. For users, each ``role``
    step wraps the path of one assigned role.
    """

    type: Literal["superuser", "role", "direct", "inherited"]
    role_id: UUID | None = None
    role_name: str | None = None
    granted_by: str | None = None
    parent_role_id: UUID | None = None
    parent_role_name: str | None = None
    path: list["GrantStep"] = Field(default_factory=list)


class DependencyCheck(BaseModel):
    name: str
    granted: bool


class PermissionTestResult(BaseModel):
    subject: TestedSubject
    permission: PermissionRef
    granted: bool
    path: list[GrantStep]
    dependencies: list[DependencyCheck]


class BatchTestItem(BaseModel):
    permission: str
    granted: bool
    path: list[GrantStep]
