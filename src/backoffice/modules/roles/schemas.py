"""Pydantic schemas for role operations."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from backoffice.core.constants import MAX_DESCRIPTION_LENGTH, MAX_ROLE_NAME_LENGTH


ROLE_NAME_PATTERN = r"^[a-z][a-z0-9_]*$"


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=MAX_ROLE_NAME_LENGTH, pattern=ROLE_NAME_PATTERN)
    display_name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    parent_id: UUID | None = None
    is_active: bool = True
    permission_ids: list[UUID] | None = None


class RoleUpdate(BaseModel):
    name: str | None = Field(
        None, min_length=2, max_length=MAX_ROLE_NAME_LENGTH, pattern=ROLE_NAME_PATTERN
    )
    display_name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    parent_id: UUID | None = None
    is_active: bool | None = None


class RoleDuplicate(BaseModel):
    name: str = Field(..., min_length=2, max_length=MAX_ROLE_NAME_LENGTH, pattern=ROLE_NAME_PATTERN)
    display_name: str | None = Field(None, min_length=1, max_length=255)


class PermissionBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    display_name: str
    module: str
    type: str


class RoleResponse(BaseModel):
    """Schema for role response data."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    display_name: str
    description: str | None
    parent_id: UUID | None
    is_system: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime


class RoleListItem(RoleResponse):
    user_count: int = 0
    permission_count: int = 0


class RoleListResponse(BaseModel):
    items: list[RoleListItem]
    total: int
    page: int
    page_size: int


class RoleDetailResponse(RoleResponse):
    """A role with its direct and inherited permissions."""

    permissions: list[PermissionBrief]
    inherited_permissions: list[PermissionBrief]
    user_count: int
    depth: int


class SyncPermissionsRequest(BaseModel):
    permission_ids: list[UUID]


class SyncPermissionsResponse(BaseModel):
    role_id: UUID
    added: list[str]
    removed: list[str]
    auto_added: list[str]


class BulkPermissionRequest(BaseModel):
    role_ids: list[UUID] = Field(..., min_length=1)
    permission_ids: list[UUID] = Field(..., min_length=1)
    mode: Literal["add", "remove", "replace"] = "add"


class BulkRoleResult(BaseModel):
    role_id: UUID
    success: bool
    role_name: str | None = None
    error: str | None = None
    permission_count: int | None = None


class BulkPermissionResponse(BaseModel):
    results: list[BulkRoleResult]
    succeeded: int
    failed: int


class BulkStatusRequest(BaseModel):
    role_ids: list[UUID] = Field(..., min_length=1)
    is_active: bool


class BulkStatusResponse(BaseModel):
    updated: int


class RoleTreeNode(BaseModel):
    id: UUID
    name: str
    display_name: str
    is_active: bool
    is_system: bool
    children: list["RoleTreeNode"] = Field(default_factory=list)


class RoleStatistics(BaseModel):
    total_roles: int
    active_roles: int
    system_roles: int
    roles_with_users: int
    average_permissions_per_role: float
    max_hierarchy_depth: int
    most_used_roles: list[dict[str, Any]]


class MatrixRole(BaseModel):
    id: UUID
    name: str
    display_name: str


class MatrixPermission(BaseModel):
    id: UUID
    name: str
    display_name: str
    type: str
    roles: dict[str, bool]


class PermissionMatrixResponse(BaseModel):
    """``modules`` maps each module to its permissions; ``roles`` keys are role ids."""

    roles: list[MatrixRole]
    modules: dict[str, list[MatrixPermission]]


RoleSort = Literal["name", "-name", "created_at", "-created_at", "display_name", "-display_name"]
