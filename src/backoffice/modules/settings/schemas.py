"""Settings Pydantic schemas for request/response validation."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SettingResponse(BaseModel):
    """A setting definition merged with its effective value."""

    key: str
    category: str
    type: str
    value: Any
    default: Any
    description: str | None = None
    rules: dict[str, Any] = Field(default_factory=dict)
    depends_on: dict[str, Any] = Field(default_factory=dict)
    is_default: bool
    is_enabled: bool = Field(description="False while a depends_on condition is unmet")
    updated_at: datetime | None = None


class CategoryResponse(BaseModel):
    key: str
    name: str
    icon: str | None = None
    description: str | None = None
    order: int
    count: int


class SettingValueResponse(BaseModel):
    key: str
    value: Any


class SettingUpdate(BaseModel):
    value: Any
    reason: str | None = Field(None, max_length=500)


class SettingUpdateResponse(BaseModel):
    key: str
    changed: bool


class BatchUpdateRequest(BaseModel):
    """Several settings updated together; nothing is stored if any is invalid."""

    values: dict[str, Any] = Field(..., min_length=1)
    reason: str | None = Field(None, max_length=500)


class BatchUpdateResponse(BaseModel):
    updated: list[str]
    unchanged: list[str]


class ResetResponse(BaseModel):
    reset: list[str]


class SettingChangeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    setting_key: str
    old_value: Any
    new_value: Any
    changed_by: UUID | None
    ip_address: str | None
    reason: str | None
    created_at: datetime


class SettingChangeListResponse(BaseModel):
    items: list[SettingChangeResponse]
    total: int
    page: int
    page_size: int


class BackupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=1000)


class BackupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    created_by: UUID | None
    created_at: datetime


class RestoreResponse(BaseModel):
    restored: list[str]
    skipped: list[str]


class ImportRequest(BaseModel):
    """A document produced by the export endpoint."""

    document: dict[str, Any]
    overwrite: bool = True


class ImportResponse(BaseModel):
    updated: list[str]
    unchanged: list[str]
    skipped: list[str]
