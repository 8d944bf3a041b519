"""Settings API routes."""

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Query, status

from backoffice.api.dependencies import DBSession, PageParams
from backoffice.core.auth.dependencies import CurrentUser
from backoffice.core.permissions import require_permission
from backoffice.modules.settings.schemas import (
    BackupCreate,
    BackupResponse,
    BatchUpdateRequest,
    BatchUpdateResponse,
    CategoryResponse,
    ImportRequest,
    ImportResponse,
    ResetResponse,
    RestoreResponse,
    SettingChangeListResponse,
    SettingChangeResponse,
    SettingResponse,
    SettingUpdate,
    SettingUpdateResponse,
    SettingValueResponse,
)
from backoffice.modules.settings.services import SettingsSvc


router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=list[SettingResponse], summary="List settings")
@require_permission("settings.view")
async def list_settings(
    service: SettingsSvc,
    current_user: CurrentUser,
    db: DBSession,
    category: str | None = None,
) -> list[SettingResponse]:
    items = await service.get_all(category)
    return [SettingResponse(**item) for item in items]


@router.get("/categories", response_model=list[CategoryResponse], summary="List categories")
@require_permission("settings.view")
async def list_categories(
    service: SettingsSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> list[CategoryResponse]:
    return [CategoryResponse(**c) for c in service.get_categories()]


@router.get(
    "/changes",
    response_model=SettingChangeListResponse,
    summary="Setting change history",
)
@require_permission("settings.view")
async def list_changes(
    pagination: PageParams,
    service: SettingsSvc,
    current_user: CurrentUser,
    db: DBSession,
    key: str | None = None,
) -> SettingChangeListResponse:
    changes, total = await service.get_changes(
        key, page=pagination.page, page_size=pagination.page_size
    )
    return SettingChangeListResponse(
        items=[SettingChangeResponse.model_validate(c) for c in changes],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.put("", response_model=BatchUpdateResponse, summary="Update several settings")
@require_permission("settings.edit")
async def batch_update_settings(
    data: BatchUpdateRequest,
    service: SettingsSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> BatchUpdateResponse:
    return BatchUpdateResponse(**await service.batch_update(data.values, data.reason))


@router.post(
    "/categories/{category}/reset",
    response_model=ResetResponse,
    summary="Reset a category to defaults",
)
@require_permission("settings.edit")
async def reset_category(
    category: str,
    service: SettingsSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> ResetResponse:
    return ResetResponse(reset=await service.reset_category(category))


# Backups


@router.get("/backups", response_model=list[BackupResponse], summary="List backups")
@require_permission("settings.manage")
async def list_backups(
    service: SettingsSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> list[BackupResponse]:
    backups = await service.list_backups()
    return [BackupResponse.model_validate(b) for b in backups]


@router.post(
    "/backups",
    response_model=BackupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Back up all settings",
)
@require_permission("settings.manage")
async def create_backup(
    data: BackupCreate,
    service: SettingsSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> BackupResponse:
    backup = await service.create_backup(data.name, data.description)
    return BackupResponse.model_validate(backup)


@router.post(
    "/backups/{backup_id}/restore",
    response_model=RestoreResponse,
    summary="Restore settings from a backup",
)
@require_permission("settings.manage")
async def restore_backup(
    backup_id: UUID,
    service: SettingsSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> RestoreResponse:
    return RestoreResponse(**await service.restore_backup(backup_id))


@router.delete(
    "/backups/{backup_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a backup",
)
@require_permission("settings.manage")
async def delete_backup(
    backup_id: UUID,
    service: SettingsSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    await service.delete_backup(backup_id)


# Import / export


@router.get("/export", summary="Export settings as JSON")
@require_permission("settings.manage")
async def export_settings(
    service: SettingsSvc,
    current_user: CurrentUser,
    db: DBSession,
    categories: Annotated[list[str] | None, Query()] = None,
) -> dict[str, Any]:
    return await service.export_settings(categories)


@router.post("/import", response_model=ImportResponse, summary="Import settings")
@require_permission("settings.manage")
async def import_settings(
    data: ImportRequest,
    service: SettingsSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> ImportResponse:
    result = await service.import_settings(data.document, data.overwrite)
    return ImportResponse(**result)


# Single settings. Declared last so the literal paths above win.


@router.get("/{key}", response_model=SettingValueResponse, summary="Get a setting value")
@require_permission("settings.view")
async def get_setting(
    key: str,
    service: SettingsSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> SettingValueResponse:
    value = await service.get_display_value(key)
    return SettingValueResponse(key=key, value=value)


@router.put("/{key}", response_model=SettingUpdateResponse, summary="Update a setting")
@require_permission("settings.edit")
async def update_setting(
    key: str,
    data: SettingUpdate,
    service: SettingsSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> SettingUpdateResponse:
    result = await service.update_setting(key, data.value, data.reason)
    return SettingUpdateResponse(**result)


@router.post("/{key}/reset", response_model=SettingUpdateResponse, summary="Reset a setting")
@require_permission("settings.edit")
async def reset_setting(
    key: str,
    service: SettingsSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> SettingUpdateResponse:
    changed = await service.reset_setting(key)
    return SettingUpdateResponse(key=key, changed=changed)
