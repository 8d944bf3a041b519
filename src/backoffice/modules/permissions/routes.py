"""Permission management API routes."""

from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Query, status

from backoffice.api.dependencies import DBSession, PageParams
from backoffice.core.auth.dependencies import CurrentUser
from backoffice.core.permissions import require_permission
from backoffice.modules.permissions.schemas import (
    MODULE_PREFIX_PATTERN,
    BatchPermissionTestRequest,
    BatchTestItem,
    DependencyChainResponse,
    ModuleResponse,
    PermissionCreate,
    PermissionDetailResponse,
    PermissionImportRequest,
    PermissionImportResponse,
    PermissionListItem,
    PermissionListResponse,
    PermissionRef,
    PermissionResponse,
    PermissionSort,
    PermissionTestRequest,
    PermissionTestResult,
    PermissionType,
    PermissionUpdate,
    SyncDependenciesRequest,
    TemplateApply,
    TemplateApplyResponse,
    TemplateApplySkip,
    TemplateCreate,
    TemplateDuplicate,
    TemplateFromPermissions,
    TemplateImportRequest,
    TemplatePreviewItem,
    TemplateResponse,
    TemplateUpdate,
    UsageStatsResponse,
)
from backoffice.modules.permissions.services import PermissionSvc
from backoffice.modules.permissions.templates import TemplateSvc
from backoffice.modules.permissions.tester import Tester


router = APIRouter(prefix="/permissions", tags=["permissions"])


def _refs(items: list[Any]) -> list[PermissionRef]:
    return [PermissionRef.model_validate(item) for item in items]


async def _detail(service: Any, permission_id: UUID) -> PermissionDetailResponse:
    detail = await service.get_permission(permission_id)
    return PermissionDetailResponse(
        **PermissionResponse.model_validate(detail["permission"]).model_dump(),
        dependencies=_refs(detail["dependencies"]),
        dependents=_refs(detail["dependents"]),
        roles=_refs(detail["roles"]),
    )


@router.get("", response_model=PermissionListResponse, summary="List permissions")
@require_permission("permissions.view")
async def list_permissions(
    service: PermissionSvc,
    current_user: CurrentUser,
    db: DBSession,
    pagination: PageParams,
    search: str | None = None,
    module: str | None = None,
    type: PermissionType | None = None,
    usage: str | None = Query(None, pattern="^(used|unused)$"),
    sort: PermissionSort = Query("name"),
) -> PermissionListResponse:
    rows, total = await service.list_permissions(
        search=search,
        module=module,
        type_=type,
        usage=usage,
        page=pagination.page,
        page_size=pagination.page_size,
        sort=sort,
    )
    return PermissionListResponse(
        items=[
            PermissionListItem.model_validate(p).model_copy(update={"role_count": count})
            for p, count in rows
        ],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.post(
    "",
    response_model=PermissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create permission",
)
@require_permission("permissions.create")
async def create_permission(
    data: PermissionCreate,
    service: PermissionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> PermissionResponse:
    return PermissionResponse.model_validate(await service.create_permission(data))


@router.get("/modules", response_model=list[ModuleResponse], summary="Permission modules")
@require_permission("permissions.view")
async def list_modules(
    service: PermissionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> list[ModuleResponse]:
    return [ModuleResponse(**m) for m in await service.get_modules()]


@router.get("/usage", response_model=UsageStatsResponse, summary="Permission usage")
@require_permission("permissions.view")
async def usage_stats(
    service: PermissionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> UsageStatsResponse:
    stats = await service.get_usage_stats()
    return UsageStatsResponse(
        **{k: v for k, v in stats.items() if k != "unused_permissions"},
        unused_permissions=_refs(stats["unused_permissions"]),
    )


@router.get("/export", summary="Export permissions")
@require_permission("permissions.manage")
async def export_permissions(
    service: PermissionSvc,
    current_user: CurrentUser,
    db: DBSession,
    module: str | None = None,
    type: PermissionType | None = None,
    search: str | None = None,
) -> dict[str, Any]:
    return await service.export_permissions({"module": module, "type": type, "search": search})


@router.post(
    "/import",
    response_model=PermissionImportResponse,
    summary="Import permissions",
    description="Import an exported document. With dry_run nothing is kept.",
)
@require_permission("permissions.manage")
async def import_permissions(
    data: PermissionImportRequest,
    service: PermissionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> PermissionImportResponse:
    result = await service.import_permissions(
        data.document,
        conflict_resolution=data.conflict_resolution,
        dry_run=data.dry_run,
    )
    return PermissionImportResponse(**result)


# Templates


@router.get(
    "/templates",
    response_model=list[TemplateResponse],
    summary="List permission templates",
)
@require_permission("permissions.view")
async def list_templates(
    templates: TemplateSvc,
    current_user: CurrentUser,
    db: DBSession,
    module: str | None = None,
    search: str | None = None,
) -> list[TemplateResponse]:
    return [
        TemplateResponse.model_validate(t)
        for t in await templates.list_templates(module=module, search=search)
    ]


@router.post(
    "/templates",
    response_model=TemplateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create permission template",
)
@require_permission("permissions.manage")
async def create_template(
    data: TemplateCreate,
    templates: TemplateSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> TemplateResponse:
    return TemplateResponse.model_validate(await templates.create_template(data))


@router.post(
    "/templates/from-permissions",
    response_model=TemplateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a template from existing permissions",
)
@require_permission("permissions.manage")
async def create_template_from_permissions(
    data: TemplateFromPermissions,
    templates: TemplateSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> TemplateResponse:
    return TemplateResponse.model_validate(await templates.create_from_permissions(data))


@router.post(
    "/templates/import",
    response_model=TemplateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Import permission template",
)
@require_permission("permissions.manage")
async def import_template(
    data: TemplateImportRequest,
    templates: TemplateSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> TemplateResponse:
    return TemplateResponse.model_validate(await templates.import_template(data.document))


@router.get(
    "/templates/{template_id}",
    response_model=TemplateResponse,
    summary="Get permission template",
)
@require_permission("permissions.view")
async def get_template(
    template_id: UUID,
    templates: TemplateSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> TemplateResponse:
    return TemplateResponse.model_validate(await templates.get(template_id))


@router.patch(
    "/templates/{template_id}",
    response_model=TemplateResponse,
    summary="Update permission template",
)
@require_permission("permissions.manage")
async def update_template(
    template_id: UUID,
    data: TemplateUpdate,
    templates: TemplateSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> TemplateResponse:
    return TemplateResponse.model_validate(await templates.update_template(template_id, data))


@router.delete(
    "/templates/{template_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete permission template",
)
@require_permission("permissions.manage")
async def delete_template(
    template_id: UUID,
    templates: TemplateSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    await templates.delete_template(template_id)


@router.get(
    "/templates/{template_id}/preview",
    response_model=list[TemplatePreviewItem],
    summary="Preview applying a template",
)
@require_permission("permissions.view")
async def preview_template(
    template_id: UUID,
    templates: TemplateSvc,
    current_user: CurrentUser,
    db: DBSession,
    module_prefix: str = Query(..., pattern=MODULE_PREFIX_PATTERN, max_length=50),
) -> list[TemplatePreviewItem]:
    return [
        TemplatePreviewItem(**item)
        for item in await templates.preview(template_id, module_prefix)
    ]


@router.post(
    "/templates/{template_id}/apply",
    response_model=TemplateApplyResponse,
    summary="Create a module's permissions from a template",
)
@require_permission("permissions.create")
async def apply_template(
    template_id: UUID,
    data: TemplateApply,
    templates: TemplateSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> TemplateApplyResponse:
    result = await templates.apply_template(template_id, data.module_prefix)
    return TemplateApplyResponse(
        module_prefix=result["module_prefix"],
        created=_refs(result["created"]),
        skipped=[TemplateApplySkip(**skip) for skip in result["skipped"]],
    )


@router.post(
    "/templates/{template_id}/duplicate",
    response_model=TemplateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Duplicate permission template",
)
@require_permission("permissions.manage")
async def duplicate_template(
    template_id: UUID,
    data: TemplateDuplicate,
    templates: TemplateSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> TemplateResponse:
    return TemplateResponse.model_validate(await templates.duplicate(template_id, data))


@router.get("/templates/{template_id}/export", summary="Export permission template")
@require_permission("permissions.manage")
async def export_template(
    template_id: UUID,
    templates: TemplateSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> dict[str, Any]:
    return await templates.export_template(template_id)


# Permission tester


def _test_result(result: dict[str, Any]) -> PermissionTestResult:
    return PermissionTestResult(
        **{k: v for k, v in result.items() if k != "permission"},
        permission=PermissionRef.model_validate(result["permission"]),
    )


@router.post(
    "/test/user",
    response_model=PermissionTestResult,
    summary="Test a user's permission",
    description="Whether the user holds the permission, and through which roles.",
)
@require_permission("permissions.view")
async def test_user_permission(
    data: PermissionTestRequest,
    tester: Tester,
    current_user: CurrentUser,
    db: DBSession,
) -> PermissionTestResult:
    return _test_result(await tester.test_user(data.subject_id, data.permission))


@router.post(
    "/test/role",
    response_model=PermissionTestResult,
    summary="Test a role's permission",
)
@require_permission("permissions.view")
async def test_role_permission(
    data: PermissionTestRequest,
    tester: Tester,
    current_user: CurrentUser,
    db: DBSession,
) -> PermissionTestResult:
    return _test_result(await tester.test_role(data.subject_id, data.permission))


@router.post(
    "/test/batch/{subject_type}",
    response_model=list[BatchTestItem],
    summary="Test several permissions at once",
)
@require_permission("permissions.view")
async def batch_test_permissions(
    subject_type: Literal["user", "role"],
    data: BatchPermissionTestRequest,
    tester: Tester,
    current_user: CurrentUser,
    db: DBSession,
) -> list[BatchTestItem]:
    items = await tester.batch(subject_type, data.subject_id, data.permissions)
    return [BatchTestItem(**item) for item in items]


@router.get(
    "/{permission_id}",
    response_model=PermissionDetailResponse,
    summary="Get permission",
)
@require_permission("permissions.view")
async def get_permission(
    permission_id: UUID,
    service: PermissionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> PermissionDetailResponse:
    return await _detail(service, permission_id)


@router.patch(
    "/{permission_id}",
    response_model=PermissionResponse,
    summary="Update permission",
)
@require_permission("permissions.edit")
async def update_permission(
    permission_id: UUID,
    data: PermissionUpdate,
    service: PermissionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> PermissionResponse:
    return PermissionResponse.model_validate(
        await service.update_permission(permission_id, data)
    )


@router.delete(
    "/{permission_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete permission",
)
@require_permission("permissions.delete")
async def delete_permission(
    permission_id: UUID,
    service: PermissionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    await service.delete_permission(permission_id)


@router.put(
    "/{permission_id}/dependencies",
    response_model=PermissionDetailResponse,
    summary="Set permission dependencies",
)
@require_permission("permissions.manage")
async def sync_dependencies(
    permission_id: UUID,
    data: SyncDependenciesRequest,
    service: PermissionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> PermissionDetailResponse:
    await service.sync_dependencies(permission_id, data.dependency_ids)
    return await _detail(service, permission_id)


@router.get(
    "/{permission_id}/chain",
    response_model=DependencyChainResponse,
    summary="Transitive dependencies and dependents",
)
@require_permission("permissions.view")
async def dependency_chain(
    permission_id: UUID,
    service: PermissionSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> DependencyChainResponse:
    chain = await service.get_dependency_chain(permission_id)
    return DependencyChainResponse(
        permission_id=chain["permission_id"],
        dependencies=_refs(chain["dependencies"]),
        dependents=_refs(chain["dependents"]),
    )
