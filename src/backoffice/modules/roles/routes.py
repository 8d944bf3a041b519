"""Role management API routes."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from backoffice.api.dependencies import DBSession, PageParams
from backoffice.core.auth.dependencies import CurrentUser
from backoffice.core.permissions import require_permission
from backoffice.modules.roles.schemas import (
    BulkPermissionRequest,
    BulkPermissionResponse,
    BulkRoleResult,
    BulkStatusRequest,
    BulkStatusResponse,
    PermissionBrief,
    PermissionMatrixResponse,
    RoleCreate,
    RoleDetailResponse,
    RoleDuplicate,
    RoleListItem,
    RoleListResponse,
    RoleResponse,
    RoleSort,
    RoleStatistics,
    RoleTreeNode,
    RoleUpdate,
    SyncPermissionsRequest,
    SyncPermissionsResponse,
)
from backoffice.modules.roles.services import RoleSvc


router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("", response_model=RoleListResponse, summary="List roles")
@require_permission("roles.view")
async def list_roles(
    service: RoleSvc,
    current_user: CurrentUser,
    db: DBSession,
    pagination: PageParams,
    search: str | None = None,
    is_active: bool | None = None,
    is_system: bool | None = None,
    sort: RoleSort = Query("name"),
) -> RoleListResponse:
    items, total = await service.list_roles(
        search=search,
        is_active=is_active,
        is_system=is_system,
        page=pagination.page,
        page_size=pagination.page_size,
        sort=sort,
    )
    return RoleListResponse(
        items=[
            RoleListItem.model_validate(item["role"]).model_copy(
                update={
                    "user_count": item["user_count"],
                    "permission_count": item["permission_count"],
                }
            )
            for item in items
        ],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.post(
    "",
    response_model=RoleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create role",
)
@require_permission("roles.create")
async def create_role(
    data: RoleCreate,
    service: RoleSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> RoleResponse:
    return RoleResponse.model_validate(await service.create_role(data))


@router.get("/hierarchy", response_model=list[RoleTreeNode], summary="Role hierarchy")
@require_permission("roles.view")
async def get_hierarchy(
    service: RoleSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> list[RoleTreeNode]:
    return [RoleTreeNode(**node) for node in await service.get_hierarchy()]


@router.get("/statistics", response_model=RoleStatistics, summary="Role statistics")
@require_permission("roles.view")
async def get_statistics(
    service: RoleSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> RoleStatistics:
    return RoleStatistics(**await service.get_statistics())


@router.get(
    "/matrix",
    response_model=PermissionMatrixResponse,
    summary="Permission matrix",
    description="Every permission grouped by module, with whether each role holds it.",
)
@require_permission("roles.view")
async def get_permission_matrix(
    service: RoleSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> PermissionMatrixResponse:
    return PermissionMatrixResponse(**await service.get_permission_matrix())


@router.post(
    "/bulk-permissions",
    response_model=BulkPermissionResponse,
    summary="Add, remove or replace permissions on several roles",
)
@require_permission("roles.manage")
async def bulk_assign_permissions(
    data: BulkPermissionRequest,
    service: RoleSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> BulkPermissionResponse:
    results = await service.bulk_assign_permissions(
        data.role_ids, data.permission_ids, data.mode
    )
    succeeded = sum(1 for r in results if r["success"])
    return BulkPermissionResponse(
        results=[BulkRoleResult(**r) for r in results],
        succeeded=succeeded,
        failed=len(results) - succeeded,
    )


@router.post(
    "/bulk-status",
    response_model=BulkStatusResponse,
    summary="Activate or deactivate several roles",
)
@require_permission("roles.edit")
async def bulk_update_status(
    data: BulkStatusRequest,
    service: RoleSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> BulkStatusResponse:
    updated = await service.bulk_update_status(data.role_ids, data.is_active)
    return BulkStatusResponse(updated=updated)


@router.get("/{role_id}", response_model=RoleDetailResponse, summary="Get role")
@require_permission("roles.view")
async def get_role(
    role_id: UUID,
    service: RoleSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> RoleDetailResponse:
    detail = await service.get_role(role_id)
    return RoleDetailResponse(
        **RoleResponse.model_validate(detail["role"]).model_dump(),
        permissions=[PermissionBrief.model_validate(p) for p in detail["permissions"]],
        inherited_permissions=[
            PermissionBrief.model_validate(p) for p in detail["inherited_permissions"]
        ],
        user_count=detail["user_count"],
        depth=detail["depth"],
    )


@router.patch("/{role_id}", response_model=RoleResponse, summary="Update role")
@require_permission("roles.edit")
async def update_role(
    role_id: UUID,
    data: RoleUpdate,
    service: RoleSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> RoleResponse:
    return RoleResponse.model_validate(await service.update_role(role_id, data))


@router.delete(
    "/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete role",
)
@require_permission("roles.delete")
async def delete_role(
    role_id: UUID,
    service: RoleSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    await service.delete_role(role_id)


@router.post(
    "/{role_id}/duplicate",
    response_model=RoleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Duplicate role",
)
@require_permission("roles.create")
async def duplicate_role(
    role_id: UUID,
    data: RoleDuplicate,
    service: RoleSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> RoleResponse:
    role = await service.duplicate_role(role_id, data.name, data.display_name)
    return RoleResponse.model_validate(role)


@router.put(
    "/{role_id}/permissions",
    response_model=SyncPermissionsResponse,
    summary="Set role permissions",
    description="Replace the role's permissions; required dependencies are added automatically.",
)
@require_permission("roles.manage")
async def sync_permissions(
    role_id: UUID,
    data: SyncPermissionsRequest,
    service: RoleSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> SyncPermissionsResponse:
    return SyncPermissionsResponse(**await service.sync_permissions(role_id, data.permission_ids))
