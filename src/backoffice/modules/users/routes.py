"""User management API routes."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from backoffice.api.dependencies import DBSession, PageParams
from backoffice.core.auth.dependencies import CurrentUser
from backoffice.core.permissions import require_permission
from backoffice.modules.users.schemas import (
    LocaleUpdate,
    UserCreate,
    UserListResponse,
    UserPermissionsResponse,
    UserResponse,
    UserRolesRequest,
    UserSort,
    UserUpdate,
)
from backoffice.modules.users.services import UserSvc


router = APIRouter(prefix="/users", tags=["users"])


@router.patch(
    "/me/locale",
    response_model=UserResponse,
    summary="Set my locale preference",
    description="Store the preferred UI locale; null clears it so the locale is negotiated.",
)
async def update_my_locale(
    data: LocaleUpdate,
    service: UserSvc,
    current_user: CurrentUser,
) -> UserResponse:
    user = await service.update_locale(current_user, data.locale)
    return UserResponse.model_validate(user)


@router.get("", response_model=UserListResponse, summary="List users")
@require_permission("users.view")
async def list_users(
    service: UserSvc,
    current_user: CurrentUser,
    db: DBSession,
    pagination: PageParams,
    search: str | None = None,
    role_id: UUID | None = None,
    is_active: bool | None = None,
    sort: UserSort = Query("-created_at"),
) -> UserListResponse:
    users, total = await service.list_users(
        search=search,
        role_id=role_id,
        is_active=is_active,
        page=pagination.page,
        page_size=pagination.page_size,
        sort=sort,
    )
    return UserListResponse(
        items=[UserResponse.model_validate(u) for u in users],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create user",
)
@require_permission("users.create")
async def create_user(
    data: UserCreate,
    service: UserSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> UserResponse:
    user = await service.create_user(data, actor=current_user)
    return UserResponse.model_validate(user)


@router.get("/{user_id}", response_model=UserResponse, summary="Get user")
@require_permission("users.view")
async def get_user(
    user_id: UUID,
    service: UserSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> UserResponse:
    return UserResponse.model_validate(await service.get_user(user_id))


@router.patch("/{user_id}", response_model=UserResponse, summary="Update user")
@require_permission("users.edit")
async def update_user(
    user_id: UUID,
    data: UserUpdate,
    service: UserSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> UserResponse:
    user = await service.update_user(user_id, data, actor=current_user)
    return UserResponse.model_validate(user)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete user",
)
@require_permission("users.delete")
async def delete_user(
    user_id: UUID,
    service: UserSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    await service.delete_user(user_id, actor=current_user)


@router.post("/{user_id}/activate", response_model=UserResponse, summary="Activate user")
@require_permission("users.edit")
async def activate_user(
    user_id: UUID,
    service: UserSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> UserResponse:
    return UserResponse.model_validate(await service.activate(user_id, current_user))


@router.post("/{user_id}/deactivate", response_model=UserResponse, summary="Deactivate user")
@require_permission("users.edit")
async def deactivate_user(
    user_id: UUID,
    service: UserSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> UserResponse:
    return UserResponse.model_validate(await service.deactivate(user_id, current_user))


@router.get(
    "/{user_id}/permissions",
    response_model=UserPermissionsResponse,
    summary="Effective permissions of a user",
)
@require_permission("users.view")
async def get_user_permissions(
    user_id: UUID,
    service: UserSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> UserPermissionsResponse:
    return UserPermissionsResponse(**await service.get_user_permissions(user_id))


@router.post("/{user_id}/roles", response_model=UserResponse, summary="Assign roles")
@require_permission("users.assign_roles")
async def assign_roles(
    user_id: UUID,
    data: UserRolesRequest,
    service: UserSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> UserResponse:
    return UserResponse.model_validate(await service.assign_roles(user_id, data.role_ids))


@router.delete("/{user_id}/roles", response_model=UserResponse, summary="Remove roles")
@require_permission("users.assign_roles")
async def remove_roles(
    user_id: UUID,
    data: UserRolesRequest,
    service: UserSvc,
    current_user: CurrentUser,
    db: DBSession,
) -> UserResponse:
    return UserResponse.model_validate(await service.remove_roles(user_id, data.role_ids))
