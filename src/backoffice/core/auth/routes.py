"""Authentication API routes.

Provides endpoints for:
- Login/logout
- Token refresh
- The current user's profile and password
"""

from fastapi import APIRouter, Request, status

from backoffice.api.dependencies import DBSession
from backoffice.config import settings
from backoffice.core.auth.dependencies import CurrentUser
from backoffice.core.auth.password import PasswordPolicy
from backoffice.core.auth.service import AuthSvc
from backoffice.core.logging import get_client_ip
from backoffice.core.permissions.checker import PermissionChecker
from backoffice.core.rate_limit import rate_limit
from backoffice.modules.users.schemas import (
    LoginRequest,
    MeResponse,
    RefreshTokenRequest,
    TokenResponse,
    UserPasswordUpdate,
)


router = APIRouter(prefix="/auth", tags=["auth"])


def _get_client_info(request: Request) -> tuple[str | None, str | None]:
    """Extract client info from request."""
    return request.headers.get("User-Agent"), get_client_ip(request)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login with email and password",
    description=(
        "Authenticate with email and password to receive access and refresh tokens. "
        "Repeated failures lock the account for the configured lockout duration."
    ),
)
@rate_limit(requests=settings.login_rate_limit, window=60)
async def login(
    data: LoginRequest,
    service: AuthSvc,
    request: Request,
) -> TokenResponse:
    user_agent, ip_address = _get_client_info(request)
    _, tokens = await service.login(
        email=data.email,
        password=data.password,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    return TokenResponse(**tokens.model_dump())


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh access token",
    description="Exchange a refresh token for a new token pair within the same session.",
)
async def refresh(
    data: RefreshTokenRequest,
    service: AuthSvc,
    request: Request,
) -> TokenResponse:
    user_agent, ip_address = _get_client_info(request)
    tokens = await service.refresh_tokens(
        refresh_token=data.refresh_token,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    return TokenResponse(**tokens.model_dump())


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Logout",
    description="Revoke the refresh token and end its session.",
)
async def logout(
    data: RefreshTokenRequest,
    service: AuthSvc,
) -> None:
    await service.logout(data.refresh_token)


@router.post(
    "/logout-all",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Logout from all devices",
    description="Revoke every session of the current user.",
)
async def logout_all(
    current_user: CurrentUser,
    service: AuthSvc,
) -> None:
    await service.logout_all(current_user.id)


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get current user",
    description="The authenticated user's profile, effective permissions and password status.",
)
async def get_me(
    current_user: CurrentUser,
    db: DBSession,
) -> MeResponse:
    permissions = await PermissionChecker(db).get_user_permissions(current_user.id)
    return MeResponse.model_validate(current_user).model_copy(
        update={
            "password_expired": await PasswordPolicy(db).is_expired(current_user),
            "permissions": sorted(permissions),
        }
    )


@router.post(
    "/change-password",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Change password",
)
async def change_password(
    data: UserPasswordUpdate,
    current_user: CurrentUser,
    service: AuthSvc,
) -> None:
    await service.change_password(current_user, data.current_password, data.new_password)
