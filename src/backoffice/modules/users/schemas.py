"""Pydantic schemas for user operations.

Password strength is not checked here: the rules come from runtime
settings and are applied by ``PasswordPolicy`` in the services.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from backoffice.core.constants import MAX_PASSWORD_LENGTH, MAX_USERNAME_LENGTH


# ============================================================
# User Schemas
# ============================================================


class UserBase(BaseModel):
    """Base schema for user data."""

    email: EmailStr
    username: str = Field(
        ..., min_length=2, max_length=MAX_USERNAME_LENGTH, pattern=r"^[A-Za-z0-9_.-]+$"
    )
    full_name: str = Field(..., min_length=1, max_length=255)


class UserCreate(UserBase):
    """Schema for creating a new user with password."""

    password: str = Field(..., min_length=1, max_length=MAX_PASSWORD_LENGTH)
    is_active: bool = True
    is_superuser: bool = False
    locale: str | None = None
    role_ids: list[UUID] = Field(default_factory=list)


class UserUpdate(BaseModel):
    """Schema for updating user data."""

    email: EmailStr | None = None
    username: str | None = Field(
        None, min_length=2, max_length=MAX_USERNAME_LENGTH, pattern=r"^[A-Za-z0-9_.-]+$"
    )
    full_name: str | None = Field(None, min_length=1, max_length=255)
    password: str | None = Field(None, min_length=1, max_length=MAX_PASSWORD_LENGTH)
    is_superuser: bool | None = None
    locale: str | None = None


class UserPasswordUpdate(BaseModel):
    """Schema for changing one's own password."""

    current_password: str
    new_password: str = Field(..., min_length=1, max_length=MAX_PASSWORD_LENGTH)


class LocaleUpdate(BaseModel):
    locale: str | None = Field(None, description="Supported locale, or null to negotiate")


class RoleSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    display_name: str | None = None
    is_active: bool


class UserResponse(UserBase):
    """Schema for user response data."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    is_active: bool
    is_superuser: bool
    locale: str | None
    last_login_at: datetime | None
    last_login_ip: str | None
    password_changed_at: datetime | None
    roles: list[RoleSummary] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class UserListResponse(BaseModel):
    """Schema for listing users."""

    items: list[UserResponse]
    total: int
    page: int
    page_size: int


class UserRolesRequest(BaseModel):
    role_ids: list[UUID] = Field(..., min_length=1)


class UserPermissionsResponse(BaseModel):
    user_id: UUID
    is_superuser: bool
    permissions: list[str]


UserSort = Literal[
    "created_at",
    "-created_at",
    "email",
    "-email",
    "username",
    "-username",
    "full_name",
    "-full_name",
    "last_login_at",
    "-last_login_at",
]


# ============================================================
# Authentication Schemas
# ============================================================


class LoginRequest(BaseModel):
    """Schema for email/password login."""

    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    """Schema for authentication token response."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token expiration in seconds")
    session_id: UUID


class RefreshTokenRequest(BaseModel):
    """Schema for refreshing access token."""

    refresh_token: str


class MeResponse(UserResponse):
    """The current user with session information."""

    password_expired: bool = False
    permissions: list[str] = Field(default_factory=list)
