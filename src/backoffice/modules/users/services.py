"""User service for business logic."""

from datetime import UTC, datetime
from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import Depends
from sqlalchemy import delete, select

from backoffice.api.dependencies import DBSession
from backoffice.core.audit.service import AuditService
from backoffice.core.auth.backend import hash_password
from backoffice.core.auth.password import PasswordPolicy
from backoffice.core.errors import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from backoffice.core.i18n.context import normalize_locale
from backoffice.core.permissions.checker import PermissionChecker
from backoffice.core.permissions.models import Role, UserRole
from backoffice.modules.activities.logger import ActivityLogger
from backoffice.modules.users.models import User
from backoffice.modules.users.repos import UserRepository
from backoffice.modules.users.schemas import UserCreate, UserUpdate


logger = structlog.get_logger()


class UserService:
    """Service for user management operations.

    Contains business logic for user CRUD operations, activation,
    role assignment and locale preferences.
    """

    def __init__(self, session: DBSession) -> None:
        self.session = session
        self.repo = UserRepository(session)
        self.activity = ActivityLogger(session)

    async def list_users(
        self,
        search: str | None = None,
        role_id: UUID | None = None,
        is_active: bool | None = None,
        page: int = 1,
        page_size: int = 20,
        sort: str = "-created_at",
    ) -> tuple[list[User], int]:
        """List users with filters.

        Returns:
            Tuple of (users list, total count)
        """
        return await self.repo.list_users(
            {"search": search, "role_id": role_id, "is_active": is_active},
            page=page,
            page_size=page_size,
            sort=sort,
        )

    async def get_user(self, user_id: UUID) -> User:
        """Get a user by ID.

        Raises:
            NotFoundError: If user not found
        """
        user = await self.repo.get_by_id(user_id)
        if not user:
            raise NotFoundError(
                "User not found",
                resource="user",
                resource_id=str(user_id),
            )
        return user

    async def _ensure_unique(
        self,
        email: str | None,
        username: str | None,
        exclude: UUID | None = None,
    ) -> None:
        if email:
            existing = await self.repo.get_by_email(email)
            if existing and existing.id != exclude:
                raise ConflictError(
                    "Email already registered",
                    error_code="email_exists",
                    details={"email": email},
                )
        if username:
            existing = await self.repo.get_by_username(username)
            if existing and existing.id != exclude:
                raise ConflictError(
                    "Username already taken",
                    error_code="username_exists",
                    details={"username": username},
                )

    @staticmethod
    def _ensure_can_grant_superuser(actor: User | None, is_superuser: bool | None) -> None:
        if is_superuser and not (actor and actor.is_superuser):
            raise ForbiddenError(
                "Only superusers can grant superuser status",
                error_code="not_superuser",
            )

    @staticmethod
    def _locale(value: str | None) -> str | None:
        if value is None:
            return None
        locale = normalize_locale(value)
        if locale is None:
            raise ValidationError(
                "Unsupported locale",
                errors=[{"field": "locale", "message": f"Unsupported locale: {value}"}],
            )
        return locale

    async def create_user(self, data: UserCreate, actor: User | None = None) -> User:
        """Create a user.

        Args:
            data: User creation data
            actor: The administrator creating the user

        Returns:
            The created user

        Raises:
            ConflictError: If the email or username is taken
            ValidationError: If the password breaks the password policy
        """
        self._ensure_can_grant_superuser(actor, data.is_superuser)
        await self._ensure_unique(data.email, data.username)
        await PasswordPolicy(self.session).validate(data.password)

        user = User(
            email=data.email.lower(),
            username=data.username,
            full_name=data.full_name,
            password_hash=hash_password(data.password),
            is_active=data.is_active,
            is_superuser=data.is_superuser,
            locale=self._locale(data.locale),
            password_changed_at=datetime.now(UTC),
        )
        user = await self.repo.create(user)

        if data.role_ids:
            await self.assign_roles(user.id, data.role_ids)

        await self.activity.log(
            "user_created",
            f"Created user {user.email}",
            module="users",
            subject_type="users",
            subject_id=user.id,
            properties={"email": user.email, "username": user.username},
            risk_level=3,
        )
        logger.info("user_created", user_id=str(user.id))
        return user

    async def update_user(
        self,
        user_id: UUID,
        data: UserUpdate,
        actor: User | None = None,
    ) -> User:
        """Update a user.

        Raises:
            NotFoundError: If user not found
            ConflictError: If the new email or username is taken
        """
        user = await self.get_user(user_id)
        updates = data.model_dump(exclude_unset=True)

        self._ensure_can_grant_superuser(actor, updates.get("is_superuser"))
        await self._ensure_unique(updates.get("email"), updates.get("username"), user.id)

        if password := updates.pop("password", None):
            await PasswordPolicy(self.session).validate(password)
            user.password_hash = hash_password(password)
            user.password_changed_at = datetime.now(UTC)
        if "locale" in updates:
            updates["locale"] = self._locale(updates["locale"])
        if updates.get("email"):
            updates["email"] = updates["email"].lower()

        for field, value in updates.items():
            if value is not None or field == "locale":
                setattr(user, field, value)

        user = await self.repo.update(user)
        await self.activity.log(
            "user_updated",
            f"Updated user {user.email}",
            module="users",
            subject_type="users",
            subject_id=user.id,
            properties={"fields": sorted(data.model_dump(exclude_unset=True))},
            risk_level=3,
        )
        return user

    async def _set_active(self, user_id: UUID, is_active: bool, actor: User) -> User:
        user = await self.get_user(user_id)
        if not is_active and user.id == actor.id:
            raise BadRequestError(
                "You cannot deactivate your own account",
                error_code="cannot_deactivate_self",
            )
        if user.is_active == is_active:
            return user

        user.is_active = is_active
        user = await self.repo.update(user)
        await self.activity.log_user_status_changed(user.id, is_active)
        logger.info("user_status_changed", user_id=str(user.id), is_active=is_active)
        return user

    async def activate(self, user_id: UUID, actor: User) -> User:
        return await self._set_active(user_id, True, actor)

    async def deactivate(self, user_id: UUID, actor: User) -> User:
        """Deactivate a user; their existing sessions fail on the next request."""
        return await self._set_active(user_id, False, actor)

    async def delete_user(self, user_id: UUID, actor: User) -> None:
        """Delete a user.

        Raises:
            BadRequestError: If the actor deletes themself
            ForbiddenError: If a non-superuser deletes a superuser
        """
        user = await self.get_user(user_id)
        if user.id == actor.id:
            raise BadRequestError(
                "You cannot delete your own account",
                error_code="cannot_delete_self",
            )
        if user.is_superuser and not actor.is_superuser:
            raise ForbiddenError(
                "Only superusers can delete superusers",
                error_code="not_superuser",
            )

        email = user.email
        await self.repo.delete(user)
        await self.activity.log(
            "user_deleted",
            f"Deleted user {email}",
            module="users",
            subject_type="users",
            subject_id=user_id,
            properties={"email": email},
            risk_level=6,
        )
        logger.info("user_deleted", user_id=str(user_id))

    async def _roles(self, role_ids: list[UUID]) -> list[Role]:
        result = await self.session.execute(select(Role).where(Role.id.in_(role_ids)))
        roles = list(result.scalars().all())
        missing = set(role_ids) - {role.id for role in roles}
        if missing:
            raise NotFoundError(
                "Role not found",
                resource="role",
                resource_id=str(sorted(missing, key=str)[0]),
            )
        return roles

    async def assign_roles(self, user_id: UUID, role_ids: list[UUID]) -> User:
        """Add roles to a user.

        Roles the user already holds are left alone.

        Raises:
            NotFoundError: If the user or a role does not exist
            BadRequestError: If a role is inactive
        """
        user = await self.get_user(user_id)
        roles = await self._roles(role_ids)

        inactive = [role.name for role in roles if not role.is_active]
        if inactive:
            raise BadRequestError(
                "Inactive roles cannot be assigned",
                error_code="role_inactive",
                details={"roles": inactive},
            )

        held = {role.id for role in user.roles}
        added = [role for role in roles if role.id not in held]
        for role in added:
            self.session.add(UserRole(user_id=user.id, role_id=role.id))
        await self.session.flush()
        await self.session.refresh(user, attribute_names=["roles"])

        if added:
            names = [role.name for role in added]
            await self.activity.log_role_assigned(user.id, names)
            await AuditService(self.session).log_roles_assigned(user.id, names, [])
            logger.info("roles_assigned", user_id=str(user.id), roles=names)
        return user

    async def remove_roles(self, user_id: UUID, role_ids: list[UUID]) -> User:
        """Remove roles from a user; roles the user does not hold are ignored."""
        user = await self.get_user(user_id)
        removed = [role for role in user.roles if role.id in set(role_ids)]

        if removed:
            await self.session.execute(
                delete(UserRole).where(
                    UserRole.user_id == user.id,
                    UserRole.role_id.in_([role.id for role in removed]),
                )
            )
            await self.session.flush()
            await self.session.refresh(user, attribute_names=["roles"])

            names = [role.name for role in removed]
            await self.activity.log_role_removed(user.id, names)
            await AuditService(self.session).log_roles_assigned(user.id, [], names)
            logger.info("roles_removed", user_id=str(user.id), roles=names)
        return user

    async def get_user_permissions(self, user_id: UUID) -> dict[str, Any]:
        user = await self.get_user(user_id)
        permissions = await PermissionChecker(self.session).get_user_permissions(user.id)
        return {
            "user_id": user.id,
            "is_superuser": user.is_superuser,
            "permissions": sorted(permissions),
        }

    async def update_locale(self, user: User, locale: str | None) -> User:
        """Store a user's locale preference; None clears it."""
        user.locale = self._locale(locale)
        return await self.repo.update(user)


# Type alias for dependency injection
UserSvc = Annotated[UserService, Depends(UserService)]
