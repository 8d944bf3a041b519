"""Route guard for permission names.

Decorated endpoints must take ``current_user`` and ``db`` keyword
arguments; ``request`` is optional and only used for logging. Superusers
pass every check, and each bypass is logged.
"""

from collections.abc import Awaitable, Callable
from functools import wraps
from typing import TYPE_CHECKING, ParamSpec, TypeVar

import structlog

from backoffice.core.errors import ForbiddenError, PermissionDeniedError
from backoffice.core.permissions.checker import PermissionChecker


if TYPE_CHECKING:
    from fastapi import Request
    from sqlalchemy.ext.asyncio import AsyncSession

    from backoffice.modules.users.models import User


logger = structlog.get_logger()

P = ParamSpec("P")
R = TypeVar("R")


async def _allowed(
    user: "User",
    db: "AsyncSession",
    names: list[str],
    require_all: bool,
    request: "Request | None",
) -> bool:
    if user.is_superuser:
        logger.warning(
            "superuser_bypass",
            user_id=str(user.id),
            permissions=names,
            endpoint=request.url.path if request else "unknown",
        )
        return True

    checker = PermissionChecker(db)
    if require_all:
        return await checker.has_all_permissions(user.id, names)
    return await checker.has_any_permission(user.id, names)


def require_permission(
    *names: str, require_all: bool = True
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Allow the call only if the current user holds the named permissions.

    Permissions are resolved through roles, role inheritance and
    permission dependencies.

    Usage:
        @router.delete("/roles/{role_id}")
        @require_permission("roles.delete")
        async def delete_role(role_id: UUID, current_user: CurrentUser, db: DBSession):
            ...

    Args:
        *names: Permission names such as ``"roles.delete"``
        require_all: When False, any one of ``names`` is enough

    Raises:
        PermissionDeniedError: If the user lacks the permissions
    """
    required = list(names)

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            user = kwargs.get("current_user")
            db = kwargs.get("db")
            if user is None or db is None:
                raise ForbiddenError("Authentication required", error_code="auth_required")

            if not await _allowed(user, db, required, require_all, kwargs.get("request")):
                logger.info(
                    "permission_denied",
                    user_id=str(user.id),
                    permissions=required,
                    require_all=require_all,
                )
                raise PermissionDeniedError(required, require_all=require_all)

            return await func(*args, **kwargs)

        return wrapper

    return decorator
