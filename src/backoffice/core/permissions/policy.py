"""Resource policies.

A policy maps actions on a resource type to permission names and adds
resource-specific rules on top. Subclasses set ``action_permissions``
and may override ``check_object``.
"""

from typing import TYPE_CHECKING, Any, ClassVar

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.errors import ForbiddenError, PermissionDeniedError
from backoffice.core.permissions.checker import PermissionChecker, grants_any


if TYPE_CHECKING:
    from backoffice.modules.users.models import User


logger = structlog.get_logger()


class Policy:
    """Base policy with per-instance permission caching."""

    resource: ClassVar[str] = "resource"
    action_permissions: ClassVar[dict[str, str]] = {}

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._granted: dict[Any, set[str]] = {}

    async def granted(self, user: "User") -> set[str]:
        """Permission names held by a user (cached for this policy)."""
        if user.id not in self._granted:
            checker = PermissionChecker(self.session)
            self._granted[user.id] = await checker.get_user_permissions(user.id)
        return self._granted[user.id]

    async def can(self, user: "User", permission: str) -> bool:
        if user.is_superuser:
            return True
        return grants_any(await self.granted(user), permission)

    async def check_object(self, user: "User", action: str, obj: Any) -> str | None:
        """Resource-specific rule; return an error code to deny, None to allow."""
        return None

    async def allows(self, user: "User", action: str, obj: Any = None) -> bool:
        try:
            await self.authorize(user, action, obj)
        except ForbiddenError:
            return False
        return True

    async def authorize(self, user: "User", action: str, obj: Any = None) -> None:
        """Raise ForbiddenError unless ``user`` may perform ``action``.

        Args:
            user: Acting user
            action: Policy action name, e.g. ``view`` or ``export``
            obj: Optional resource instance for object-level rules

        Raises:
            ForbiddenError: If the action is unknown or not permitted
        """
        permission = self.action_permissions.get(action)
        if permission is None:
            raise ForbiddenError(
                f"Unknown {self.resource} action '{action}'",
                error_code="permission_denied",
            )

        if not await self.can(user, permission):
            logger.info(
                "policy_denied",
                resource=self.resource,
                action=action,
                user_id=str(user.id),
                required_permission=permission,
            )
            raise PermissionDeniedError([permission])

        if obj is not None:
            error_code = await self.check_object(user, action, obj)
            if error_code:
                logger.info(
                    "policy_denied",
                    resource=self.resource,
                    action=action,
                    user_id=str(user.id),
                    reason=error_code,
                )
                raise ForbiddenError(
                    f"Not allowed to {action} this {self.resource}",
                    error_code=error_code,
                )
