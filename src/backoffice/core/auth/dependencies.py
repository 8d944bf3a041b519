"""Authentication dependencies.

``CurrentToken`` validates the bearer token and its session;
``CurrentUser`` additionally loads the user, enforces the idle timeout
configured in ``security.session_lifetime`` and applies the user's locale.
"""

from typing import Annotated, Any

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import DBSession
from backoffice.core.audit import update_audit_context
from backoffice.core.auth.backend import decode_token
from backoffice.core.auth.schemas import TokenData
from backoffice.core.auth.session import session_tracker
from backoffice.core.errors import (
    ForbiddenError,
    SessionExpiredError,
    SessionRevokedError,
    UnauthorizedError,
)
from backoffice.core.i18n.context import set_locale
from backoffice.modules.settings.reader import SettingsReader


logger = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=False)


async def get_token_data(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> TokenData:
    """Decode the bearer token and make sure its session was not revoked.

    Raises:
        UnauthorizedError: ``missing_token``, ``invalid_token`` or ``session_revoked``
    """
    if not credentials:
        raise UnauthorizedError("Missing authentication token", error_code="missing_token")

    token_data = decode_token(credentials.credentials)
    if not token_data:
        raise UnauthorizedError("Invalid or expired token", error_code="invalid_token")

    if await session_tracker.is_revoked(token_data.session_id):
        raise SessionRevokedError
    return token_data


async def session_timeout_seconds(db: AsyncSession) -> int:
    """Idle timeout from ``security.session_lifetime`` (minutes)."""
    return await SettingsReader(db).get_int("security.session_lifetime") * 60


async def _enforce_idle_timeout(db: AsyncSession, user_id: Any, session_id: Any) -> None:
    timeout = await session_timeout_seconds(db)
    if timeout and await session_tracker.idle_seconds(session_id) > timeout:
        await session_tracker.end(session_id)
        logger.info("session_expired", user_id=str(user_id), session_id=str(session_id))
        raise SessionExpiredError
    await session_tracker.touch(session_id)


async def get_current_user(
    request: Request,
    token_data: Annotated[TokenData, Depends(get_token_data)],
    db: DBSession,
) -> Any:  # User; Any keeps modules.users out of the import cycle
    """Resolve the acting user for this request.

    An idle session is ended and rejected with ``session_expired``; an
    active one has its activity timestamp refreshed. The user's stored
    locale applies unless ``?locale=`` was given.

    Raises:
        UnauthorizedError: If the user no longer exists or the session timed out
        ForbiddenError: If the user is deactivated
    """
    from backoffice.modules.users.repos import UserRepository  # noqa: PLC0415

    user = await UserRepository(db).get_by_id(token_data.user_id)
    if not user:
        raise UnauthorizedError("User not found", error_code="user_not_found")
    if not user.is_active:
        raise ForbiddenError("User account is deactivated", error_code="user_inactive")

    await _enforce_idle_timeout(db, user.id, token_data.session_id)

    request.state.user_id = user.id
    request.state.session_id = token_data.session_id
    update_audit_context(user_id=user.id, session_id=token_data.session_id)

    if user.locale and getattr(request.state, "locale_source", None) != "query":
        set_locale(user.locale)
        request.state.locale = user.locale

    return user


CurrentUser = Annotated[Any, Depends(get_current_user)]
CurrentToken = Annotated[TokenData, Depends(get_token_data)]
