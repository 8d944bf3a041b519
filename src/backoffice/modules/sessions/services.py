"""Session service for listing and revoking a user's login sessions."""

import re
from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import Depends

from backoffice.api.dependencies import DBSession
from backoffice.core.auth.dependencies import session_timeout_seconds
from backoffice.core.auth.session import session_tracker
from backoffice.core.errors import NotFoundError
from backoffice.modules.activities.logger import ActivityLogger
from backoffice.modules.users.repos import RefreshTokenRepository


logger = structlog.get_logger()

# Checked in order; Edge and Opera also announce Chrome
BROWSERS = (
    ("Edge", re.compile(r"Edg(e|A|iOS)?/")),
    ("Opera", re.compile(r"OPR/|Opera")),
    ("Firefox", re.compile(r"Firefox/|FxiOS/")),
    ("Chrome", re.compile(r"Chrome/|CriOS/")),
    ("Safari", re.compile(r"Safari/")),
)


def browser_name(user_agent: str | None) -> str:
    if not user_agent:
        return "Unknown"
    for name, pattern in BROWSERS:
        if pattern.search(user_agent):
            return name
    return "Unknown"


def device_type(user_agent: str | None) -> str:
    """Classify a user agent as mobile, tablet or desktop."""
    if not user_agent:
        return "unknown"
    ua = user_agent.lower()
    if "ipad" in ua or "tablet" in ua:
        return "tablet"
    if "mobile" in ua or "android" in ua or "iphone" in ua:
        return "mobile"
    return "desktop"


class SessionService:
    """Service for the current user's sessions."""

    def __init__(self, session: DBSession) -> None:
        self.session = session
        self.tokens = RefreshTokenRepository(session)
        self.activity = ActivityLogger(session)

    async def status(self, session_id: UUID) -> dict[str, Any]:
        """Countdown for a session; reading it does not extend the session."""
        timeout = await session_timeout_seconds(self.session)
        return await session_tracker.status(session_id, timeout)

    async def extend(self, session_id: UUID) -> dict[str, Any]:
        await session_tracker.touch(session_id)
        return await self.status(session_id)

    async def list_sessions(self, user_id: UUID, current: UUID) -> list[dict[str, Any]]:
        sessions = await self.tokens.list_active_sessions(user_id)
        return [
            {
                **item,
                "browser": browser_name(item["user_agent"]),
                "device": device_type(item["user_agent"]),
                "is_current": item["session_id"] == current,
            }
            for item in sessions
        ]

    async def revoke(self, user_id: UUID, session_id: UUID) -> None:
        """Revoke one of the user's sessions.

        Raises:
            NotFoundError: If the user has no live session with that id
        """
        if not await self.tokens.revoke_session(user_id, session_id):
            raise NotFoundError(
                "Session not found",
                resource="session",
                resource_id=str(session_id),
            )
        await session_tracker.end(session_id)
        await self.activity.log_security_event(
            "session_revoked",
            "Session revoked",
            {"session_id": str(session_id)},
            user_id=user_id,
            result="success",
        )

    async def revoke_others(self, user_id: UUID, current: UUID) -> int:
        """Revoke every session of the user except ``current``.

        Returns:
            Number of sessions revoked
        """
        sessions = await self.tokens.revoke_other_sessions(user_id, keep=current)
        for session_id in sessions:
            await session_tracker.end(session_id)
        if sessions:
            await self.activity.log_security_event(
                "session_revoked",
                f"Revoked {len(sessions)} other sessions",
                {"session_ids": [str(s) for s in sessions]},
                user_id=user_id,
                result="success",
            )
        logger.info("other_sessions_revoked", user_id=str(user_id), count=len(sessions))
        return len(sessions)


SessionSvc = Annotated[SessionService, Depends(SessionService)]
