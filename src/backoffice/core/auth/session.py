"""Idle-timeout tracking and revocation of login sessions.

Each login session (the ``sid`` claim) has a last-activity timestamp in
Redis. Revoking a session also leaves a short-lived marker so access
tokens already issued for it stop working before they expire.
"""

import time
from typing import Any
from uuid import UUID

import structlog

from backoffice.config import settings
from backoffice.core.cache import RedisCache


logger = structlog.get_logger()

# Activity records outlive any sensible idle timeout; the timeout itself
# is checked against the stored timestamp.
ACTIVITY_TTL_SECONDS = 7 * 24 * 3600


class SessionTracker:
    """Last-activity bookkeeping for login sessions."""

    def __init__(self) -> None:
        self.activity = RedisCache(prefix="session:activity:")
        self.revoked = RedisCache(prefix="session:revoked:")

    async def start(self, session_id: UUID) -> None:
        await self.touch(session_id)

    async def touch(self, session_id: UUID) -> None:
        await self.activity.set(str(session_id), str(time.time()), ACTIVITY_TTL_SECONDS)

    async def idle_seconds(self, session_id: UUID) -> float:
        """Seconds since the session was last active.

        A missing record counts as fresh activity (0 seconds).
        """
        value = await self.activity.get(str(session_id))
        if value is None:
            return 0.0
        return max(0.0, time.time() - float(value))

    async def status(self, session_id: UUID, timeout_seconds: int) -> dict[str, Any]:
        """Countdown information for the client-side expiry warning."""
        idle = int(await self.idle_seconds(session_id))
        remaining = max(0, timeout_seconds - idle)
        return {
            "session_id": session_id,
            "idle_seconds": idle,
            "timeout_seconds": timeout_seconds,
            "remaining_seconds": remaining,
            "show_warning": remaining <= settings.session_warning_seconds,
            "expired": idle > timeout_seconds,
        }

    async def end(self, session_id: UUID) -> None:
        """Forget the session and reject its outstanding access tokens."""
        await self.activity.delete(str(session_id))
        await self.revoked.set(
            str(session_id), "1", settings.access_token_expire_minutes * 60
        )
        logger.info("session_ended", session_id=str(session_id))

    async def is_revoked(self, session_id: UUID) -> bool:
        return await self.revoked.exists(str(session_id))


session_tracker = SessionTracker()
