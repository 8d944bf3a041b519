"""Session schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class SessionStatusResponse(BaseModel):
    """Countdown state used by the client to warn before the session expires."""

    session_id: UUID
    idle_seconds: int
    timeout_seconds: int
    remaining_seconds: int
    show_warning: bool
    expired: bool


class SessionResponse(BaseModel):
    session_id: UUID
    browser: str
    device: str
    user_agent: str | None
    ip_address: str | None
    created_at: datetime
    last_used_at: datetime
    is_current: bool


class RevokeOthersResponse(BaseModel):
    revoked: int
