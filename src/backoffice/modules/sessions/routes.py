"""Session security API routes."""

from uuid import UUID

from fastapi import APIRouter, status

from backoffice.core.auth.dependencies import CurrentToken, CurrentUser
from backoffice.modules.sessions.schemas import (
    RevokeOthersResponse,
    SessionResponse,
    SessionStatusResponse,
)
from backoffice.modules.sessions.services import SessionSvc


router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get(
    "/status",
    response_model=SessionStatusResponse,
    summary="Session expiry countdown",
    description=(
        "Idle time and remaining lifetime of the current session. "
        "Polling this endpoint does not extend the session."
    ),
)
async def session_status(
    token: CurrentToken,
    service: SessionSvc,
) -> SessionStatusResponse:
    return SessionStatusResponse(**await service.status(token.session_id))


@router.post(
    "/extend",
    response_model=SessionStatusResponse,
    summary="Extend the current session",
)
async def extend_session(
    current_user: CurrentUser,
    token: CurrentToken,
    service: SessionSvc,
) -> SessionStatusResponse:
    return SessionStatusResponse(**await service.extend(token.session_id))


@router.get("", response_model=list[SessionResponse], summary="List my sessions")
async def list_sessions(
    current_user: CurrentUser,
    token: CurrentToken,
    service: SessionSvc,
) -> list[SessionResponse]:
    sessions = await service.list_sessions(current_user.id, token.session_id)
    return [SessionResponse(**s) for s in sessions]


@router.post(
    "/revoke-others",
    response_model=RevokeOthersResponse,
    summary="Sign out every other device",
)
async def revoke_other_sessions(
    current_user: CurrentUser,
    token: CurrentToken,
    service: SessionSvc,
) -> RevokeOthersResponse:
    revoked = await service.revoke_others(current_user.id, token.session_id)
    return RevokeOthersResponse(revoked=revoked)


@router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke a session",
)
async def revoke_session(
    session_id: UUID,
    current_user: CurrentUser,
    service: SessionSvc,
) -> None:
    await service.revoke(current_user.id, session_id)
