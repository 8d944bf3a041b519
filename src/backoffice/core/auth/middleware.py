"""Request identity middleware.

``RequestIdMiddleware`` tags every request with an ID; ``AuthContextMiddleware``
exposes the bearer token's user and session to logging and rate limiting.
Neither authenticates: the dependencies in ``core.auth.dependencies`` do.
"""

import re
import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from backoffice.core.auth.backend import decode_token


if TYPE_CHECKING:
    from starlette.types import ASGIApp


# Client supplied IDs end up in logs; anything else gets a fresh UUID
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{8,64}$")

PUBLIC_PATHS = (
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/api/v1/auth/login",
    "/api/v1/auth/refresh",
)


class AuthContextMiddleware(BaseHTTPMiddleware):
    """Set ``request.state.user_id`` and ``session_id`` from a valid access token."""

    def __init__(self, app: "ASGIApp", public_paths: tuple[str, ...] = PUBLIC_PATHS) -> None:
        super().__init__(app)
        self.public_paths = public_paths

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        scheme, _, token = request.headers.get("Authorization", "").partition(" ")
        if token and scheme.lower() == "bearer" and not request.url.path.startswith(self.public_paths):
            token_data = decode_token(token)
            if token_data:
                request.state.user_id = token_data.user_id
                request.state.session_id = token_data.session_id
                structlog.contextvars.bind_contextvars(
                    user_id=str(token_data.user_id),
                    session_id=str(token_data.session_id),
                )
        return await call_next(request)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach ``X-Request-ID`` to request state, the log context and the response.

    The log context is cleared once the response is produced so the next
    request on the same task starts clean.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        incoming = request.headers.get("X-Request-ID", "")
        request_id = incoming if _REQUEST_ID_PATTERN.match(incoming) else str(uuid.uuid4())
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "user_id", "session_id")
        response.headers["X-Request-ID"] = request_id
        return response
