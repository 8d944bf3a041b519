"""Access logging for the admin API."""

import time
from typing import Any

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from backoffice.config import settings


logger = structlog.get_logger()

QUIET_PATHS = ("/health/", "/docs", "/redoc", "/openapi.json")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Emit one ``request_completed`` event per API call.

    Request ID, user and session come from the contextvars bound by the auth
    middleware; the resolved locale is read from ``request.state``. Calls
    slower than ``settings.slow_request_ms`` are logged as ``slow_request``.
    """

    def __init__(self, app: Any, quiet_paths: tuple[str, ...] = QUIET_PATHS) -> None:
        super().__init__(app)
        self.quiet_paths = quiet_paths
        self.slow_ms = settings.slow_request_ms

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path.startswith(self.quiet_paths):
            return await call_next(request)

        started = time.perf_counter()
        fields: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": get_client_ip(request),
        }

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed", duration_ms=_elapsed(started), **fields)
            raise

        fields["status_code"] = response.status_code
        fields["duration_ms"] = _elapsed(started)
        locale = getattr(request.state, "locale", None)
        if locale:
            fields["locale"] = locale

        if response.status_code >= 500:
            logger.error("request_completed", **fields)
        elif response.status_code >= 400:
            logger.warning("request_completed", **fields)
        elif fields["duration_ms"] >= self.slow_ms:
            logger.warning("slow_request", threshold_ms=self.slow_ms, **fields)
        else:
            logger.info("request_completed", **fields)
        return response


def _elapsed(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def get_client_ip(request: Request) -> str | None:
    """Return the caller's address, preferring proxy headers.

    The first ``X-Forwarded-For`` hop wins, then ``X-Real-IP``, then the
    socket peer.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None
