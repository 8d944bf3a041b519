"""Global request rate limit, keyed by user when authenticated and by IP otherwise."""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from backoffice.config import settings
from backoffice.core.errors import problem_response
from backoffice.core.rate_limit.backend import rate_limiter, request_identifier


UNLIMITED_PATHS = ("/health/", "/docs", "/redoc", "/openapi.json")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Apply ``RATE_LIMIT_REQUESTS`` per ``RATE_LIMIT_WINDOW`` seconds.

    Every limited response carries the ``X-RateLimit-*`` headers. Exception
    handlers do not see middleware errors, so the 429 body is built here.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not settings.rate_limit_enabled or request.url.path.startswith(UNLIMITED_PATHS):
            return await call_next(request)

        result = await rate_limiter.is_allowed(
            identifier=request_identifier(request),
            limit=settings.rate_limit_requests,
            window=settings.rate_limit_window,
        )
        if not result.allowed:
            return problem_response(
                request,
                429,
                "rate_limit_exceeded",
                "Rate limit exceeded. Please slow down.",
                params={"retry_after": result.retry_after or 0},
                headers=result.headers(),
            )

        response = await call_next(request)
        response.headers.update(result.headers())
        return response
