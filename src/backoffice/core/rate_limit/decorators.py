"""Per-route rate limits layered on top of the global middleware limit."""

from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

import structlog
from fastapi import Request

from backoffice.config import settings
from backoffice.core.errors import RateLimitError
from backoffice.core.rate_limit.backend import rate_limiter, request_identifier


P = ParamSpec("P")
T = TypeVar("T")

logger = structlog.get_logger()


def rate_limit(
    requests: int,
    window: int = 60,
    key_func: Callable[[Request], str] = request_identifier,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Limit a route to ``requests`` calls per ``window`` seconds per caller.

    The endpoint must take a ``request: Request`` parameter; the limit is
    scoped to the route path so it does not consume the global budget.

    Raises:
        RateLimitError: With ``retry_after`` in the details when exceeded

    Example:
        @router.post("/login")
        @rate_limit(requests=settings.login_rate_limit)
        async def login(request: Request, ...):
            ...
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            request = kwargs.get("request")
            if settings.rate_limit_enabled and isinstance(request, Request):
                identifier = key_func(request)
                result = await rate_limiter.is_allowed(
                    identifier=identifier,
                    limit=requests,
                    window=window,
                    endpoint=request.url.path,
                )
                if not result.allowed:
                    logger.warning(
                        "route_rate_limited", identifier=identifier, path=request.url.path
                    )
                    raise RateLimitError(
                        f"Limit: {requests} requests per {window} seconds",
                        details={"retry_after": result.retry_after, "limit": requests},
                    )
            return await func(*args, **kwargs)

        return wrapper

    return decorator
