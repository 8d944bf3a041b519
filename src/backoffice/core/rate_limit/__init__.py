"""Rate limiting with Redis sliding window algorithm.

Provides per-user and per-IP rate limiting with configurable
limits and time windows.
"""

from backoffice.core.rate_limit.backend import (
    RateLimitResult,
    SlidingWindowRateLimiter,
    rate_limiter,
    request_identifier,
)
from backoffice.core.rate_limit.decorators import rate_limit
from backoffice.core.rate_limit.middleware import RateLimitMiddleware


__all__ = [
    "RateLimitMiddleware",
    "RateLimitResult",
    "SlidingWindowRateLimiter",
    "rate_limit",
    "rate_limiter",
    "request_identifier",
]
