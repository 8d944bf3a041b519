"""Structured logging setup and request access logging."""

from backoffice.core.logging.middleware import RequestLoggingMiddleware, get_client_ip
from backoffice.core.logging.setup import configure_logging, scrub_secrets


__all__ = [
    "RequestLoggingMiddleware",
    "configure_logging",
    "get_client_ip",
    "scrub_secrets",
]
