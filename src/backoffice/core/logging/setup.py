"""structlog configuration shared by the API process and the worker."""

import logging
from collections.abc import MutableMapping
from typing import Any

import structlog

from backoffice.config import settings
from backoffice.core.constants import FILTERED_VALUE


_SECRET_MARKERS = ("password", "token", "secret", "authorization")


def scrub_secrets(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Blank out top-level log fields whose name looks like a credential."""
    for key in list(event_dict):
        if any(marker in key.lower() for marker in _SECRET_MARKERS):
            event_dict[key] = FILTERED_VALUE
    return event_dict


def configure_logging(json_output: bool | None = None) -> None:
    """Configure structlog for the current environment.

    Production renders one JSON object per line; other environments use the
    console renderer. Request-scoped fields bound through
    ``structlog.contextvars`` are merged into every event.

    Args:
        json_output: Force JSON rendering on or off. Defaults to production only.
    """
    if json_output is None:
        json_output = settings.is_production

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            scrub_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping().get(settings.log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
