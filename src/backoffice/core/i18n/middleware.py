"""Locale negotiation middleware."""

from typing import TYPE_CHECKING

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from backoffice.config import settings
from backoffice.core.i18n.context import normalize_locale, set_locale


if TYPE_CHECKING:
    from starlette.types import ASGIApp


logger = structlog.get_logger()


def parse_accept_language(header: str | None) -> list[str]:
    """Return language tags from an Accept-Language header, best first.

    Args:
        header: Raw header value, e.g. ``zh-TW,zh;q=0.9,en;q=0.8``

    Returns:
        Tags ordered by descending quality (ties keep header order)
    """
    if not header:
        return []

    weighted: list[tuple[float, int, str]] = []
    for index, part in enumerate(header.split(",")):
        piece = part.strip()
        if not piece:
            continue
        tag, _, params = piece.partition(";")
        quality = 1.0
        if params.strip().startswith("q="):
            try:
                quality = float(params.strip()[2:])
            except ValueError:
                quality = 0.0
        if tag.strip() and tag.strip() != "*" and quality > 0:
            weighted.append((-quality, index, tag.strip()))

    return [tag for _, _, tag in sorted(weighted)]


def resolve_locale(request: Request) -> tuple[str, str]:
    """Pick the request locale.

    Args:
        request: The incoming request

    Returns:
        Tuple of (locale, source) where source is one of ``query``,
        ``header``, ``accept_language`` or ``default``
    """
    explicit = normalize_locale(request.query_params.get("locale"))
    if explicit:
        return explicit, "query"

    header = normalize_locale(request.headers.get("X-Locale"))
    if header:
        return header, "header"

    for tag in parse_accept_language(request.headers.get("Accept-Language")):
        negotiated = normalize_locale(tag)
        if negotiated:
            return negotiated, "accept_language"

    return settings.default_locale, "default"


class LocaleMiddleware(BaseHTTPMiddleware):
    """Resolve the request locale and expose it to handlers.

    The locale is stored in ``request.state.locale`` and the i18n context
    variable, and echoed back in the ``Content-Language`` header. An
    authenticated user's saved preference is applied later by the auth
    dependency unless the locale came from the query string.
    """

    def __init__(self, app: "ASGIApp") -> None:
        super().__init__(app)

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        locale, source = resolve_locale(request)
        request.state.locale = locale
        request.state.locale_source = source
        set_locale(locale)

        response = await call_next(request)

        response.headers["Content-Language"] = getattr(
            request.state, "locale", locale
        ).replace("_", "-")
        return response
