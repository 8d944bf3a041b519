"""RFC 7807 Problem Details responses for every error the API returns.

The ``type`` member is ``{api_docs_base_url}/errors/{error_code}`` so clients
can branch on the last path segment. ``detail`` is translated into the
request locale when the catalog has ``errors.<error_code>``.

See: https://tools.ietf.org/html/rfc7807
"""

from typing import TYPE_CHECKING, Any, cast

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError

from backoffice.config import settings
from backoffice.core.errors.exceptions import AppException
from backoffice.core.i18n.translator import has_translation, translate


if TYPE_CHECKING:
    from starlette.types import ExceptionHandler


logger = structlog.get_logger()


class FieldError(BaseModel):
    field: str
    message: str
    type: str | None = None


class ProblemDetail(BaseModel):
    """Problem Details body.

    Attributes:
        type: URI whose last segment is the error code
        title: Error code in title case
        status: HTTP status code
        detail: Localized explanation of this occurrence
        instance: Request path
        errors: Field-level errors for validation failures
        trace_id: The request's ``X-Request-ID``
    """

    type: str
    title: str
    status: int
    detail: str
    instance: str | None = None
    errors: list[FieldError] | None = None
    trace_id: str | None = None

    model_config = {"extra": "allow"}


def localize_detail(
    error_code: str, default: str, locale: str, params: dict[str, Any] | None = None
) -> str:
    """Return the translated message for an error code, or the default.

    Args:
        error_code: Machine-readable error code
        default: Message to use when no translation exists
        locale: Target locale
        params: Placeholder values; only scalar entries are passed through

    Returns:
        Localized message
    """
    key = f"errors.{error_code}"
    if not has_translation(key, locale):
        return default
    scalars = {k: v for k, v in (params or {}).items() if isinstance(v, str | int | float)}
    return translate(key, locale=locale, **scalars)


def problem_response(
    request: Request,
    status_code: int,
    error_code: str,
    message: str,
    *,
    params: dict[str, Any] | None = None,
    errors: list[FieldError] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build a Problem Details response; usable from middleware as well."""
    locale = getattr(request.state, "locale", settings.default_locale)
    content = ProblemDetail(
        type=f"{settings.api_docs_base_url}/errors/{error_code}",
        title=error_code.replace("_", " ").title(),
        status=status_code,
        detail=localize_detail(error_code, message, locale, params),
        instance=request.url.path,
        errors=errors,
        trace_id=getattr(request.state, "request_id", None),
    ).model_dump(exclude_none=True)

    # Exception details extend the body but never overwrite standard members
    for key, value in (params or {}).items():
        content.setdefault(key, value)

    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.warning(
        "app_exception",
        error_code=exc.error_code,
        status_code=exc.status_code,
        path=request.url.path,
        message=exc.message,
    )

    headers = None
    retry_after = exc.details.get("retry_after")
    if exc.status_code == status.HTTP_429_TOO_MANY_REQUESTS and retry_after:
        headers = {"Retry-After": str(retry_after)}

    return problem_response(
        request,
        exc.status_code,
        exc.error_code,
        exc.message,
        params=exc.details,
        headers=headers,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report body, query and path validation failures field by field.

    The ``body`` prefix is dropped from locations, so a nested field reads as
    ``conditions.min_risk_level``.
    """
    errors = [
        FieldError(
            field=".".join(str(part) for part in error.get("loc", ()) if part != "body")
            or "unknown",
            message=error.get("msg", "Invalid value"),
            type=error.get("type"),
        )
        for error in exc.errors()
    ]
    logger.warning("validation_error", path=request.url.path, error_count=len(errors))

    return problem_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "validation_error",
        "Request validation failed",
        errors=errors,
    )


async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Unique and foreign-key violations that slipped past service checks."""
    logger.warning("integrity_error", path=request.url.path, error=str(exc.orig))

    return problem_response(
        request,
        status.HTTP_409_CONFLICT,
        "integrity_conflict",
        "The change conflicts with existing data",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path, error_type=type(exc).__name__)

    return problem_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "internal_error",
        "An unexpected error occurred",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, cast("ExceptionHandler", app_exception_handler))
    app.add_exception_handler(
        RequestValidationError, cast("ExceptionHandler", validation_exception_handler)
    )
    app.add_exception_handler(
        IntegrityError, cast("ExceptionHandler", integrity_exception_handler)
    )
    app.add_exception_handler(Exception, generic_exception_handler)
