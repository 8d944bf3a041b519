"""RFC 7807 error responses and the exceptions that produce them."""

from backoffice.core.errors.exceptions import (
    AppException,
    BadRequestError,
    ConflictError,
    ForbiddenError,
    InvalidImportDocumentError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ServiceUnavailableError,
    SessionExpiredError,
    SessionRevokedError,
    SystemRoleError,
    UnauthorizedError,
    UnknownSettingError,
    ValidationError,
)
from backoffice.core.errors.handlers import (
    FieldError,
    ProblemDetail,
    localize_detail,
    problem_response,
    register_exception_handlers,
)


__all__ = [
    "AppException",
    "BadRequestError",
    "ConflictError",
    "FieldError",
    "ForbiddenError",
    "InvalidImportDocumentError",
    "NotFoundError",
    "PermissionDeniedError",
    "ProblemDetail",
    "RateLimitError",
    "ServiceUnavailableError",
    "SessionExpiredError",
    "SessionRevokedError",
    "SystemRoleError",
    "UnauthorizedError",
    "UnknownSettingError",
    "ValidationError",
    "localize_detail",
    "problem_response",
    "register_exception_handlers",
]
