"""Exceptions raised by services and dependencies.

Each class fixes an HTTP status and a machine-readable ``error_code``; the
handlers turn them into RFC 7807 bodies whose ``type`` ends with that code.
A catalog entry ``errors.<error_code>`` in the request locale replaces the
English ``message``.
"""

from collections.abc import Sequence
from typing import Any


class AppException(Exception):
    """Base class for every error the API reports on purpose.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for clients
        status_code: HTTP status code for the response
        details: Extra members merged into the problem body
    """

    message: str = "An unexpected error occurred"
    error_code: str = "internal_error"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)


class BadRequestError(AppException):
    message = "Bad request"
    error_code = "bad_request"
    status_code = 400


class UnauthorizedError(AppException):
    message = "Authentication required"
    error_code = "unauthorized"
    status_code = 401


class ForbiddenError(AppException):
    message = "Access forbidden"
    error_code = "forbidden"
    status_code = 403


class NotFoundError(AppException):
    """A record addressed by the request does not exist or is not visible.

    Example:
        raise NotFoundError("Role not found", resource="role", resource_id=str(role_id))
    """

    message = "Resource not found"
    error_code = "not_found"
    status_code = 404

    def __init__(
        self,
        message: str | None = None,
        resource: str | None = None,
        resource_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if resource:
            details["resource"] = resource
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(message=message, details=details, **kwargs)


class ConflictError(AppException):
    message = "Resource conflict"
    error_code = "conflict"
    status_code = 409


class ValidationError(AppException):
    """Input that parsed but breaks a business rule.

    ``errors`` is a list of ``{"field": ..., "message": ...}`` entries, the
    same shape request-body validation failures use.
    """

    message = "Validation error"
    error_code = "validation_error"
    status_code = 422

    def __init__(
        self,
        message: str | None = None,
        errors: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if errors:
            details["errors"] = errors
        super().__init__(message=message, details=details, **kwargs)


class RateLimitError(AppException):
    message = "Rate limit exceeded"
    error_code = "rate_limit_exceeded"
    status_code = 429


class ServiceUnavailableError(AppException):
    message = "Service temporarily unavailable"
    error_code = "service_unavailable"
    status_code = 503


# Domain errors


class PermissionDeniedError(ForbiddenError):
    """The caller lacks the permission names an endpoint or policy requires."""

    error_code = "permission_denied"

    def __init__(self, permissions: Sequence[str], require_all: bool = True) -> None:
        joined = ", ".join(permissions)
        super().__init__(
            f"Missing required permissions: {joined}"
            if require_all
            else f"Missing required permission. Need one of: {joined}",
            details={"required_permissions": list(permissions)},
        )


class SessionRevokedError(UnauthorizedError):
    message = "Session has been revoked"
    error_code = "session_revoked"


class SessionExpiredError(UnauthorizedError):
    message = "Session expired due to inactivity"
    error_code = "session_expired"


class SystemRoleError(BadRequestError):
    """Built-in roles keep their name, stay active and cannot be deleted."""

    error_code = "system_role"


class UnknownSettingError(NotFoundError):
    error_code = "unknown_setting"

    def __init__(self, key: str) -> None:
        super().__init__(f"Unknown setting '{key}'", resource="setting", resource_id=key)


class InvalidImportDocumentError(BadRequestError):
    """An uploaded export document is missing its required sections."""

    error_code = "invalid_import_document"
