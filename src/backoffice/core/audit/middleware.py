"""Audit context and automatic change capture.

The request context (user, request id, client address) lives in a
ContextVar set by ``AuditContextMiddleware``. A ``before_flush`` listener
writes an AuditLog row for every created, updated or deleted instance of
a model that carries ``__audit__ = True``.
"""

from contextvars import ContextVar
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

import structlog
from fastapi import Request, Response
from sqlalchemy import event, inspect
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from backoffice.core.audit.models import AuditLog
from backoffice.core.logging import get_client_ip


log = structlog.get_logger()


# Each async task/request gets its own isolated context
_audit_context: ContextVar[dict[str, Any] | None] = ContextVar(
    "audit_context", default=None
)


def set_audit_context(
    user_id: UUID | None = None,
    request_id: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    session_id: UUID | None = None,
) -> None:
    """Set the audit context for the current request.

    Creates a new dict to ensure isolation between concurrent requests.
    """
    _audit_context.set(
        {
            "user_id": user_id,
            "request_id": request_id,
            "ip_address": ip_address,
            "user_agent": user_agent,
            "session_id": session_id,
        }
    )


def update_audit_context(**values: Any) -> None:
    """Update fields of the current context (e.g. once the user is known)."""
    ctx = get_audit_context()
    ctx.update(values)
    _audit_context.set(ctx)


def clear_audit_context() -> None:
    """Clear the audit context after request completes."""
    _audit_context.set(None)


def get_audit_context() -> dict[str, Any]:
    """Get a shallow copy of the current audit context (empty if unset)."""
    ctx = _audit_context.get()
    if ctx is None:
        return {}
    return ctx.copy()


def serialize_value(value: Any) -> Any:
    """Convert a value to JSON-compatible primitives, recursively."""
    if value is None or isinstance(value, str | int | float | bool):
        return value

    result: Any
    if isinstance(value, UUID):
        result = str(value)
    elif isinstance(value, datetime | date):
        result = value.isoformat()
    elif isinstance(value, Decimal):
        result = str(value)
    elif isinstance(value, Enum):
        result = value.value
    elif isinstance(value, dict):
        result = {str(k): serialize_value(v) for k, v in value.items()}
    elif isinstance(value, list | tuple | set | frozenset):
        result = [serialize_value(item) for item in value]
    else:
        result = str(value)

    return result


def _column_keys(obj: Any) -> list[str]:
    excluded = set(obj.audit_excluded())
    return [
        attr.key
        for attr in inspect(obj.__class__).column_attrs
        if not attr.key.startswith("_") and attr.key not in excluded
    ]


def _get_changes(obj: Any) -> dict[str, dict[str, Any]]:
    """Extract column changes from a modified object.

    Returns:
        Dictionary of changes {field: {old: x, new: y}}
    """
    changes = {}
    state = inspect(obj)
    for key in _column_keys(obj):
        history = state.attrs[key].history
        if history.has_changes():
            old_value = history.deleted[0] if history.deleted else None
            new_value = history.added[0] if history.added else None
            if old_value == new_value:
                continue
            changes[key] = {
                "old": serialize_value(old_value),
                "new": serialize_value(new_value),
            }
    return changes


def _snapshot(obj: Any) -> dict[str, Any]:
    values = inspect(obj).dict
    return {
        key: serialize_value(values.get(key))
        for key in _column_keys(obj)
        if key not in ("created_at", "updated_at")
    }


def _should_audit(obj: Any) -> bool:
    return getattr(obj, "__audit__", False)


def _create_audit_entry(
    session: Session,
    action: str,
    obj: Any,
    changes: dict[str, Any] | None = None,
) -> None:
    context = get_audit_context()

    # Primary keys default at flush time; assign now so the entry can reference it
    if getattr(obj, "id", None) is None and hasattr(obj, "id"):
        obj.id = uuid4()

    session.add(
        AuditLog(
            user_id=context.get("user_id"),
            session_id=context.get("session_id"),
            action=action,
            resource_type=obj.__tablename__,
            resource_id=str(obj.id) if hasattr(obj, "id") else None,
            request_id=context.get("request_id"),
            ip_address=context.get("ip_address"),
            user_agent=context.get("user_agent"),
            changes=changes,
        )
    )


def _before_flush(session: Session, _flush_context: Any, _instances: Any) -> None:
    """Capture changes before they're flushed to the database."""
    for obj in list(session.new):
        if _should_audit(obj):
            _create_audit_entry(session, "create", obj, _snapshot(obj))

    for obj in list(session.dirty):
        if _should_audit(obj) and session.is_modified(obj):
            changes = _get_changes(obj)
            if changes:
                _create_audit_entry(session, "update", obj, changes)

    for obj in list(session.deleted):
        if _should_audit(obj):
            _create_audit_entry(session, "delete", obj, _snapshot(obj))


def setup_audit_listeners() -> None:
    """Enable automatic auditing for models with ``__audit__ = True``.

    Safe to call more than once.
    """
    if not event.contains(Session, "before_flush", _before_flush):
        event.listen(Session, "before_flush", _before_flush)
        log.debug("audit_listeners_registered")


class AuditContextMiddleware(BaseHTTPMiddleware):
    """Populate the audit context from request state.

    Must run after RequestIdMiddleware and AuthContextMiddleware so the
    request id and token identity are already on ``request.state``.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        set_audit_context(
            user_id=getattr(request.state, "user_id", None),
            request_id=getattr(request.state, "request_id", None),
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
            session_id=getattr(request.state, "session_id", None),
        )
        try:
            return await call_next(request)
        finally:
            clear_audit_context()
