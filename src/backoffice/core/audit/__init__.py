"""Change audit trail: automatic capture plus manual entries."""

from backoffice.core.audit.middleware import (
    AuditContextMiddleware,
    clear_audit_context,
    get_audit_context,
    set_audit_context,
    setup_audit_listeners,
    update_audit_context,
)
from backoffice.core.audit.models import AuditLog
from backoffice.core.audit.service import AuditContext, AuditService, AuditSvc


__all__ = [
    "AuditContext",
    "AuditContextMiddleware",
    "AuditLog",
    "AuditService",
    "AuditSvc",
    "clear_audit_context",
    "get_audit_context",
    "set_audit_context",
    "setup_audit_listeners",
    "update_audit_context",
]
