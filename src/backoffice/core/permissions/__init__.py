"""Permission system for role-based access control (RBAC)."""

from backoffice.core.permissions.checker import (
    PermissionChecker,
    grants_any,
)
from backoffice.core.permissions.decorators import require_permission
from backoffice.core.permissions.graph import PermissionGraph, RoleTree
from backoffice.core.permissions.models import Permission, Role, UserRole
from backoffice.core.permissions.policy import Policy


__all__ = [
    # Models
    "Permission",
    # Checker
    "PermissionChecker",
    "PermissionGraph",
    "Policy",
    "Role",
    "RoleTree",
    "UserRole",
    "grants_any",
    # Decorators
    "require_permission",
]
