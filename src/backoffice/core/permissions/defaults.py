"""Built-in permissions and roles.

Used by the seed script and the test fixtures. Every permission here is
a system permission; every role a system role.
"""

from typing import Any


def _perm(
    name: str,
    display_name: str,
    type_: str,
    depends_on: tuple[str, ...] = (),
    description: str | None = None,
) -> dict[str, Any]:
    return {
        "name": name,
        "display_name": display_name,
        "module": name.split(".", 1)[0],
        "type": type_,
        "description": description,
        "depends_on": list(depends_on),
    }


DEFAULT_PERMISSIONS: list[dict[str, Any]] = [
    _perm("users.view", "View users", "view"),
    _perm("users.create", "Create users", "create", ("users.view",)),
    _perm("users.edit", "Edit users", "edit", ("users.view",)),
    _perm("users.delete", "Delete users", "delete", ("users.view",)),
    _perm("users.assign_roles", "Assign roles to users", "manage", ("users.view", "roles.view")),
    _perm("roles.view", "View roles", "view"),
    _perm("roles.create", "Create roles", "create", ("roles.view",)),
    _perm("roles.edit", "Edit roles", "edit", ("roles.view",)),
    _perm("roles.delete", "Delete roles", "delete", ("roles.view",)),
    _perm("roles.manage", "Manage role hierarchy and permissions", "manage", ("roles.edit", "permissions.view")),
    _perm("permissions.view", "View permissions", "view"),
    _perm("permissions.create", "Create permissions", "create", ("permissions.view",)),
    _perm("permissions.edit", "Edit permissions", "edit", ("permissions.view",)),
    _perm("permissions.delete", "Delete permissions", "delete", ("permissions.view",)),
    _perm("permissions.manage", "Import, export and link permissions", "manage", ("permissions.edit",)),
    _perm("activity_logs.view", "View activity logs", "view"),
    _perm("activity_logs.export", "Export activity logs", "manage", ("activity_logs.view",)),
    _perm("activity_logs.delete", "Delete activity logs", "delete", ("activity_logs.view",)),
    _perm("activity_logs.manage", "Manage retention policies", "manage", ("activity_logs.delete",)),
    _perm("security.view", "View security events", "view", ("activity_logs.view",)),
    _perm("security.audit", "Audit raw security data", "manage", ("security.view",)),
    _perm("audit.view", "View audit trail", "view"),
    _perm("audit.export", "Export audit trail", "manage", ("audit.view",)),
    _perm("audit.manage", "Clean up audit trail", "manage", ("audit.view",)),
    _perm("settings.view", "View system settings", "view"),
    _perm("settings.edit", "Edit system settings", "edit", ("settings.view",)),
    _perm("settings.manage", "Back up, restore and import settings", "manage", ("settings.edit",)),
    _perm("notifications.view", "Receive security notifications", "view"),
    _perm("notifications.manage", "Manage notification rules", "manage", ("notifications.view",)),
]


DEFAULT_ROLES: list[dict[str, Any]] = [
    {
        "name": "super_admin",
        "display_name": "Super Administrator",
        "description": "Unrestricted access to every module",
        "parent": None,
        "permissions": ["*"],
    },
    {
        "name": "viewer",
        "display_name": "Viewer",
        "description": "Read-only access to administration screens",
        "parent": None,
        "permissions": [
            "users.view",
            "roles.view",
            "permissions.view",
            "settings.view",
        ],
    },
    {
        "name": "user_manager",
        "display_name": "User Manager",
        "description": "Manages user accounts and their roles",
        "parent": "viewer",
        "permissions": [
            "users.create",
            "users.edit",
            "users.delete",
            "users.assign_roles",
        ],
    },
    {
        "name": "auditor",
        "display_name": "Auditor",
        "description": "Reviews activity logs and the audit trail",
        "parent": "viewer",
        "permissions": [
            "activity_logs.view",
            "activity_logs.export",
            "security.view",
            "security.audit",
            "audit.view",
            "audit.export",
            "notifications.view",
        ],
    },
    {
        "name": "admin",
        "display_name": "Administrator",
        "description": "Day-to-day administration",
        "parent": None,
        "permissions": [
            "users.*",
            "roles.*",
            "permissions.view",
            "activity_logs.*",
            "security.view",
            "audit.view",
            "settings.view",
            "settings.edit",
            "notifications.*",
        ],
    },
]


def wildcard_permission(name: str) -> dict[str, Any]:
    """Definition for a wildcard grant such as ``*`` or ``users.*``."""
    if name == "*":
        return _perm("*", "All permissions", "manage") | {"module": "*"}
    module = name.split(".", 1)[0]
    return _perm(name, f"All {module} permissions", "manage")


def all_default_permissions() -> list[dict[str, Any]]:
    """Declared permissions plus the wildcard grants the default roles use."""
    declared = {p["name"] for p in DEFAULT_PERMISSIONS}
    wildcards = sorted(
        {
            name
            for role in DEFAULT_ROLES
            for name in role["permissions"]
            if name not in declared
        }
    )
    return DEFAULT_PERMISSIONS + [wildcard_permission(name) for name in wildcards]
