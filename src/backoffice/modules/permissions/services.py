"""Permission service for business logic.

Permission names are ``module.action``. A permission may depend on
others; granting it to a role grants its whole dependency chain (see
``RoleService.sync_permissions``), so the dependency graph must stay
acyclic.
"""

from datetime import UTC, datetime
from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import Depends

from backoffice.api.dependencies import DBSession
from backoffice.core.audit.service import AuditService
from backoffice.core.errors import (
    BadRequestError,
    ConflictError,
    InvalidImportDocumentError,
    NotFoundError,
)
from backoffice.core.permissions.graph import PermissionGraph
from backoffice.core.permissions.models import PERMISSION_TYPES, Permission
from backoffice.modules.activities.logger import ActivityLogger
from backoffice.modules.permissions.repos import PermissionRepository
from backoffice.modules.permissions.schemas import PermissionCreate, PermissionUpdate


logger = structlog.get_logger()

EXPORT_VERSION = "1.0"
SUPPORTED_IMPORT_VERSIONS = ("1.0",)


def _module_of(name: str) -> str:
    return name.split(".", 1)[0]


class PermissionService:
    """Service for permission management operations."""

    def __init__(self, session: DBSession) -> None:
        self.session = session
        self.repo = PermissionRepository(session)
        self.activity = ActivityLogger(session)

    async def list_permissions(
        self,
        search: str | None = None,
        module: str | None = None,
        type_: str | None = None,
        usage: str | None = None,
        page: int = 1,
        page_size: int = 20,
        sort: str = "name",
    ) -> tuple[list[tuple[Permission, int]], int]:
        return await self.repo.list_permissions(
            {"search": search, "module": module, "type": type_, "usage": usage},
            page=page,
            page_size=page_size,
            sort=sort,
        )

    async def get(self, permission_id: UUID) -> Permission:
        """Get a permission by ID.

        Raises:
            NotFoundError: If permission not found
        """
        permission = await self.repo.get_by_id(permission_id)
        if not permission:
            raise NotFoundError(
                "Permission not found",
                resource="permission",
                resource_id=str(permission_id),
            )
        return permission

    async def get_permission(self, permission_id: UUID) -> dict[str, Any]:
        """A permission with its direct dependencies, dependents and roles."""
        permission = await self.get(permission_id)
        return {
            "permission": permission,
            "dependencies": sorted(permission.dependencies, key=lambda p: p.name),
            "dependents": await self.repo.dependents(permission.id),
            "roles": await self.repo.roles_for(permission.id),
        }

    async def _ensure_name_available(self, name: str, exclude: UUID | None = None) -> None:
        existing = await self.repo.get_by_name(name)
        if existing and existing.id != exclude:
            raise ConflictError(
                "Permission name already exists",
                error_code="permission_name_exists",
                details={"name": name},
            )

    @staticmethod
    def _check_module(name: str, module: str) -> None:
        if _module_of(name) != module:
            raise BadRequestError(
                "Permission module must match the name prefix",
                error_code="module_mismatch",
                details={"name": name, "module": module},
            )

    async def create_permission(self, data: PermissionCreate) -> Permission:
        """Create a permission.

        Raises:
            ConflictError: If the name is taken
            BadRequestError: If the module does not match the name prefix
        """
        self._check_module(data.name, data.module)
        await self._ensure_name_available(data.name)

        permission = await self.repo.create(
            Permission(
                name=data.name,
                display_name=data.display_name,
                description=data.description,
                module=data.module,
                type=data.type,
                is_system=False,
            )
        )
        if data.dependency_ids:
            await self.sync_dependencies(permission.id, data.dependency_ids)

        logger.info("permission_created", permission_id=str(permission.id), name=permission.name)
        return permission

    async def update_permission(self, permission_id: UUID, data: PermissionUpdate) -> Permission:
        """Update a permission.

        Raises:
            BadRequestError: If the name changes while roles use the permission
        """
        permission = await self.get(permission_id)
        updates = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}

        new_name = updates.get("name", permission.name)
        if new_name != permission.name:
            if permission.is_system or await self.repo.role_count(permission.id):
                raise BadRequestError(
                    "Permission name cannot change while it is assigned to roles",
                    error_code="permission_name_locked",
                )
            await self._ensure_name_available(new_name, exclude=permission.id)
        self._check_module(new_name, updates.get("module", _module_of(new_name)))
        updates.setdefault("module", _module_of(new_name))

        for field, value in updates.items():
            setattr(permission, field, value)

        permission = await self.repo.update(permission)
        logger.info("permission_updated", permission_id=str(permission.id))
        return permission

    async def delete_permission(self, permission_id: UUID) -> None:
        """Delete a permission.

        Raises:
            BadRequestError: If it is a system permission, used by roles, or
                depended upon by other permissions
        """
        permission = await self.get(permission_id)
        if permission.is_system:
            raise BadRequestError(
                "System permissions cannot be deleted",
                error_code="system_permission",
            )
        roles = await self.repo.role_count(permission.id)
        if roles:
            raise BadRequestError(
                "Permission is assigned to roles",
                error_code="permission_in_use",
                details={"role_count": roles},
            )
        dependents = await self.repo.dependents(permission.id)
        if dependents:
            raise BadRequestError(
                "Other permissions depend on this permission",
                error_code="permission_has_dependents",
                details={"dependents": [p.name for p in dependents]},
            )

        await self.repo.delete(permission)
        logger.info("permission_deleted", permission_id=str(permission_id))

    async def sync_dependencies(self, permission_id: UUID, dependency_ids: list[UUID]) -> Permission:
        """Replace a permission's direct dependencies.

        Raises:
            BadRequestError: If the change would create a dependency cycle
        """
        permission = await self.get(permission_id)
        targets = await self.repo.get_many(list(set(dependency_ids)))
        missing = set(dependency_ids) - {p.id for p in targets}
        if missing:
            raise NotFoundError(
                "Permission not found",
                resource="permission",
                resource_id=str(sorted(missing, key=str)[0]),
            )

        graph = await PermissionGraph.load(self.session)
        if graph.creates_cycle(permission.id, dependency_ids):
            raise BadRequestError(
                "Dependencies would create a cycle",
                error_code="circular_dependency",
            )

        old = [p.name for p in permission.dependencies]
        await self.repo.set_dependencies(permission, {p.id for p in targets})
        new = [p.name for p in permission.dependencies]

        if sorted(old) != sorted(new):
            await AuditService(self.session).log_dependencies_changed(
                permission.id, permission.name, old, new
            )
        return permission

    async def get_dependency_chain(self, permission_id: UUID) -> dict[str, Any]:
        permission = await self.get(permission_id)
        graph = await PermissionGraph.load(self.session)
        return {
            "permission_id": permission.id,
            "dependencies": await self.repo.get_many(list(graph.all_dependencies(permission.id))),
            "dependents": await self.repo.get_many(list(graph.all_dependents(permission.id))),
        }

    async def get_usage_stats(self) -> dict[str, Any]:
        permissions = await self.repo.all()
        used_ids = await self.repo.used_ids()

        by_module: dict[str, dict[str, int]] = {}
        for permission in permissions:
            counts = by_module.setdefault(permission.module, {"total": 0, "used": 0, "unused": 0})
            counts["total"] += 1
            counts["used" if permission.id in used_ids else "unused"] += 1

        total = len(permissions)
        used = sum(1 for p in permissions if p.id in used_ids)
        return {
            "total": total,
            "used": used,
            "unused": total - used,
            "usage_percentage": round(used / total * 100, 2) if total else 0.0,
            "by_module": by_module,
            "unused_permissions": [p for p in permissions if p.id not in used_ids],
        }

    async def get_modules(self) -> list[dict[str, Any]]:
        return [{"module": module, "count": count} for module, count in await self.repo.modules()]

    async def export_permissions(self, filters: dict[str, Any] | None = None) -> dict[str, Any]:
        """Export permissions as a JSON document; dependencies are listed by name."""
        permissions = await self.repo.find(filters)
        document = {
            "export_info": {
                "version": EXPORT_VERSION,
                "exported_at": datetime.now(UTC).isoformat(),
                "total": len(permissions),
                "filters": {k: v for k, v in (filters or {}).items() if v is not None},
            },
            "permissions": [
                {
                    "name": p.name,
                    "display_name": p.display_name,
                    "description": p.description,
                    "module": p.module,
                    "type": p.type,
                    "dependencies": sorted(d.name for d in p.dependencies),
                }
                for p in permissions
            ],
        }

        await AuditService(self.session).log_transfer(
            "export", "permissions", {"total": len(permissions)}
        )
        await self.activity.log_data_export("permissions", {"total": len(permissions)})
        return document

    def _validate_entry(self, entry: Any) -> str | None:
        """Return an error message for a malformed import entry."""
        if not isinstance(entry, dict):
            return "Entry must be an object"
        name = entry.get("name")
        if not isinstance(name, str) or "." not in name:
            return "Name must be in module.action form"
        if not entry.get("display_name"):
            return "Display name is required"
        if entry.get("type", "view") not in PERMISSION_TYPES:
            return f"Unknown type '{entry.get('type')}'"
        if entry.get("module", _module_of(name)) != _module_of(name):
            return "Module must match the name prefix"
        return None

    async def import_permissions(
        self,
        document: dict[str, Any],
        conflict_resolution: str = "skip",
        dry_run: bool = False,
    ) -> dict[str, Any]:
        """Import permissions from an exported document.

        All changes happen in one savepoint, which is rolled back for a dry
        run or when any entry fails. Dependencies are linked by name after
        every permission exists; missing ones produce warnings.

        Args:
            document: Document produced by ``export_permissions``
            conflict_resolution: ``skip`` or ``update`` existing permissions
            dry_run: Report what would happen without keeping changes

        Returns:
            Counts of created, updated and skipped permissions, plus
            warnings and errors
        """
        info = document.get("export_info")
        entries = document.get("permissions")
        if not isinstance(info, dict) or not isinstance(entries, list):
            raise InvalidImportDocumentError(
                "Import document must contain export_info and permissions",
            )
        if str(info.get("version")) not in SUPPORTED_IMPORT_VERSIONS:
            raise BadRequestError(
                f"Unsupported import version {info.get('version')}",
                error_code="unsupported_import_version",
            )

        result: dict[str, Any] = {
            "created": 0,
            "updated": 0,
            "skipped": 0,
            "warnings": [],
            "errors": [],
            "dry_run": dry_run,
        }
        touched: dict[str, tuple[Permission, list[str]]] = {}

        savepoint = await self.session.begin_nested()
        try:
            for entry in entries:
                error = self._validate_entry(entry)
                if error:
                    name = entry.get("name") if isinstance(entry, dict) else None
                    result["errors"].append({"name": name, "message": error})
                    continue

                name = entry["name"]
                fields = {
                    "display_name": entry["display_name"],
                    "description": entry.get("description"),
                    "module": _module_of(name),
                    "type": entry.get("type", "view"),
                }
                existing = await self.repo.get_by_name(name)
                if existing and conflict_resolution != "update":
                    result["skipped"] += 1
                    continue
                if existing:
                    for field, value in fields.items():
                        setattr(existing, field, value)
                    permission = await self.repo.update(existing)
                    result["updated"] += 1
                else:
                    permission = await self.repo.create(Permission(name=name, **fields))
                    result["created"] += 1
                touched[name] = (permission, list(entry.get("dependencies") or []))

            graph = await PermissionGraph.load(self.session)
            for name, (permission, dependency_names) in touched.items():
                dependency_ids = set()
                for dep_name in dependency_names:
                    dependency = await self.repo.get_by_name(dep_name)
                    if dependency is None:
                        result["warnings"].append(
                            {"name": name, "message": f"Missing dependency {dep_name}"}
                        )
                        continue
                    dependency_ids.add(dependency.id)
                if graph.creates_cycle(permission.id, dependency_ids):
                    result["errors"].append({"name": name, "message": "Circular dependency"})
                    continue
                await self.repo.set_dependencies(permission, dependency_ids)
                graph = await PermissionGraph.load(self.session)

            if dry_run or result["errors"]:
                await savepoint.rollback()
            else:
                await savepoint.commit()
        except Exception:
            await savepoint.rollback()
            raise

        result["success"] = not result["errors"]
        summary = {k: result[k] for k in ("created", "updated", "skipped", "dry_run")}
        summary["errors"] = len(result["errors"])
        if not dry_run:
            await AuditService(self.session).log_transfer("import", "permissions", summary)
            await self.activity.log_data_import("permissions", summary)
        logger.info("permissions_imported", **summary)
        return result


PermissionSvc = Annotated[PermissionService, Depends(PermissionService)]
