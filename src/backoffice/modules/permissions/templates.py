"""Permission templates.

A template is a named list of actions. Applying it to a module prefix
creates ``<prefix>.<action>`` for every action whose permission does not
exist yet; existing names are reported as skipped and left untouched.
"""

from datetime import UTC, datetime
from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import Depends
from pydantic import ValidationError as PydanticValidationError

from backoffice.api.dependencies import DBSession
from backoffice.core.audit import get_audit_context
from backoffice.core.errors import (
    BadRequestError,
    ConflictError,
    InvalidImportDocumentError,
    NotFoundError,
)
from backoffice.core.permissions.models import Permission
from backoffice.modules.permissions.models import PermissionTemplate
from backoffice.modules.permissions.repos import (
    PermissionRepository,
    PermissionTemplateRepository,
)
from backoffice.modules.permissions.schemas import (
    TemplateCreate,
    TemplateDuplicate,
    TemplateFromPermissions,
    TemplateUpdate,
)


logger = structlog.get_logger()

TEMPLATE_EXPORT_VERSION = "1.0"


class PermissionTemplateService:
    """Service for permission template operations."""

    def __init__(self, session: DBSession) -> None:
        self.session = session
        self.templates = PermissionTemplateRepository(session)
        self.permissions = PermissionRepository(session)

    async def list_templates(
        self, module: str | None = None, search: str | None = None
    ) -> list[PermissionTemplate]:
        return await self.templates.list_templates(module=module, search=search)

    async def get(self, template_id: UUID) -> PermissionTemplate:
        """Get a template by ID.

        Raises:
            NotFoundError: If the template does not exist
        """
        template = await self.templates.get_by_id(template_id)
        if not template:
            raise NotFoundError(
                "Permission template not found",
                resource="permission_template",
                resource_id=str(template_id),
            )
        return template

    async def _ensure_name_available(self, name: str) -> None:
        if await self.templates.get_by_name(name):
            raise ConflictError(
                "Template name already exists",
                error_code="template_name_exists",
                details={"name": name},
            )

    @staticmethod
    def _check_editable(template: PermissionTemplate) -> None:
        if template.is_system:
            raise BadRequestError(
                "System templates cannot be changed",
                error_code="system_template",
            )

    async def _store(
        self,
        name: str,
        display_name: str,
        description: str | None,
        module: str,
        entries: list[dict[str, Any]],
    ) -> PermissionTemplate:
        template = await self.templates.create(
            PermissionTemplate(
                name=name,
                display_name=display_name,
                description=description,
                module=module,
                permissions=entries,
                is_system=False,
                is_active=True,
                created_by=get_audit_context().get("user_id"),
            )
        )
        logger.info(
            "permission_template_created",
            template_id=str(template.id),
            name=template.name,
            actions=len(entries),
        )
        return template

    async def create_template(self, data: TemplateCreate) -> PermissionTemplate:
        """Create a template.

        Raises:
            ConflictError: If the name is taken
        """
        await self._ensure_name_available(data.name)
        return await self._store(
            data.name,
            data.display_name,
            data.description,
            data.module,
            [entry.model_dump() for entry in data.permissions],
        )

    async def update_template(self, template_id: UUID, data: TemplateUpdate) -> PermissionTemplate:
        """Update a template.

        Raises:
            BadRequestError: If it is a system template
        """
        template = await self.get(template_id)
        self._check_editable(template)

        updates = data.model_dump(exclude_unset=True, exclude_none=True)
        if "permissions" in updates:
            updates["permissions"] = [entry.model_dump() for entry in data.permissions or []]
        for field, value in updates.items():
            setattr(template, field, value)

        template = await self.templates.update(template)
        logger.info("permission_template_updated", template_id=str(template.id))
        return template

    async def delete_template(self, template_id: UUID) -> None:
        """Delete a template.

        Raises:
            BadRequestError: If it is a system template
        """
        template = await self.get(template_id)
        self._check_editable(template)
        await self.templates.delete(template)
        logger.info("permission_template_deleted", template_id=str(template_id))

    async def preview(self, template_id: UUID, module_prefix: str) -> list[dict[str, Any]]:
        """What applying the template to ``module_prefix`` would create."""
        template = await self.get(template_id)
        names = [f"{module_prefix}.{entry['action']}" for entry in template.permissions]
        existing = await self.permissions.names_in(names)
        return [
            {
                "name": name,
                "action": entry["action"],
                "display_name": entry["display_name"],
                "description": entry.get("description"),
                "type": entry.get("type", "view"),
                "exists": name in existing,
                "will_create": name not in existing,
            }
            for name, entry in zip(names, template.permissions, strict=True)
        ]

    async def apply_template(self, template_id: UUID, module_prefix: str) -> dict[str, Any]:
        """Create the template's permissions under ``module_prefix``.

        Every permission is created in one savepoint; names that already
        exist are skipped with a reason.

        Raises:
            BadRequestError: If the template is inactive
        """
        template = await self.get(template_id)
        if not template.is_active:
            raise BadRequestError(
                "Inactive templates cannot be applied",
                error_code="template_inactive",
            )

        created: list[Permission] = []
        skipped: list[dict[str, str]] = []
        async with self.session.begin_nested():
            for item in await self.preview(template_id, module_prefix):
                if item["exists"]:
                    skipped.append({"name": item["name"], "reason": "Permission already exists"})
                    continue
                created.append(
                    await self.permissions.create(
                        Permission(
                            name=item["name"],
                            display_name=item["display_name"],
                            description=item["description"],
                            module=module_prefix,
                            type=item["type"],
                            is_system=False,
                        )
                    )
                )

        logger.info(
            "permission_template_applied",
            template_id=str(template.id),
            module=module_prefix,
            created=len(created),
            skipped=len(skipped),
        )
        return {"module_prefix": module_prefix, "created": created, "skipped": skipped}

    async def create_from_permissions(self, data: TemplateFromPermissions) -> PermissionTemplate:
        """Build a template from existing permissions.

        Raises:
            NotFoundError: If a permission id is unknown
            ConflictError: If the name is taken
        """
        permissions = await self.permissions.get_many(list(set(data.permission_ids)))
        missing = set(data.permission_ids) - {p.id for p in permissions}
        if missing:
            raise NotFoundError(
                "Permission not found",
                resource="permission",
                resource_id=str(sorted(missing, key=str)[0]),
            )
        await self._ensure_name_available(data.name)

        entries = [
            {
                "action": p.name.rsplit(".", 1)[-1],
                "display_name": p.display_name,
                "description": p.description,
                "type": p.type,
            }
            for p in permissions
            if not p.name.endswith("*")
        ]
        return await self._store(
            data.name, data.display_name, data.description, data.module, entries
        )

    async def duplicate(self, template_id: UUID, data: TemplateDuplicate) -> PermissionTemplate:
        """Copy a template under a new name; copies are never system templates."""
        source = await self.get(template_id)
        await self._ensure_name_available(data.name)
        return await self._store(
            data.name,
            data.display_name or f"{source.display_name} (copy)",
            source.description,
            data.module or source.module,
            [dict(entry) for entry in source.permissions],
        )

    async def export_template(self, template_id: UUID) -> dict[str, Any]:
        template = await self.get(template_id)
        return {
            "name": template.name,
            "display_name": template.display_name,
            "description": template.description,
            "module": template.module,
            "permissions": template.permissions,
            "exported_at": datetime.now(UTC).isoformat(),
            "version": TEMPLATE_EXPORT_VERSION,
        }

    async def import_template(self, document: dict[str, Any]) -> PermissionTemplate:
        """Create a template from an exported document.

        A name that is already taken gets an ``_imported_<timestamp>`` suffix.

        Raises:
            InvalidImportDocumentError: If the document is not a valid template
        """
        try:
            data = TemplateCreate.model_validate(document)
        except PydanticValidationError as exc:
            raise InvalidImportDocumentError(
                "Import document is not a valid permission template",
                details={
                    "errors": [
                        {"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"]}
                        for e in exc.errors()
                    ]
                },
            ) from exc

        name = data.name
        if await self.templates.get_by_name(name):
            suffix = f"_imported_{int(datetime.now(UTC).timestamp())}"
            name = name[: 100 - len(suffix)] + suffix

        template = await self._store(
            name,
            data.display_name,
            data.description,
            data.module,
            [entry.model_dump() for entry in data.permissions],
        )
        logger.info("permission_template_imported", template_id=str(template.id), name=name)
        return template


TemplateSvc = Annotated[PermissionTemplateService, Depends(PermissionTemplateService)]
