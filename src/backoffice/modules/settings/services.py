"""Settings service for business logic."""

from datetime import UTC, datetime
from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import Depends

from backoffice.api.dependencies import DBSession
from backoffice.core.audit import get_audit_context
from backoffice.core.errors import (
    InvalidImportDocumentError,
    NotFoundError,
    UnknownSettingError,
    ValidationError,
)
from backoffice.modules.activities.logger import ActivityLogger
from backoffice.modules.settings.crypto import decrypt_value, encrypt_value
from backoffice.modules.settings.definitions import (
    MASKED_VALUE,
    SettingDefinition,
    dependencies_satisfied,
    get_registry,
    validate_value,
)
from backoffice.modules.settings.models import Setting, SettingBackup, SettingChange
from backoffice.modules.settings.reader import SettingsReader, invalidate_setting
from backoffice.modules.settings.repos import (
    SettingBackupRepository,
    SettingChangeRepository,
    SettingRepository,
)


logger = structlog.get_logger()

EXPORT_VERSION = "1.0"


class SettingsService:
    """Service for reading, changing and backing up runtime settings.

    Every change is validated against the definitions registry, recorded
    in the change history and the activity log, and evicted from cache.
    """

    def __init__(self, session: DBSession) -> None:
        self.session = session
        self.registry = get_registry()
        self.repo = SettingRepository(session)
        self.changes = SettingChangeRepository(session)
        self.backups = SettingBackupRepository(session)
        self.reader = SettingsReader(session)
        self.activity = ActivityLogger(session)

    def _definition(self, key: str) -> SettingDefinition:
        definition = self.registry.get(key)
        if definition is None:
            raise UnknownSettingError(key)
        return definition

    @staticmethod
    def _stored_value(row: Setting | None, definition: SettingDefinition) -> Any:
        if row is None:
            return definition.default
        if row.is_encrypted and row.value:
            return decrypt_value(row.value)
        return row.value

    async def _effective_values(self) -> dict[str, Any]:
        rows = await self.repo.get_many()
        return {
            key: self._stored_value(rows.get(key), definition)
            for key, definition in self.registry.definitions.items()
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all(self, category: str | None = None) -> list[dict[str, Any]]:
        """Definitions merged with stored values, in display order.

        Secret values are masked.
        """
        if category is not None and category not in self.registry.categories:
            raise NotFoundError(
                f"Unknown settings category '{category}'",
                resource="settings_category",
                resource_id=category,
            )

        rows = await self.repo.get_many()
        values = {
            key: self._stored_value(rows.get(key), definition)
            for key, definition in self.registry.definitions.items()
        }

        items = []
        for key in self.registry.keys(category):
            definition = self.registry.definitions[key]
            value = values[key]
            row = rows.get(key)
            items.append(
                {
                    "key": key,
                    "category": definition.category,
                    "type": definition.type,
                    "value": MASKED_VALUE if definition.is_secret and value else value,
                    "default": MASKED_VALUE
                    if definition.is_secret and definition.default
                    else definition.default,
                    "description": definition.description,
                    "rules": definition.rules.model_dump(exclude_none=True),
                    "depends_on": definition.depends_on,
                    "is_default": value == definition.default,
                    "is_enabled": dependencies_satisfied(definition, values),
                    "updated_at": row.updated_at if row else None,
                }
            )
        return items

    def get_categories(self) -> list[dict[str, Any]]:
        counts: dict[str, int] = {}
        for definition in self.registry.definitions.values():
            counts[definition.category] = counts.get(definition.category, 0) + 1
        return [
            {
                "key": category.key,
                "name": category.label(),
                "icon": category.icon,
                "description": category.description,
                "order": category.order,
                "count": counts.get(category.key, 0),
            }
            for category in self.registry.ordered_categories()
        ]

    async def get_value(self, key: str) -> Any:
        """Effective value of a setting (cache, database, then default).

        Raises:
            UnknownSettingError: If the key is not defined
        """
        return await self.reader.get(key)

    async def get_display_value(self, key: str) -> Any:
        """Effective value as shown to API clients, with secrets masked."""
        definition = self._definition(key)
        value = await self.reader.get(key)
        return MASKED_VALUE if definition.is_secret and value else value

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _validate(
        self,
        proposed: dict[str, Any],
        current: dict[str, Any],
    ) -> None:
        merged = current | proposed
        for key in proposed:
            self._definition(key)

        # Settings gated by a changed flag are re-checked with their stored value
        dependents = [
            key
            for key, definition in self.registry.definitions.items()
            if key not in proposed and proposed.keys() & definition.depends_on.keys()
        ]
        errors = []
        for key in [*proposed, *dependents]:
            errors.extend(
                {"field": key, "message": message}
                for message in validate_value(self.registry.definitions[key], merged[key], merged)
            )
        if errors:
            raise ValidationError("Invalid setting values", errors=errors)

    async def _write(
        self,
        key: str,
        new_value: Any,
        reason: str | None = None,
    ) -> bool:
        """Store a value that has already been validated.

        Returns:
            False if the value was unchanged
        """
        definition = self._definition(key)
        row = await self.repo.get_by_key(key)
        old_value = self._stored_value(row, definition)
        if old_value == new_value:
            return False

        stored = encrypt_value(new_value) if definition.is_secret and new_value else new_value
        if row is None:
            row = Setting(
                key=key,
                value=stored,
                category=definition.category,
                type=definition.type,
                default_value=encrypt_value(definition.default)
                if definition.is_secret and definition.default
                else definition.default,
                description=definition.description,
                is_encrypted=definition.is_secret,
                sort_order=definition.order,
            )
            await self.repo.create(row)
        else:
            row.value = stored
            await self.repo.update(row)

        context = get_audit_context()
        await self.changes.create(
            SettingChange(
                setting_key=key,
                old_value=MASKED_VALUE if definition.is_secret else old_value,
                new_value=MASKED_VALUE if definition.is_secret else new_value,
                changed_by=context.get("user_id"),
                ip_address=context.get("ip_address"),
                reason=reason,
            )
        )
        await invalidate_setting(key)
        self.reader.forget(key)

        await self.activity.log_setting_changed(
            key, old_value, new_value, category=definition.category, secret=definition.is_secret
        )
        logger.info("setting_changed", key=key, category=definition.category)
        return True

    def _drop_masked(self, values: dict[str, Any]) -> dict[str, Any]:
        # A masked secret coming back from a form means "keep the current value"
        return {
            key: value
            for key, value in values.items()
            if not (self._definition(key).is_secret and value == MASKED_VALUE)
        }

    async def update_setting(
        self,
        key: str,
        value: Any,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """Validate and store one setting.

        Raises:
            UnknownSettingError: If the key is not defined
            ValidationError: If the value breaks the definition's rules
        """
        self._definition(key)
        proposed = self._drop_masked({key: value})
        changed = False
        if proposed:
            self._validate(proposed, await self._effective_values())
            changed = await self._write(key, value, reason)
        return {"key": key, "changed": changed}

    async def batch_update(
        self,
        values: dict[str, Any],
        reason: str | None = None,
    ) -> dict[str, Any]:
        """Validate every value first, then store them all.

        Nothing is written when any value is invalid.
        """
        proposed = self._drop_masked(values)
        self._validate(proposed, await self._effective_values())
        changed = [key for key, value in proposed.items() if await self._write(key, value, reason)]
        return {"updated": changed, "unchanged": sorted(set(values) - set(changed))}

    async def reset_setting(self, key: str) -> bool:
        definition = self._definition(key)
        return await self._write(key, definition.default, reason="reset to default")

    async def reset_category(self, category: str) -> list[str]:
        if category not in self.registry.categories:
            raise NotFoundError(
                f"Unknown settings category '{category}'",
                resource="settings_category",
                resource_id=category,
            )
        return [key for key in self.registry.keys(category) if await self.reset_setting(key)]

    async def get_changes(
        self,
        key: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[SettingChange], int]:
        if key is not None:
            self._definition(key)
        return await self.changes.list_changes(key, page, page_size)

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    async def create_backup(self, name: str, description: str | None = None) -> SettingBackup:
        """Snapshot every effective value. Secrets stay encrypted."""
        values = await self._effective_values()
        data = {}
        for key, value in values.items():
            definition = self.registry.definitions[key]
            if definition.is_secret and value:
                data[key] = {"value": encrypt_value(value), "encrypted": True}
            else:
                data[key] = {"value": value, "encrypted": False}

        backup = await self.backups.create(
            SettingBackup(
                name=name,
                description=description,
                settings_data=data,
                created_by=get_audit_context().get("user_id"),
            )
        )
        logger.info("settings_backup_created", backup_id=str(backup.id), settings=len(data))
        return backup

    async def list_backups(self) -> list[SettingBackup]:
        return await self.backups.list_backups()

    async def _get_backup(self, backup_id: UUID) -> SettingBackup:
        backup = await self.backups.get_by_id(backup_id)
        if backup is None:
            raise NotFoundError(
                "Settings backup not found",
                resource="setting_backup",
                resource_id=str(backup_id),
            )
        return backup

    async def restore_backup(self, backup_id: UUID) -> dict[str, Any]:
        """Restore every setting from a backup, recording each change.

        Keys no longer defined are skipped.
        """
        backup = await self._get_backup(backup_id)
        restored, skipped = [], []
        for key, entry in backup.settings_data.items():
            if self.registry.get(key) is None:
                skipped.append(key)
                continue
            value = decrypt_value(entry["value"]) if entry.get("encrypted") else entry["value"]
            if await self._write(key, value, reason=f"restored from backup '{backup.name}'"):
                restored.append(key)

        logger.info("settings_backup_restored", backup_id=str(backup_id), restored=len(restored))
        return {"restored": restored, "skipped": skipped}

    async def delete_backup(self, backup_id: UUID) -> None:
        await self.backups.delete(await self._get_backup(backup_id))

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    async def export_settings(self, categories: list[str] | None = None) -> dict[str, Any]:
        """Export effective values as a JSON document. Secrets are left out."""
        values = await self._effective_values()
        exported = {
            key: {
                "value": values[key],
                "category": definition.category,
                "type": definition.type,
            }
            for key, definition in self.registry.definitions.items()
            if not definition.is_secret
            and (not categories or definition.category in categories)
        }

        await self.activity.log_data_export(
            "settings", {"categories": categories or [], "total": len(exported)}
        )
        return {
            "export_info": {
                "version": EXPORT_VERSION,
                "exported_at": datetime.now(UTC).isoformat(),
                "categories": categories or [],
                "total": len(exported),
            },
            "settings": exported,
        }

    async def import_settings(
        self,
        document: dict[str, Any],
        overwrite: bool = True,
    ) -> dict[str, Any]:
        """Import values from an ``export_settings`` document.

        Every entry is validated before anything is stored. Secrets and
        unknown keys are skipped; without ``overwrite`` values that differ
        from the default are kept.

        Raises:
            InvalidImportDocumentError: If the document has no ``settings`` mapping
            ValidationError: If any imported value is invalid
        """
        entries = document.get("settings")
        if not isinstance(entries, dict):
            raise InvalidImportDocumentError(
                "Import document must contain a 'settings' object",
            )

        current = await self._effective_values()
        proposed: dict[str, Any] = {}
        skipped: list[str] = []
        for key, entry in entries.items():
            definition = self.registry.get(key)
            value = entry.get("value") if isinstance(entry, dict) else entry
            if definition is None or definition.is_secret:
                skipped.append(key)
            elif not overwrite and current[key] != definition.default:
                skipped.append(key)
            else:
                proposed[key] = value

        self._validate(proposed, current)
        updated = [key for key, value in proposed.items() if await self._write(key, value, "import")]

        await self.activity.log_data_import(
            "settings", {"updated": len(updated), "skipped": len(skipped)}
        )
        return {
            "updated": updated,
            "unchanged": sorted(set(proposed) - set(updated)),
            "skipped": skipped,
        }


# Type alias for dependency injection
SettingsSvc = Annotated[SettingsService, Depends(SettingsService)]
