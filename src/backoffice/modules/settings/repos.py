"""Settings repositories for database operations."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends
from sqlalchemy import func, select

from backoffice.api.dependencies import DBSession
from backoffice.modules.settings.models import Setting, SettingBackup, SettingChange


class SettingRepository:
    """Repository for stored setting values."""

    def __init__(self, session: DBSession) -> None:
        self.session = session

    async def get_by_key(self, key: str) -> Setting | None:
        result = await self.session.execute(select(Setting).where(Setting.key == key))
        return result.scalar_one_or_none()

    async def get_many(self, keys: list[str] | None = None) -> dict[str, Setting]:
        """Stored rows keyed by setting key.

        Args:
            keys: Restrict to these keys (all rows when None)
        """
        stmt = select(Setting)
        if keys is not None:
            stmt = stmt.where(Setting.key.in_(keys))
        result = await self.session.execute(stmt)
        return {row.key: row for row in result.scalars().all()}

    async def create(self, setting: Setting) -> Setting:
        self.session.add(setting)
        await self.session.flush()
        return setting

    async def update(self, setting: Setting) -> Setting:
        await self.session.flush()
        return setting


class SettingChangeRepository:
    """Repository for the setting change history."""

    def __init__(self, session: DBSession) -> None:
        self.session = session

    async def create(self, change: SettingChange) -> SettingChange:
        self.session.add(change)
        await self.session.flush()
        return change

    async def list_changes(
        self,
        key: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[SettingChange], int]:
        """List changes newest first.

        Args:
            key: Only changes to this setting
            page: Page number (1-indexed)
            page_size: Number of items per page

        Returns:
            Tuple of (changes, total count)
        """
        count_stmt = select(func.count(SettingChange.id))
        stmt = select(SettingChange)
        if key:
            count_stmt = count_stmt.where(SettingChange.setting_key == key)
            stmt = stmt.where(SettingChange.setting_key == key)

        total = (await self.session.execute(count_stmt)).scalar_one()
        stmt = (
            stmt.order_by(SettingChange.created_at.desc(), SettingChange.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total


class SettingBackupRepository:
    """Repository for settings backups."""

    def __init__(self, session: DBSession) -> None:
        self.session = session

    async def create(self, backup: SettingBackup) -> SettingBackup:
        self.session.add(backup)
        await self.session.flush()
        return backup

    async def get_by_id(self, backup_id: UUID) -> SettingBackup | None:
        return await self.session.get(SettingBackup, backup_id)

    async def list_backups(self) -> list[SettingBackup]:
        result = await self.session.execute(
            select(SettingBackup).order_by(SettingBackup.created_at.desc())
        )
        return list(result.scalars().all())

    async def delete(self, backup: SettingBackup) -> None:
        await self.session.delete(backup)
        await self.session.flush()


# Type aliases for dependency injection
SettingRepo = Annotated[SettingRepository, Depends(SettingRepository)]
SettingChangeRepo = Annotated[SettingChangeRepository, Depends(SettingChangeRepository)]
SettingBackupRepo = Annotated[SettingBackupRepository, Depends(SettingBackupRepository)]
