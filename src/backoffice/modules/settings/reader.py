"""Typed, cached access to runtime settings.

Used by auth, sessions and the activity log to read operator-tunable
values such as ``security.login_max_attempts``.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.cache import RedisCache
from backoffice.core.constants import SETTINGS_CACHE_TTL
from backoffice.core.errors import UnknownSettingError
from backoffice.modules.settings.crypto import decrypt_value
from backoffice.modules.settings.definitions import get_registry
from backoffice.modules.settings.models import Setting


settings_cache = RedisCache(prefix="settings:")


class SettingsReader:
    """Resolve setting values: cache, then database, then definition default.

    Values are memoized for the lifetime of the reader, so create one per
    request or job. Secret values are never written to the cache.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.registry = get_registry()
        self._memo: dict[str, Any] = {}

    async def get(self, key: str) -> Any:
        """Effective value of a setting.

        Raises:
            UnknownSettingError: If the key is not a defined setting
        """
        if key in self._memo:
            return self._memo[key]

        definition = self.registry.get(key)
        if definition is None:
            raise UnknownSettingError(key)

        if not definition.is_secret:
            cached = await settings_cache.get_json(key)
            if cached is not None:
                self._memo[key] = cached["value"]
                return cached["value"]

        result = await self.session.execute(select(Setting).where(Setting.key == key))
        row = result.scalar_one_or_none()
        value = definition.default if row is None else row.value
        if row is not None and row.is_encrypted and value:
            value = decrypt_value(value)

        if not definition.is_secret:
            await settings_cache.set_json(key, {"value": value}, SETTINGS_CACHE_TTL)
        self._memo[key] = value
        return value

    async def get_many(self, keys: list[str]) -> dict[str, Any]:
        return {key: await self.get(key) for key in keys}

    async def get_int(self, key: str) -> int:
        value = await self.get(key)
        return int(value) if value not in (None, "") else 0

    async def get_bool(self, key: str) -> bool:
        return bool(await self.get(key))

    async def get_str(self, key: str) -> str:
        value = await self.get(key)
        return "" if value is None else str(value)

    def forget(self, key: str | None = None) -> None:
        """Drop memoized values after a write."""
        if key is None:
            self._memo.clear()
        else:
            self._memo.pop(key, None)


async def invalidate_setting(key: str) -> None:
    await settings_cache.delete(key)
