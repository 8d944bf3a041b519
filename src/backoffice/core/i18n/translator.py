"""Translation catalogs loaded from YAML.

Catalogs live in ``locales/<locale>.yaml`` as nested mappings and are
flattened to dotted keys on first use::

    errors:
      not_found: Resource not found

becomes ``errors.not_found``. Placeholders use the ``:name`` form.
"""

import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import structlog
import yaml

from backoffice.config import settings
from backoffice.core.i18n.context import get_locale


logger = structlog.get_logger()

LOCALES_DIR = Path(__file__).parent / "locales"

_PLACEHOLDER = re.compile(r":([a-zA-Z_][a-zA-Z0-9_]*)")


def _flatten(data: dict[str, Any], prefix: str = "") -> dict[str, str]:
    flat: dict[str, str] = {}
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(_flatten(value, full_key))
        else:
            flat[full_key] = str(value)
    return flat


@lru_cache
def load_catalog(locale: str) -> dict[str, str]:
    """Load and flatten the catalog for a locale.

    Args:
        locale: Locale name, e.g. ``en`` or ``zh_TW``

    Returns:
        Mapping of dotted keys to messages (empty if no catalog exists)
    """
    path = LOCALES_DIR / f"{locale}.yaml"
    if not path.exists():
        logger.warning("translation_catalog_missing", locale=locale)
        return {}

    with path.open(encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    catalog = _flatten(data)
    logger.debug("translation_catalog_loaded", locale=locale, keys=len(catalog))
    return catalog


def has_translation(key: str, locale: str | None = None) -> bool:
    """Check whether a key exists in the locale or fallback catalog."""
    locale = locale or get_locale()
    return key in load_catalog(locale) or key in load_catalog(settings.fallback_locale)


def translate(key: str, locale: str | None = None, **params: Any) -> str:
    """Translate a message key.

    Lookup order is the requested locale, then the fallback locale, then
    the key itself.

    Args:
        key: Dotted message key
        locale: Locale override (defaults to the request locale)
        **params: Values substituted for ``:name`` placeholders

    Returns:
        The translated message
    """
    locale = locale or get_locale()
    message = load_catalog(locale).get(key)
    if message is None:
        message = load_catalog(settings.fallback_locale).get(key, key)

    if params:
        message = _PLACEHOLDER.sub(
            lambda m: str(params[m.group(1)]) if m.group(1) in params else m.group(0),
            message,
        )
    return message


# Short alias used across routes and services
_ = translate
