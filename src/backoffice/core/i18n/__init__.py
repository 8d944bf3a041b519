"""Internationalization: translation catalogs and locale negotiation."""

from backoffice.core.i18n.context import get_locale, normalize_locale, set_locale
from backoffice.core.i18n.middleware import LocaleMiddleware, parse_accept_language
from backoffice.core.i18n.translator import has_translation, load_catalog, translate


__all__ = [
    "LocaleMiddleware",
    "get_locale",
    "has_translation",
    "load_catalog",
    "normalize_locale",
    "parse_accept_language",
    "set_locale",
    "translate",
]
