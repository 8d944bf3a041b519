"""Request-scoped locale storage."""

from contextvars import ContextVar

from backoffice.config import settings


_current_locale: ContextVar[str | None] = ContextVar("current_locale", default=None)


def get_locale() -> str:
    """Return the locale of the current request, or the default locale."""
    return _current_locale.get() or settings.default_locale


def set_locale(locale: str | None) -> None:
    _current_locale.set(locale)


def normalize_locale(value: str | None) -> str | None:
    """Map a language tag onto a supported locale.

    ``zh-tw``, ``zh_TW`` and bare ``zh`` resolve to ``zh_TW``; ``en-US``
    resolves to ``en``. Unsupported tags return None.

    Args:
        value: Raw language tag from a header, query parameter or profile

    Returns:
        The supported locale name, or None
    """
    if not value:
        return None

    tag = value.strip().replace("-", "_")
    if not tag:
        return None

    supported = {loc.lower(): loc for loc in settings.supported_locales}
    lowered = tag.lower()
    if lowered in supported:
        return supported[lowered]

    language = lowered.split("_", 1)[0]
    if language in supported:
        return supported[language]

    # Bare language matches the first supported regional variant
    for key, loc in supported.items():
        if key.split("_", 1)[0] == language:
            return loc

    return None
