"""Unit tests for translation lookup and locale negotiation."""

import pytest

from backoffice.core.i18n.context import get_locale, normalize_locale, set_locale
from backoffice.core.i18n.translator import has_translation, load_catalog, translate


@pytest.fixture(autouse=True)
def reset_locale():
    yield
    set_locale(None)


class TestTranslate:
    """Tests for translate."""

    def test_translates_into_requested_locale(self):
        assert translate("errors.not_found", locale="en") == "Resource not found"
        assert translate("errors.not_found", locale="zh_TW") == "找不到資源"

    def test_uses_request_locale(self):
        set_locale("en")
        assert get_locale() == "en"
        assert translate("errors.not_found") == "Resource not found"

    def test_unknown_locale_falls_back(self):
        assert translate("errors.not_found", locale="fr") == "Resource not found"

    def test_unknown_key_returns_key(self):
        assert translate("errors.no_such_message", locale="en") == "errors.no_such_message"
        assert has_translation("errors.no_such_message") is False

    def test_placeholders(self):
        message = translate("errors.rate_limit_exceeded", locale="en", retry_after=30)
        assert message == "Too many requests. Try again in 30 seconds."

    def test_catalogs_cover_the_same_keys(self):
        """Every English message has a Traditional Chinese counterpart."""
        assert set(load_catalog("en")) == set(load_catalog("zh_TW"))


class TestNormalizeLocale:
    @pytest.mark.parametrize(
        ("tag", "expected"),
        [
            ("en", "en"),
            ("en-US", "en"),
            ("zh-tw", "zh_TW"),
            ("zh_TW", "zh_TW"),
            ("zh", "zh_TW"),
            ("fr", None),
            ("", None),
            (None, None),
        ],
    )
    def test_normalize(self, tag, expected):
        assert normalize_locale(tag) == expected
