"""Unit tests for setting definitions and validation."""

import pytest

from backoffice.modules.settings.crypto import (
    SettingDecryptionError,
    decrypt_value,
    encrypt_value,
)
from backoffice.modules.settings.definitions import (
    dependencies_satisfied,
    get_registry,
    validate_value,
)


@pytest.fixture
def registry():
    return get_registry()


class TestRegistry:
    """Tests for the packaged settings registry."""

    def test_every_setting_belongs_to_a_known_category(self, registry):
        assert {d.category for d in registry.definitions.values()} <= set(registry.categories)

    def test_keys_follow_category_then_setting_order(self, registry):
        keys = registry.keys("security")
        assert keys[0] == "security.password_min_length"
        assert keys.index("security.login_max_attempts") < keys.index(
            "security.session_lifetime"
        )

    def test_password_settings_are_secret(self, registry):
        assert registry.get("notification.smtp_password").is_secret
        assert not registry.get("notification.smtp_host").is_secret

    def test_unknown_key(self, registry):
        assert registry.get("no.such.setting") is None


class TestValidateValue:
    """Tests for validate_value."""

    def test_number_bounds(self, registry):
        definition = registry.get("security.password_min_length")

        assert validate_value(definition, 10, {}) == []
        assert validate_value(definition, 5, {}) == ["Must be at least 6"]
        assert validate_value(definition, 21, {}) == ["Must be at most 20"]
        assert validate_value(definition, "10", {}) == ["Must be an integer"]
        assert validate_value(definition, True, {}) == ["Must be an integer"]

    def test_required_value(self, registry):
        definition = registry.get("notification.from_name")
        assert validate_value(definition, "", {}) == ["This setting is required"]

    def test_required_only_when_dependency_holds(self, registry):
        """SMTP host is only required while mail is enabled."""
        definition = registry.get("notification.smtp_host")

        assert validate_value(definition, "", {"notification.email_enabled": False}) == []
        assert validate_value(definition, "", {"notification.email_enabled": True}) == [
            "This setting is required"
        ]
        assert dependencies_satisfied(definition, {"notification.email_enabled": True})

    def test_select_options(self, registry):
        definition = registry.get("notification.smtp_encryption")

        assert validate_value(definition, "ssl", {}) == []
        assert validate_value(definition, "starttls", {}) == ["Must be one of: none, ssl, tls"]

    def test_email_and_color(self, registry):
        email = registry.get("notification.from_email")
        color = registry.get("appearance.primary_color")

        assert validate_value(email, "ops@example.com", {}) == []
        assert validate_value(email, "not-an-email", {}) == ["Must be a valid email address"]
        assert validate_value(color, "#1A2B3C", {}) == []
        assert validate_value(color, "blue", {}) == ["Must be a hex colour like #1A2B3C"]

    def test_boolean(self, registry):
        definition = registry.get("security.force_https")

        assert validate_value(definition, False, {}) == []
        assert validate_value(definition, "yes", {}) == ["Must be true or false"]


class TestSecretEncryption:
    def test_round_trip(self):
        token = encrypt_value("s3cret")

        assert token != "s3cret"
        assert decrypt_value(token) == "s3cret"

    def test_foreign_token_is_rejected(self):
        with pytest.raises(SettingDecryptionError):
            decrypt_value("gAAAAAB-not-a-valid-token")
