"""Unit tests for activity filtering, risk scoring and signatures."""

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from backoffice.core.constants import FILTERED_VALUE
from backoffice.modules.activities.integrity import sign, verify
from backoffice.modules.activities.logger import (
    filter_sensitive,
    security_risk_level,
    setting_risk_level,
)
from backoffice.modules.activities.models import Activity
from backoffice.modules.activities.policy import mask_ip


class TestFilterSensitive:
    def test_nested_values_are_filtered(self):
        data = {
            "email": "ops@example.com",
            "password": "hunter2",
            "nested": {"api_key": "abc", "name": "x"},
            "items": [{"access_token": "t"}],
        }

        assert filter_sensitive(data) == {
            "email": "ops@example.com",
            "password": FILTERED_VALUE,
            "nested": {"api_key": FILTERED_VALUE, "name": "x"},
            "items": [{"access_token": FILTERED_VALUE}],
        }

    def test_scalars_pass_through(self):
        assert filter_sensitive("plain") == "plain"


class TestRiskLevels:
    def test_security_risk_is_raised_by_context(self):
        assert security_risk_level("login_failed", {}) == 3
        assert security_risk_level("login_failed", {"failed_attempts": 6, "unknown_ip": True}) == 7

    def test_security_risk_is_capped(self):
        context = {"failed_attempts": 9, "unusual_time": True, "unknown_ip": True}
        assert security_risk_level("permission_escalation", context) == 10

    @pytest.mark.parametrize(
        ("key", "risk"),
        [
            ("security.session_lifetime", 7),
            ("notification.smtp_password", 7),
            ("app.name", 4),
            ("app.date_format", 2),
        ],
    )
    def test_setting_risk(self, key, risk):
        assert setting_risk_level(key) == risk


class TestMaskIp:
    @pytest.mark.parametrize(
        ("ip", "masked"),
        [
            ("10.1.2.3", "10.1.2.*"),
            ("2001:db8:85a3:0:0:8a2e:370:7334", "2001:db8:85a3:0:*"),
            (None, None),
        ],
    )
    def test_mask(self, ip, masked):
        assert mask_ip(ip) == masked


class TestIntegrity:
    def _activity(self) -> Activity:
        fields = {
            "type": "user_updated",
            "description": "Updated user",
            "module": "users",
            "user_id": uuid4(),
            "subject_type": "user",
            "subject_id": str(uuid4()),
            "properties": {"changed": ["email"]},
            "ip_address": "10.0.0.1",
            "result": "success",
            "risk_level": 2,
            "created_at": datetime(2026, 5, 1, 12, 0, tzinfo=UTC),
        }
        return Activity(**fields, signature=sign(fields))

    def test_untouched_row_verifies(self):
        assert verify(self._activity()) is True

    def test_tampered_row_fails(self):
        activity = self._activity()
        activity.risk_level = 1

        assert verify(activity) is False

    def test_unsigned_row_fails(self):
        activity = self._activity()
        activity.signature = None

        assert verify(activity) is False
