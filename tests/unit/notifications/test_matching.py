"""Unit tests for notification rule matching."""

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from backoffice.modules.activities.models import Activity
from backoffice.modules.notifications.matching import (
    failed_conditions,
    matches,
    matches_ip,
    priority_for,
    render,
    within_time_range,
)



def _activity(**overrides) -> Activity:
    fields = {
        "id": uuid4(),
        "type": "login_failed",
        "description": "Failed login for ops@example.com",
        "module": "auth",
        "user_id": uuid4(),
        "ip_address": "10.0.0.42",
        "result": "failed",
        "risk_level": 6,
        "created_at": datetime(2026, 3, 1, 23, 15, tzinfo=UTC),
    }
    fields.update(overrides)
    return Activity(**fields)


class TestMatchesIp:
    @pytest.mark.parametrize(
        ("ip", "pattern", "expected"),
        [
            ("10.0.0.42", "10.0.0.42", True),
            ("10.0.0.42", "10.0.0.*", True),
            ("10.0.1.42", "10.0.0.*", False),
            ("10.0.0.42", "10.0.0.0/24", True),
            ("192.168.1.1", "10.0.0.0/8", False),
            ("not-an-ip", "10.0.0.0/8", False),
            (None, "10.0.0.42", False),
        ],
    )
    def test_patterns(self, ip, pattern, expected):
        assert matches_ip(ip, pattern) is expected


class TestTimeRange:
    def test_same_day_window(self):
        moment = datetime(2026, 1, 1, 10, 30)
        assert within_time_range(moment, {"start": "09:00", "end": "17:00"})
        assert not within_time_range(moment, {"start": "11:00", "end": "17:00"})

    def test_window_crossing_midnight(self):
        window = {"start": "22:00", "end": "06:00"}
        assert within_time_range(datetime(2026, 1, 1, 23, 0), window)
        assert within_time_range(datetime(2026, 1, 1, 5, 59), window)
        assert not within_time_range(datetime(2026, 1, 1, 12, 0), window)


class TestFailedConditions:
    def test_empty_conditions_match_everything(self):
        assert matches({}, _activity())

    def test_all_conditions_hold(self):
        activity = _activity()
        conditions = {
            "activity_types": ["login_failed"],
            "min_risk_level": 5,
            "modules": ["auth"],
            "user_ids": [str(activity.user_id)],
            "ip_patterns": ["10.0.0.0/24"],
            "time_range": {"start": "22:00", "end": "06:00"},
            "results": ["failed"],
        }
        assert failed_conditions(conditions, activity) == []

    def test_reports_each_failed_condition(self):
        conditions = {
            "activity_types": ["user_deleted"],
            "min_risk_level": 8,
            "ip_pattern": "192.168.*",
            "results": ["success"],
        }
        assert failed_conditions(conditions, _activity()) == [
            "activity_types",
            "min_risk_level",
            "ip_pattern",
            "results",
        ]


class TestPriorityAndRendering:
    def test_rule_priority_wins(self):
        assert priority_for(_activity(risk_level=9), 1) == "low"

    @pytest.mark.parametrize(
        ("risk", "expected"), [(9, "urgent"), (6, "high"), (3, "normal"), (1, "low")]
    )
    def test_priority_from_risk(self, risk, expected):
        assert priority_for(_activity(risk_level=risk)) == expected

    def test_render_fills_known_placeholders(self):
        text = render("{user} did {activity_type} from {ip_address} ({unknown})", _activity(), "Ops")
        assert text == "Ops did login_failed from 10.0.0.42 ({unknown})"

    def test_render_defaults_to_system_user(self):
        assert render("{user}", _activity()) == "System"
