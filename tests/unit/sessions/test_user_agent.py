"""Unit tests for user agent classification."""

import pytest

from backoffice.modules.sessions.services import browser_name, device_type


CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)
EDGE = CHROME + " Edg/120.0"
IPHONE_SAFARI = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
IPAD_FIREFOX = "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) FxiOS/120.0 Mobile/15E148"


@pytest.mark.parametrize(
    ("user_agent", "browser", "device"),
    [
        (CHROME, "Chrome", "desktop"),
        (EDGE, "Edge", "desktop"),
        (IPHONE_SAFARI, "Safari", "mobile"),
        (IPAD_FIREFOX, "Firefox", "tablet"),
        ("curl/8.0", "Unknown", "desktop"),
        (None, "Unknown", "unknown"),
    ],
)
def test_classification(user_agent, browser, device):
    assert browser_name(user_agent) == browser
    assert device_type(user_agent) == device
