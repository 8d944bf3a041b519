"""Rule condition matching and notification text.

Conditions (all optional, all must hold):

- ``activity_types``: list of activity types
- ``min_risk_level``: minimum risk level
- ``modules``: list of modules
- ``user_ids``: list of acting user ids
- ``ip_pattern`` / ``ip_patterns``: exact address, ``*`` wildcard or CIDR
- ``time_range``: ``{"start": "HH:MM", "end": "HH:MM"}``, may cross midnight
- ``results``: list of results (success, failed, warning)
"""

import fnmatch
import ipaddress
from datetime import datetime, time
from typing import Any

from backoffice.modules.activities.models import Activity
from backoffice.modules.notifications.models import PRIORITY_NAMES


def matches_ip(ip: str | None, pattern: str) -> bool:
    """Match an address against an exact, wildcard or CIDR pattern."""
    if not ip:
        return False
    if "/" in pattern:
        try:
            return ipaddress.ip_address(ip) in ipaddress.ip_network(pattern, strict=False)
        except ValueError:
            return False
    if "*" in pattern:
        return fnmatch.fnmatchcase(ip, pattern)
    return ip == pattern


def _parse_time(value: str) -> time:
    hour, _, minute = value.partition(":")
    return time(int(hour), int(minute or 0))


def within_time_range(moment: datetime, time_range: dict[str, str]) -> bool:
    """Check ``moment`` against a daily window; ``22:00``-``06:00`` spans midnight."""
    start = _parse_time(time_range.get("start", "00:00"))
    end = _parse_time(time_range.get("end", "23:59"))
    current = moment.time().replace(second=0, microsecond=0)
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


def failed_conditions(conditions: dict[str, Any], activity: Activity) -> list[str]:
    """Names of the conditions the activity does not satisfy.

    An empty list means the rule matches.
    """
    failed: list[str] = []

    if types := conditions.get("activity_types"):
        if activity.type not in types:
            failed.append("activity_types")

    min_risk = conditions.get("min_risk_level")
    if min_risk is not None and activity.risk_level < int(min_risk):
        failed.append("min_risk_level")

    if modules := conditions.get("modules"):
        if activity.module not in modules:
            failed.append("modules")

    if user_ids := conditions.get("user_ids"):
        if str(activity.user_id) not in {str(u) for u in user_ids}:
            failed.append("user_ids")

    patterns = list(conditions.get("ip_patterns") or [])
    if conditions.get("ip_pattern"):
        patterns.append(conditions["ip_pattern"])
    if patterns and not any(matches_ip(activity.ip_address, p) for p in patterns):
        failed.append("ip_pattern")

    if time_range := conditions.get("time_range"):
        if not within_time_range(activity.created_at, time_range):
            failed.append("time_range")

    if results := conditions.get("results"):
        if activity.result not in results:
            failed.append("results")

    return failed


def matches(conditions: dict[str, Any], activity: Activity) -> bool:
    return not failed_conditions(conditions, activity)


def priority_for(activity: Activity, rule_priority: int | None = None) -> str:
    """Notification priority from the rule, or derived from the risk level."""
    if rule_priority in PRIORITY_NAMES:
        return PRIORITY_NAMES[rule_priority]
    if activity.risk_level >= 8:
        return "urgent"
    if activity.risk_level >= 6:
        return "high"
    if activity.risk_level >= 3:
        return "normal"
    return "low"


DEFAULT_TITLE = "Activity alert: {activity_type}"
DEFAULT_MESSAGE = "{user} performed {activity_type} at {time}: {description}"


def render(template: str, activity: Activity, user_name: str | None = None) -> str:
    """Fill ``{activity_type}``, ``{user}``, ``{time}``, ``{description}``,
    ``{ip_address}`` and ``{risk_level}`` placeholders; unknown ones are left as-is.
    """
    values = {
        "activity_type": activity.type,
        "user": user_name or "System",
        "time": activity.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        "description": activity.description,
        "ip_address": activity.ip_address or "",
        "risk_level": str(activity.risk_level),
    }
    for key, value in values.items():
        template = template.replace("{" + key + "}", value)
    return template
