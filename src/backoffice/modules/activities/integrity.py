"""HMAC signatures that make tampering with activity rows detectable."""

import hashlib
import hmac
import json
from datetime import datetime
from typing import Any

from backoffice.config import settings


SIGNED_FIELDS = (
    "type",
    "description",
    "module",
    "user_id",
    "subject_type",
    "subject_id",
    "properties",
    "ip_address",
    "result",
    "risk_level",
    "created_at",
)


def _canonical(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    if value is None or isinstance(value, str | int | float | bool | dict | list):
        return value
    return str(value)


def canonical_payload(fields: dict[str, Any]) -> str:
    """Stable JSON encoding of the signed fields."""
    data = {name: _canonical(fields.get(name)) for name in SIGNED_FIELDS}
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def sign(fields: dict[str, Any]) -> str:
    return hmac.new(
        settings.signing_key.encode(),
        canonical_payload(fields).encode(),
        hashlib.sha256,
    ).hexdigest()


def verify(activity: Any) -> bool:
    """Check a stored activity (live or archived) against its signature."""
    if not activity.signature:
        return False
    fields = {name: getattr(activity, name) for name in SIGNED_FIELDS}
    return hmac.compare_digest(activity.signature, sign(fields))
