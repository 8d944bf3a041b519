"""JSON encoding for cached values and exported documents.

Cache entries must come back with their Python types, so ``serialize``
tags UUIDs, datetimes, dates and sets. Documents written for people or
other systems (exports, backups) use ``json_default``, which renders the
same types as plain strings.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel


def json_default(obj: Any) -> Any:
    """``default=`` hook for ``json.dumps`` producing untagged output."""
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, UUID | Decimal):
        return str(obj)
    if isinstance(obj, datetime | date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, set | frozenset):
        return sorted(obj, key=str)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class CacheEncoder(json.JSONEncoder):
    """Tags non-JSON types so ``deserialize`` can restore them.

    Pydantic models are stored as plain dicts; the caller rebuilds them.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return {"__uuid__": str(obj)}
        if isinstance(obj, datetime):
            return {"__datetime__": obj.isoformat()}
        if isinstance(obj, date):
            return {"__date__": obj.isoformat()}
        if isinstance(obj, set | frozenset):
            return {"__set__": sorted(obj, key=str)}
        return json_default(obj)


_DECODERS = {
    "__uuid__": UUID,
    "__datetime__": datetime.fromisoformat,
    "__date__": date.fromisoformat,
    "__set__": set,
}


def serialize(value: Any) -> str:
    return json.dumps(value, cls=CacheEncoder)


def deserialize(data: str) -> Any:
    return json.loads(data, object_hook=_decode_hook)


def _decode_hook(obj: dict[str, Any]) -> Any:
    if len(obj) == 1:
        tag, value = next(iter(obj.items()))
        decoder = _DECODERS.get(tag)
        if decoder is not None:
            return decoder(value)
    return obj
