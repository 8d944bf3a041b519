"""Database layer - session management, base models, and mixins."""

from backoffice.core.database.base import (
    AuditMixin,
    Base,
    TimestampMixin,
    UUIDMixin,
    utcnow,
)
from backoffice.core.database.session import (
    async_engine,
    async_session_factory,
    get_db,
    make_engine,
    make_session_factory,
)
from backoffice.core.database.types import JSONType, UTCDateTime


__all__ = [
    "AuditMixin",
    "Base",
    "JSONType",
    "TimestampMixin",
    "UTCDateTime",
    "UUIDMixin",
    "async_engine",
    "async_session_factory",
    "get_db",
    "make_engine",
    "make_session_factory",
    "utcnow",
]
