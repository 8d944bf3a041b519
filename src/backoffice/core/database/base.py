"""SQLAlchemy declarative base and common mixins."""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from backoffice.core.database.types import UTCDateTime


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class UUIDMixin:
    """Mixin that adds a UUID primary key."""

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
        index=True,
    )


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class AuditMixin:
    """Marker mixin to enable automatic audit logging.

    Models that inherit from this mixin will have their changes
    automatically captured in the audit log when they are created,
    updated, or deleted.

    The SQLAlchemy event listeners in backoffice.core.audit.middleware
    check for the __audit__ attribute to determine if a model
    should be audited. Attribute names listed in ``__audit_exclude__``
    (or returned by an overridden ``audit_excluded``) are never written
    to the log.

    Example:
        class Role(Base, UUIDMixin, TimestampMixin, AuditMixin):
            __tablename__ = "roles"
            name: Mapped[str] = mapped_column(String(100))
    """

    # Marker attribute checked by audit middleware
    __audit__: bool = True
    __audit_exclude__: tuple[str, ...] = ()

    def audit_excluded(self) -> tuple[str, ...]:
        """Attributes never written to the audit log for this instance."""
        return self.__audit_exclude__
