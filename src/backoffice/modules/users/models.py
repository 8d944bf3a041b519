"""User database models."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.constants import (
    MAX_EMAIL_LENGTH,
    MAX_IPV6_LENGTH,
    MAX_LOCALE_LENGTH,
    MAX_NAME_LENGTH,
    MAX_USER_AGENT_LENGTH,
    MAX_USERNAME_LENGTH,
    SHA256_HEX_LENGTH,
)
from backoffice.core.database.base import AuditMixin, Base, TimestampMixin, UUIDMixin
from backoffice.core.database.types import UTCDateTime


if TYPE_CHECKING:
    from backoffice.core.permissions.models import Role


class User(Base, UUIDMixin, TimestampMixin, AuditMixin):
    """User model representing an administrator account.

    Attributes:
        email: Unique email address used to sign in
        username: Unique short handle shown in activity logs
        password_hash: Bcrypt-hashed password
        full_name: User's full name
        is_active: Whether the user can log in
        is_superuser: Whether the user bypasses permission checks
        locale: Preferred UI locale (None means negotiate per request)
        last_login_at: Time of the last successful login
        last_login_ip: Address of the last successful login
        password_changed_at: When the password was last set
    """

    __tablename__ = "users"
    __audit_exclude__ = ("password_hash",)

    email: Mapped[str] = mapped_column(
        String(MAX_EMAIL_LENGTH),
        nullable=False,
        unique=True,
        index=True,
    )
    username: Mapped[str] = mapped_column(
        String(MAX_USERNAME_LENGTH),
        nullable=False,
        unique=True,
        index=True,
    )
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    full_name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_superuser: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    locale: Mapped[str | None] = mapped_column(String(MAX_LOCALE_LENGTH), nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_login_ip: Mapped[str | None] = mapped_column(
        String(MAX_IPV6_LENGTH), nullable=True
    )
    password_changed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    # Relationships
    roles: Mapped[list["Role"]] = relationship(
        "Role",
        secondary="user_roles",
        back_populates="users",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class RefreshToken(Base, UUIDMixin, TimestampMixin):
    """Refresh token for JWT authentication.

    Every login starts a session; refresh tokens rotate within it and
    keep the same ``session_id`` so the session can be listed and revoked
    as a unit.

    Attributes:
        user_id: The user this token belongs to
        session_id: Login session the token belongs to
        token_hash: SHA-256 hash of the refresh token
        expires_at: When the token expires
        revoked: Whether the token has been revoked
        user_agent: The client user agent that created the token
        ip_address: The IP address that created the token
        last_used_at: When the token was last exchanged
    """

    __tablename__ = "refresh_tokens"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    session_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    token_hash: Mapped[str] = mapped_column(
        String(SHA256_HEX_LENGTH),
        nullable=False,
        unique=True,
        index=True,
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    user_agent: Mapped[str | None] = mapped_column(
        String(MAX_USER_AGENT_LENGTH),
        nullable=True,
    )
    ip_address: Mapped[str | None] = mapped_column(
        String(MAX_IPV6_LENGTH),
        nullable=True,
    )
    last_used_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<RefreshToken(id={self.id}, user_id={self.user_id}, revoked={self.revoked})>"
