"""User factory for tests."""

from datetime import UTC, datetime
from uuid import uuid4

from polyfactory.factories.sqlalchemy_factory import SQLAlchemyFactory

from backoffice.core.auth.backend import hash_password
from backoffice.modules.users.models import User


TEST_PASSWORD = "Secure1Password"

# Hashing is slow; every factory user shares one hash of TEST_PASSWORD
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


class UserFactory(SQLAlchemyFactory[User]):
    """Factory for creating test User instances."""

    __model__ = User
    __set_relationships__ = False

    @classmethod
    def id(cls):
        return uuid4()

    @classmethod
    def email(cls) -> str:
        """Generate a unique email."""
        return f"user-{uuid4().hex[:8]}@example.com"

    @classmethod
    def username(cls) -> str:
        return f"user_{uuid4().hex[:8]}"

    @classmethod
    def full_name(cls) -> str:
        return f"Test User {uuid4().hex[:4]}"

    @classmethod
    def password_hash(cls) -> str:
        return TEST_PASSWORD_HASH

    @classmethod
    def is_active(cls) -> bool:
        return True

    @classmethod
    def is_superuser(cls) -> bool:
        return False

    @classmethod
    def locale(cls) -> None:
        return None

    @classmethod
    def last_login_at(cls) -> None:
        return None

    @classmethod
    def last_login_ip(cls) -> None:
        return None

    @classmethod
    def password_changed_at(cls) -> datetime:
        return datetime.now(UTC)

    @classmethod
    def created_at(cls) -> datetime:
        return datetime.now(UTC)

    @classmethod
    def updated_at(cls) -> datetime:
        return datetime.now(UTC)
