"""Password policy driven by the ``security.*`` runtime settings."""

import re
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.constants import MAX_PASSWORD_LENGTH
from backoffice.core.errors import ValidationError
from backoffice.modules.settings.reader import SettingsReader


if TYPE_CHECKING:
    from backoffice.modules.users.models import User


# Complexity rules: (setting flag, regex pattern, human-readable name)
PASSWORD_COMPLEXITY_RULES: list[tuple[str, str, str]] = [
    ("security.password_require_uppercase", r"[A-Z]", "uppercase letter"),
    ("security.password_require_lowercase", r"[a-z]", "lowercase letter"),
    ("security.password_require_numbers", r"\d", "digit"),
    (
        "security.password_require_symbols",
        r"[!@#$%^&*(),.?\":{}|<>\[\]\\;'`~_+\-=/]",
        "special character",
    ),
]


class PasswordPolicy:
    """Checks new passwords against the configured rules."""

    def __init__(self, session: AsyncSession) -> None:
        self.reader = SettingsReader(session)

    async def problems(self, password: str) -> list[str]:
        """Human-readable reasons the password is rejected (empty if valid)."""
        problems = []
        min_length = await self.reader.get_int("security.password_min_length")
        if len(password) < min_length:
            problems.append(f"Password must be at least {min_length} characters")
        if len(password) > MAX_PASSWORD_LENGTH:
            problems.append(f"Password must be at most {MAX_PASSWORD_LENGTH} characters")

        missing = [
            name
            for flag, pattern, name in PASSWORD_COMPLEXITY_RULES
            if await self.reader.get_bool(flag) and not re.search(pattern, password)
        ]
        if len(missing) == 1:
            problems.append(f"Password must contain at least one {missing[0]}")
        elif missing:
            problems.append(f"Password must contain at least one: {', '.join(missing)}")
        return problems

    async def validate(self, password: str, field: str = "password") -> None:
        """Raise ValidationError unless the password satisfies the policy.

        Raises:
            ValidationError: With one error entry per broken rule
        """
        problems = await self.problems(password)
        if problems:
            raise ValidationError(
                "Password does not meet the password policy",
                error_code="weak_password",
                errors=[{"field": field, "message": message} for message in problems],
            )

    async def is_expired(self, user: "User") -> bool:
        """True when password expiry is enabled and the password is too old."""
        expiry_days = await self.reader.get_int("security.password_expiry_days")
        if expiry_days <= 0:
            return False
        changed_at = user.password_changed_at or user.created_at
        return datetime.now(UTC) - changed_at > timedelta(days=expiry_days)
