"""Authentication service for login, lockout, and token management."""

from datetime import UTC, datetime
from typing import Annotated
from uuid import UUID, uuid4

import structlog
from fastapi import Depends

from backoffice.api.dependencies import DBSession
from backoffice.config import settings
from backoffice.core.auth.backend import (
    create_access_token,
    create_refresh_token,
    refresh_token_expiry,
    hash_password,
    hash_token,
    verify_password,
)
from backoffice.core.auth.password import PasswordPolicy
from backoffice.core.auth.schemas import TokenPair
from backoffice.core.auth.session import session_tracker
from backoffice.core.cache import RedisCache
from backoffice.core.errors import BadRequestError, RateLimitError, UnauthorizedError
from backoffice.modules.activities.logger import ActivityLogger
from backoffice.modules.settings.reader import SettingsReader
from backoffice.modules.users.models import RefreshToken, User
from backoffice.modules.users.repos import RefreshTokenRepository, UserRepository


logger = structlog.get_logger()

login_attempts = RedisCache(prefix="auth:failed:")
lockouts = RedisCache(prefix="auth:lockout:")


class AuthService:
    """Service for authentication operations.

    Handles login with brute-force lockout, token refresh, logout and
    password changes.
    """

    def __init__(self, db: DBSession) -> None:
        self.db = db
        self.user_repo = UserRepository(db)
        self.token_repo = RefreshTokenRepository(db)
        self.settings = SettingsReader(db)
        self.activity = ActivityLogger(db)

    async def _ensure_not_locked(self, email: str) -> None:
        if await lockouts.exists(email):
            retry_after = max(await lockouts.ttl(email), 1)
            raise RateLimitError(
                "Too many failed login attempts. Try again later.",
                error_code="account_locked",
                details={"retry_after": retry_after},
            )

    async def _record_failure(
        self,
        email: str,
        user: User | None,
        user_agent: str | None,
        ip_address: str | None,
    ) -> None:
        lockout_seconds = await self.settings.get_int("security.lockout_duration") * 60
        max_attempts = await self.settings.get_int("security.login_max_attempts")

        attempts = await login_attempts.incr(email, lockout_seconds)
        await self.activity.log_login_failed(
            email,
            attempts,
            user_id=user.id if user else None,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        if max_attempts and attempts >= max_attempts:
            await lockouts.set(email, "1", lockout_seconds)
            await login_attempts.delete(email)
            await self.activity.log_security_event(
                "account_locked",
                f"Account {email} locked after {attempts} failed logins",
                {"email": email, "failed_attempts": attempts},
                user_id=user.id if user else None,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            logger.warning("account_locked", email=email, attempts=attempts)

        # The failure must be recorded even though the request fails
        await self.db.commit()

    async def login(
        self,
        email: str,
        password: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> tuple[User, TokenPair]:
        """Authenticate a user with email and password.

        Args:
            email: User's email address
            password: Plain text password
            user_agent: Client user agent
            ip_address: Client IP address

        Returns:
            Tuple of (user, token_pair)

        Raises:
            RateLimitError: If the account is locked out
            UnauthorizedError: If credentials are invalid or the account is inactive
        """
        email = email.lower()
        await self._ensure_not_locked(email)

        user = await self.user_repo.get_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            await self._record_failure(email, user, user_agent, ip_address)
            raise UnauthorizedError(
                "Invalid email or password",
                error_code="invalid_credentials",
            )

        if not user.is_active:
            raise UnauthorizedError(
                "Account is deactivated",
                error_code="account_inactive",
            )

        await login_attempts.delete(email)

        session_id = uuid4()
        token_pair = await self._create_tokens(user, session_id, user_agent, ip_address)
        await session_tracker.start(session_id)

        user.last_login_at = datetime.now(UTC)
        user.last_login_ip = ip_address
        await self.user_repo.update(user)

        await self.activity.log_login(user.id, ip_address=ip_address, user_agent=user_agent)
        logger.info("user_logged_in", user_id=str(user.id), session_id=str(session_id))
        return user, token_pair

    async def refresh_tokens(
        self,
        refresh_token: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> TokenPair:
        """Rotate a refresh token within its session.

        The old refresh token is revoked and a new pair is issued with the
        same session id.

        Raises:
            UnauthorizedError: If refresh token is invalid, expired or revoked
        """
        stored_token = await self.token_repo.get_by_hash(hash_token(refresh_token))

        if not stored_token:
            raise UnauthorizedError(
                "Invalid refresh token",
                error_code="invalid_refresh_token",
            )

        if stored_token.expires_at < datetime.now(UTC):
            await self.token_repo.revoke(stored_token)
            await self.db.commit()
            raise UnauthorizedError(
                "Refresh token expired",
                error_code="token_expired",
            )

        user = await self.user_repo.get_by_id(stored_token.user_id)
        if not user or not user.is_active:
            await self.token_repo.revoke(stored_token)
            await self.db.commit()
            raise UnauthorizedError(
                "User not found or inactive",
                error_code="user_invalid",
            )

        await self.token_repo.revoke(stored_token)
        await session_tracker.touch(stored_token.session_id)
        return await self._create_tokens(user, stored_token.session_id, user_agent, ip_address)

    async def logout(self, refresh_token: str) -> None:
        """Revoke the refresh token and end its session."""
        stored_token = await self.token_repo.get_by_hash(hash_token(refresh_token))
        if stored_token:
            await self.token_repo.revoke(stored_token)
            await session_tracker.end(stored_token.session_id)
            await self.activity.log_logout(stored_token.user_id)

    async def logout_all(self, user_id: UUID) -> int:
        """Logout from all devices by revoking all refresh tokens.

        Returns:
            Number of sessions ended
        """
        sessions = await self.token_repo.revoke_all_for_user(user_id)
        for session_id in sessions:
            await session_tracker.end(session_id)
        await self.activity.log_logout(user_id, properties={"all_sessions": True})
        return len(sessions)

    async def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
    ) -> None:
        """Change a user's own password.

        Raises:
            BadRequestError: If the current password is wrong
            ValidationError: If the new password breaks the password policy
        """
        if not verify_password(current_password, user.password_hash):
            raise BadRequestError(
                "Current password is incorrect",
                error_code="invalid_current_password",
            )

        await PasswordPolicy(self.db).validate(new_password, field="new_password")

        user.password_hash = hash_password(new_password)
        user.password_changed_at = datetime.now(UTC)
        await self.user_repo.update(user)
        await self.activity.log_password_changed(user.id)
        logger.info("password_changed", user_id=str(user.id))

    async def _create_tokens(
        self,
        user: User,
        session_id: UUID,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> TokenPair:
        """Create a new token pair for a user within a session."""
        access_token = create_access_token(user.id, session_id)
        refresh_token = create_refresh_token()

        await self.token_repo.create(
            RefreshToken(
                user_id=user.id,
                session_id=session_id,
                token_hash=hash_token(refresh_token),
                expires_at=refresh_token_expiry(),
                user_agent=user_agent,
                ip_address=ip_address,
                last_used_at=datetime.now(UTC),
            )
        )

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=settings.access_token_expire_minutes * 60,
            session_id=session_id,
        )


# Type alias for dependency injection
AuthSvc = Annotated[AuthService, Depends(AuthService)]
