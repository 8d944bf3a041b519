"""User repository for database operations."""

from datetime import UTC, datetime
from typing import Annotated, Any
from uuid import UUID

from fastapi import Depends
from sqlalchemy import delete, func, or_, select, update

from backoffice.api.dependencies import DBSession
from backoffice.core.permissions.models import UserRole
from backoffice.modules.users.models import RefreshToken, User


USER_SORT_FIELDS = ("created_at", "email", "username", "full_name", "last_login_at")


class UserRepository:
    """Repository for User database operations."""

    def __init__(self, session: DBSession) -> None:
        self.session = session

    async def create(self, user: User) -> User:
        """Create a new user.

        Args:
            user: User instance to create

        Returns:
            The created user with ID populated
        """
        self.session.add(user)
        await self.session.flush()
        await self.session.refresh(user)
        return user

    async def get_by_id(self, user_id: UUID) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        """Get a user by email address (case-insensitive)."""
        stmt = select(User).where(func.lower(User.email) == email.lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_username(self, username: str) -> User | None:
        result = await self.session.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def list_users(
        self,
        filters: dict[str, Any] | None = None,
        page: int = 1,
        page_size: int = 20,
        sort: str = "-created_at",
    ) -> tuple[list[User], int]:
        """List users with filters and pagination.

        Args:
            filters: ``search`` (email, username, name), ``role_id`` and
                ``is_active``
            page: Page number (1-indexed)
            page_size: Number of items per page
            sort: Field name, prefixed with ``-`` for descending order

        Returns:
            Tuple of (users list, total count)
        """
        filters = filters or {}
        conditions = []
        if search := filters.get("search"):
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    User.email.ilike(pattern),
                    User.username.ilike(pattern),
                    User.full_name.ilike(pattern),
                )
            )
        if (is_active := filters.get("is_active")) is not None:
            conditions.append(User.is_active == is_active)
        if role_id := filters.get("role_id"):
            conditions.append(
                User.id.in_(select(UserRole.user_id).where(UserRole.role_id == role_id))
            )

        count_stmt = select(func.count()).select_from(User).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar_one()

        field = sort.lstrip("-")
        column = getattr(User, field if field in USER_SORT_FIELDS else "created_at")
        order = column.desc() if sort.startswith("-") else column.asc()
        stmt = (
            select(User)
            .where(*conditions)
            .order_by(order, User.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def update(self, user: User) -> User:
        await self.session.flush()
        await self.session.refresh(user)
        return user

    async def delete(self, user: User) -> None:
        await self.session.delete(user)
        await self.session.flush()


class RefreshTokenRepository:
    """Repository for RefreshToken database operations."""

    def __init__(self, session: DBSession) -> None:
        self.session = session

    async def create(self, token: RefreshToken) -> RefreshToken:
        self.session.add(token)
        await self.session.flush()
        await self.session.refresh(token)
        return token

    async def get_by_hash(self, token_hash: str) -> RefreshToken | None:
        """Get a refresh token by its hash.

        Args:
            token_hash: SHA-256 hash of the token

        Returns:
            RefreshToken if found and not revoked, None otherwise
        """
        stmt = select(RefreshToken).where(
            RefreshToken.token_hash == token_hash,
            RefreshToken.revoked == False,  # noqa: E712
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def revoke(self, token: RefreshToken) -> None:
        token.revoked = True
        await self.session.flush()

    async def revoke_all_for_user(self, user_id: UUID) -> list[UUID]:
        """Revoke all refresh tokens for a user.

        Returns:
            Session ids that had live tokens
        """
        return await self._revoke(RefreshToken.user_id == user_id)

    async def revoke_session(self, user_id: UUID, session_id: UUID) -> int:
        """Revoke every token of one session.

        Returns:
            Number of sessions revoked (0 or 1)
        """
        revoked = await self._revoke(
            RefreshToken.user_id == user_id, RefreshToken.session_id == session_id
        )
        return len(revoked)

    async def revoke_other_sessions(self, user_id: UUID, keep: UUID) -> list[UUID]:
        return await self._revoke(
            RefreshToken.user_id == user_id, RefreshToken.session_id != keep
        )

    async def _revoke(self, *conditions: Any) -> list[UUID]:
        stmt = select(RefreshToken.session_id).where(
            *conditions,
            RefreshToken.revoked == False,  # noqa: E712
        )
        sessions = sorted(set((await self.session.execute(stmt)).scalars().all()), key=str)
        if sessions:
            await self.session.execute(
                update(RefreshToken)
                .where(*conditions, RefreshToken.revoked == False)  # noqa: E712
                .values(revoked=True)
            )
            await self.session.flush()
        return sessions

    async def list_active_sessions(self, user_id: UUID) -> list[dict[str, Any]]:
        """Active sessions of a user, newest activity first.

        A session is active while it has an unrevoked, unexpired refresh
        token; the newest token carries the device info.
        """
        stmt = (
            select(RefreshToken)
            .where(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked == False,  # noqa: E712
                RefreshToken.expires_at > datetime.now(UTC),
            )
            .order_by(RefreshToken.created_at.desc())
        )
        tokens = (await self.session.execute(stmt)).scalars().all()

        sessions: dict[UUID, dict[str, Any]] = {}
        for token in tokens:
            entry = sessions.get(token.session_id)
            if entry is None:
                sessions[token.session_id] = {
                    "session_id": token.session_id,
                    "user_agent": token.user_agent,
                    "ip_address": token.ip_address,
                    "created_at": token.created_at,
                    "last_used_at": token.last_used_at or token.created_at,
                }
            else:
                entry["created_at"] = min(entry["created_at"], token.created_at)
        return sorted(sessions.values(), key=lambda s: s["last_used_at"], reverse=True)

    async def cleanup_expired(self, before: datetime) -> int:
        """Delete tokens that expired before ``before`` and all revoked tokens.

        Returns:
            Number of tokens deleted
        """
        result = await self.session.execute(
            delete(RefreshToken).where(
                or_(
                    RefreshToken.expires_at < before,
                    RefreshToken.revoked == True,  # noqa: E712
                )
            )
        )
        await self.session.flush()
        return result.rowcount or 0


# Type aliases for dependency injection
UserRepo = Annotated[UserRepository, Depends(UserRepository)]
RefreshTokenRepo = Annotated[RefreshTokenRepository, Depends(RefreshTokenRepository)]
