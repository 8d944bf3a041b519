"""Credential primitives: bcrypt passwords, session-bound JWTs and opaque refresh tokens.

Every access token carries the login session it was issued for in the
``sid`` claim. A token without a session, or of another type, does not
authenticate; the session layer decides whether the session is still alive.
"""

import hashlib
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from jose import JWTError, jwt
from passlib.context import CryptContext

from backoffice.config import settings
from backoffice.core.auth.schemas import TokenData
from backoffice.core.constants import ACCESS_TOKEN_JTI_LENGTH, BCRYPT_ROUNDS


ACCESS_TOKEN_TYPE = "access"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(
    user_id: UUID,
    session_id: UUID,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign an access token for ``user_id`` inside login session ``session_id``.

    Args:
        user_id: Subject of the token
        session_id: Session the token is bound to
        expires_delta: Lifetime override, defaults to
            ``settings.access_token_expire_minutes``

    Returns:
        Encoded JWT
    """
    issued_at = datetime.now(UTC)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims: dict[str, Any] = {
        "sub": str(user_id),
        "sid": str(session_id),
        "type": ACCESS_TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + lifetime,
        "jti": secrets.token_urlsafe(ACCESS_TOKEN_JTI_LENGTH),
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> TokenData | None:
    """Verify an access token and return its claims, or None when unusable.

    Expired, tampered, foreign-key and non-access tokens are all None.
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        if payload.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
            return None
        return TokenData(
            user_id=UUID(payload["sub"]),
            session_id=UUID(payload["sid"]),
            exp=datetime.fromtimestamp(payload["exp"], tz=UTC),
            jti=payload.get("jti"),
        )
    except (JWTError, KeyError, TypeError, ValueError):
        return None


def create_refresh_token() -> str:
    """Random refresh token; only its hash is persisted."""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """SHA-256 hex digest used to look up stored refresh tokens."""
    return hashlib.sha256(token.encode()).hexdigest()


def refresh_token_expiry(days: int | None = None) -> datetime:
    """Absolute expiry for a refresh token issued now."""
    return datetime.now(UTC) + timedelta(days=days or settings.refresh_token_expire_days)
