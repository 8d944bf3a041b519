"""Authentication schemas for token handling."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class TokenData(BaseModel):
    """Data extracted from a JWT token.

    Attributes:
        user_id: The user's UUID
        session_id: Login session the token was issued for
        exp: Token expiration time
        type: Token type (access or refresh)
        jti: Unique token ID
    """

    user_id: UUID
    session_id: UUID
    exp: datetime
    type: str = "access"
    jti: str | None = None


class TokenPair(BaseModel):
    """A pair of access and refresh tokens.

    Attributes:
        access_token: Short-lived JWT for API access
        refresh_token: Long-lived token for getting new access tokens
        token_type: Always "bearer"
        expires_in: Access token expiration in seconds
        session_id: Login session both tokens belong to
    """

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    session_id: UUID
