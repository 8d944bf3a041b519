"""Authentication module for JWT, passwords and session security."""

from backoffice.core.auth.backend import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    hash_token,
    verify_password,
)
from backoffice.core.auth.dependencies import (
    CurrentToken,
    CurrentUser,
    get_current_user,
)
from backoffice.core.auth.middleware import AuthContextMiddleware, RequestIdMiddleware
from backoffice.core.auth.schemas import TokenData, TokenPair
from backoffice.core.auth.service import AuthService
from backoffice.core.auth.session import SessionTracker, session_tracker
from backoffice.core.auth.routes import router as auth_router


__all__ = [
    # Middleware
    "AuthContextMiddleware",
    # Service
    "AuthService",
    # Dependencies
    "CurrentToken",
    "CurrentUser",
    "RequestIdMiddleware",
    # Sessions
    "SessionTracker",
    # Schemas
    "TokenData",
    "TokenPair",
    # Routers
    "auth_router",
    # Token utilities
    "create_access_token",
    "create_refresh_token",
    "decode_token",
    "get_current_user",
    # Password utilities
    "hash_password",
    "hash_token",
    "session_tracker",
    "verify_password",
]
