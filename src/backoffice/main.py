"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError

from backoffice import __version__
from backoffice.api import get_api_router
from backoffice.config import settings
from backoffice.core.audit import AuditContextMiddleware, setup_audit_listeners
from backoffice.core.auth import AuthContextMiddleware, RequestIdMiddleware
from backoffice.core.cache import close_redis_pool
from backoffice.core.errors import register_exception_handlers
from backoffice.core.i18n import LocaleMiddleware
from backoffice.core.jobs import close_arq_pool, init_arq_pool
from backoffice.core.logging import RequestLoggingMiddleware, configure_logging
from backoffice.core.observability import setup_tracing, shutdown_tracing
from backoffice.core.rate_limit import RateLimitMiddleware


configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler.

    Handles startup and shutdown events.
    """
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        environment=settings.environment,
    )

    # Jobs are optional at startup; enqueueing reports the missing pool later
    try:
        await init_arq_pool()
        logger.info("arq_pool_initialized")
    except (RedisError, OSError) as e:
        logger.warning("arq_pool_init_failed", error=str(e))

    yield

    logger.info("application_shutdown")

    shutdown_tracing()
    await close_arq_pool()
    await close_redis_pool()
    logger.info("application_shutdown_complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title=settings.app_name,
        description="Administration backend: users, roles, permissions and activity logs",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
    )

    setup_audit_listeners()

    # Starlette runs the last added middleware first
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(LocaleMiddleware)
    app.add_middleware(AuditContextMiddleware)
    app.add_middleware(AuthContextMiddleware)
    app.add_middleware(RequestIdMiddleware)

    cors_origins = settings.cors_origins
    if settings.is_development and not cors_origins:
        cors_origins = ["http://localhost:3000", "http://localhost:5173"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID", "Accept-Language"],
        expose_headers=["Content-Language", "X-Request-ID", "Retry-After"],
    )

    register_exception_handlers(app)

    app.include_router(get_api_router())

    setup_tracing(app)

    return app

