"""Root API router: health probes, app info and the ``/api/v1`` modules."""

from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from backoffice import __version__
from backoffice.api.dependencies import DBSession
from backoffice.config import settings
from backoffice.core.audit.routes import router as audit_router
from backoffice.core.auth import auth_router
from backoffice.core.cache import redis_client
from backoffice.core.i18n.routes import router as i18n_router
from backoffice.core.jobs import queue_status
from backoffice.modules import discover_modules


class HealthResponse(BaseModel):
    status: str


class ReadinessResponse(BaseModel):
    """``checks`` decide readiness; ``jobs`` is reported but never fails it."""

    status: str
    checks: dict[str, str]
    jobs: str


health_router = APIRouter(tags=["health"])


@health_router.get("/health/live", response_model=HealthResponse, summary="Liveness probe")
async def liveness() -> HealthResponse:
    return HealthResponse(status="alive")


@health_router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    description="Checks database and Redis connectivity. Returns 503 when either fails.",
)
async def readiness(db: DBSession) -> JSONResponse:
    checks: dict[str, str] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as e:
        checks["database"] = str(e)

    try:
        async with redis_client() as client:
            await client.ping()
        checks["redis"] = "ok"
    except (RedisError, OSError) as e:
        checks["redis"] = str(e)

    ready = all(v == "ok" for v in checks.values())
    body = ReadinessResponse(
        status="ready" if ready else "degraded", checks=checks, jobs=queue_status()
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(),
    )


@health_router.get("/info", summary="Application info")
async def info() -> dict[str, Any]:
    return {
        "app": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "default_locale": settings.default_locale,
        "supported_locales": settings.supported_locales,
    }


v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(auth_router)
v1_router.include_router(audit_router)
v1_router.include_router(i18n_router)
for module_router in discover_modules():
    v1_router.include_router(module_router)

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(v1_router)
