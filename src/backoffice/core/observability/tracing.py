"""OpenTelemetry tracing configuration.

Instruments FastAPI requests, SQLAlchemy queries and Redis calls when an
OTLP endpoint is configured, or prints spans to the console in debug mode.
"""

import structlog
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from backoffice import __version__
from backoffice.config import settings


log = structlog.get_logger()


def setup_tracing(app: FastAPI) -> bool:
    """Configure tracing for the application.

    Args:
        app: The FastAPI application instance to instrument

    Returns:
        True if tracing was enabled
    """
    if settings.otlp_endpoint:
        exporter = OTLPSpanExporter(
            endpoint=settings.otlp_endpoint,
            insecure=not settings.otlp_endpoint.startswith("https"),
        )
        exporter_name = "otlp"
    elif settings.debug:
        exporter = ConsoleSpanExporter()
        exporter_name = "console"
    else:
        log.info("tracing_disabled", reason="no OTLP_ENDPOINT configured")
        return False

    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.app_name.lower().replace(" ", "-"),
                "service.version": __version__,
                "deployment.environment": settings.environment,
            }
        )
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(
        app,
        excluded_urls="health/.*,docs,redoc,openapi.json",
    )
    RedisInstrumentor().instrument()

    # Async engines are instrumented through their sync core
    from backoffice.core.database import async_engine

    SQLAlchemyInstrumentor().instrument(engine=async_engine.sync_engine)

    log.info("tracing_configured", exporter=exporter_name)
    return True


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer for manual spans, e.g. around retention batches."""
    return trace.get_tracer(name)


def shutdown_tracing() -> None:
    """Flush pending spans on shutdown."""
    provider = trace.get_tracer_provider()
    if isinstance(provider, TracerProvider):
        provider.shutdown()
        log.info("tracing_shutdown_complete")
