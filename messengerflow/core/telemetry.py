"""OpenTelemetry tracing for the webhook, store and change bus paths."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from messengerflow import __version__
from messengerflow.config import settings

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

# Long-lived or noisy routes
EXCLUDED_URLS = "health,api/docs,api/redoc,api/openapi.json,api/v1/realtime"


def setup_telemetry(app: "FastAPI") -> bool:
    """Configure OpenTelemetry tracing for the FastAPI application.

    Returns True when tracing was enabled.
    """
    if not settings.OTEL_EXPORTER_OTLP_ENDPOINT:
        logger.info("Telemetry disabled: OTEL_EXPORTER_OTLP_ENDPOINT not configured")
        return False

    try:
        resource = Resource.create(
            {
                "service.name": settings.OTEL_SERVICE_NAME,
                "service.version": __version__,
                "deployment.environment": "development" if settings.DEBUG else "production",
                "messenger.graph_api_version": settings.FB_GRAPH_API_VERSION,
                "messengerflow.change_bus": settings.CHANGE_BUS_BACKEND,
            }
        )

        tracer_provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(tracer_provider)
        tracer_provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True)
            )
        )

        FastAPIInstrumentor.instrument_app(
            app,
            tracer_provider=tracer_provider,
            excluded_urls=EXCLUDED_URLS,
        )

        logger.info(
            f"Telemetry enabled: exporting to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}"
        )
        return True

    except Exception as e:
        logger.warning(f"Failed to setup telemetry: {e}")
        return False


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer instance for manual span creation."""
    return trace.get_tracer(name)


@contextmanager
def event_span(tracer: trace.Tracer, event: Any) -> Iterator[trace.Span]:
    """Span around applying one decoded platform event."""
    with tracer.start_as_current_span(f"messenger.event.{event.kind}") as span:
        span.set_attribute("messenger.page_id", event.page_id)
        span.set_attribute("messenger.customer_id", event.customer_id)
        yield span


def setup_all_instrumentation(app: "FastAPI") -> None:
    """Enable tracing and instrument the clients this service talks through.

    The Redis client is only instrumented when the change bus runs on Redis.
    """
    if not setup_telemetry(app):
        return

    HTTPXClientInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument(enable_commenter=True)
    instrumented = ["httpx", "sqlalchemy"]
    if settings.CHANGE_BUS_BACKEND == "redis":
        RedisInstrumentor().instrument()
        instrumented.append("redis")
    logger.info(f"Instrumentation enabled: {', '.join(instrumented)}")
