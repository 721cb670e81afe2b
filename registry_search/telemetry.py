"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus metrics: query latency/errors, cache hit ratio, blob fetches

Metrics are exposed on their own port so the catch-all object route keeps
ownership of every HTTP path on the main listener.
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import Counter, Histogram, start_http_server

from registry_search.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
QUERY_LATENCY = Histogram(
    "query_latency_seconds",
    "Latency of entity store queries",
    ["operation"],  # 'search' or 'top_providers'
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

QUERY_ERRORS_TOTAL = Counter(
    "query_errors_total",
    "Entity store queries that failed and were answered with a 500",
    ["operation"],
)

CACHE_LOOKUPS_TOTAL = Counter(
    "response_cache_lookups_total",
    "Response cache lookups by outcome",
    ["result"],  # 'hit', 'miss' or 'error'
)

BLOB_FETCH_TOTAL = Counter(
    "blob_fetch_total",
    "Object store fetches by response status",
    ["status"],
)

DETACHED_TASK_FAILURES_TOTAL = Counter(
    "detached_task_failures_total",
    "Background tasks (cache store, connection teardown) that raised",
    ["task"],
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing() -> None:
    """Configure the global OTel TracerProvider with OTLP/Jaeger export."""
    if not settings.otel_enabled:
        logger.info("OTel tracing disabled")
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    try:
        otlp_exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info(
            "OTel tracing configured → %s", settings.otel_exporter_otlp_endpoint
        )
    except Exception as exc:
        logger.warning("Could not connect to OTLP exporter: %s — traces disabled", exc)

    trace.set_tracer_provider(provider)

    HTTPXClientInstrumentor().instrument()
    RedisInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument()


def start_metrics_server() -> None:
    """Serve /metrics for Prometheus on settings.metrics_port."""
    start_http_server(settings.metrics_port)
    logger.info("Prometheus metrics on :%s", settings.metrics_port)


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    FastAPIInstrumentor.instrument_app(app)
