"""
Registry Search API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Connect to Redis (shared response cache)
  3. Bind the S3-compatible blob store
  4. Expose Prometheus metrics on their own port

Entity store connections are not opened here: each query request builds
its own (see registry_search.database.get_connection).
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI

from registry_search.config import settings
from registry_search.edge import EdgeMiddleware
from registry_search.execution import ExecutionContext
from registry_search.telemetry import instrument_app, setup_tracing, start_metrics_server
from registry_search.clients.blob_client import init_blob_store
from registry_search.clients.redis_client import close_redis, init_redis
from registry_search.routers import objects, providers, search

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Bind the external cache / blob store and drain detached work on exit."""
    logger.info("Starting Registry Search API (env=%s)", settings.environment)

    await init_redis()
    init_blob_store()               # sync, boto3 is not async
    start_metrics_server()

    logger.info("Bindings ready. API ready.")
    yield

    logger.info("Shutting down...")
    await app.state.execution_context.drain()
    await close_redis()


app = FastAPI(
    title="Registry Search API",
    description=(
        "Search and static docs edge for the provider / module registry: "
        "multi-signal entity ranking plus object store fallback."
    ),
    version="1.0.0",
    lifespan=lifespan,
    # every unmatched path belongs to the object store
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)
app.state.execution_context = ExecutionContext()

# ── Edge protocol (GET-only, response cache, CORS) ─────────────────────────
app.add_middleware(EdgeMiddleware)

# ── Routers: API routes first, object catch-all last ──────────────────────
app.include_router(search.router, tags=["Search"])
app.include_router(providers.router, prefix="/providers", tags=["Providers"])
app.include_router(objects.router, tags=["Objects"])

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)
