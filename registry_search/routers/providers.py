"""
GET /providers/top?limit=<1..500> — most popular providers.
"""
import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from opentelemetry import trace

from registry_search.clients.db_client import QueryableConnection
from registry_search.config import Settings, get_settings
from registry_search.database import get_connection
from registry_search.edge import INTERNAL_ERROR_MESSAGE
from registry_search.query import top_providers
from registry_search.schemas import TopProvider
from registry_search.telemetry import QUERY_ERRORS_TOTAL, QUERY_LATENCY
from registry_search.validation import validate_top_providers_request

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


def _validated_limit(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> int:
    return validate_top_providers_request(request, max_limit=settings.top_providers_max_limit)


@router.get("/top", response_model=list[TopProvider])
async def get_top_providers(
    response: Response,
    limit: int = Depends(_validated_limit),
    conn: QueryableConnection = Depends(get_connection),
    settings: Settings = Depends(get_settings),
):
    with tracer.start_as_current_span("top_providers") as span:
        span.set_attribute("providers.limit", limit)
        t0 = time.perf_counter()

        try:
            providers = await top_providers(conn, limit)
        except Exception:
            QUERY_ERRORS_TOTAL.labels(operation="top_providers").inc()
            logger.exception("Top providers query failed (limit=%d)", limit)
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR_MESSAGE)

        QUERY_LATENCY.labels(operation="top_providers").observe(time.perf_counter() - t0)

        response.headers["Cache-Control"] = f"public, max-age={settings.query_cache_max_age}"
        return providers
