"""
Entity search endpoint — GET /search?q=<text>
(also served as GET /registry/docs/search for the docs site)

Returns up to 5 providers followed by up to 5 modules, each group ordered
by composite rank. See registry_search.query for the scoring.
"""
import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Response
from opentelemetry import trace

from registry_search.clients.db_client import QueryableConnection
from registry_search.config import Settings, get_settings
from registry_search.database import get_connection
from registry_search.edge import INTERNAL_ERROR_MESSAGE
from registry_search.query import search
from registry_search.schemas import SearchResult
from registry_search.telemetry import QUERY_ERRORS_TOTAL, QUERY_LATENCY
from registry_search.validation import validate_search_request

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.get("/search", response_model=list[SearchResult])
@router.get("/registry/docs/search", response_model=list[SearchResult])
async def search_entities(
    response: Response,
    q: str = Depends(validate_search_request),
    conn: QueryableConnection = Depends(get_connection),
    settings: Settings = Depends(get_settings),
):
    with tracer.start_as_current_span("search_entities") as span:
        span.set_attribute("search.query", q)
        t0 = time.perf_counter()

        try:
            results = await search(conn, q, bucket_size=settings.search_bucket_size)
        except Exception:
            QUERY_ERRORS_TOTAL.labels(operation="search").inc()
            logger.exception("Search query failed (q=%r)", q)
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR_MESSAGE)

        QUERY_LATENCY.labels(operation="search").observe(time.perf_counter() - t0)
        span.set_attribute("search.results", len(results))

        response.headers["Cache-Control"] = f"public, max-age={settings.query_cache_max_age}"
        return results
