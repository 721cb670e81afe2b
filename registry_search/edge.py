"""
Edge request protocol applied to every route.

  1. Only GET is served; anything else is answered 405 before routing.
  2. The shared response cache is consulted with the normalised request
     (method + URL). A hit is returned as-is without touching the routes.
  3. On a miss the request is routed. A 200 response is copied into the
     cache in the background; the client never waits for the write.
  4. Permissive CORS headers are set on every outgoing response, cache hits
     and errors included.

Unhandled route errors become an opaque 500 here so they still carry CORS.
"""
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import PlainTextResponse, Response

from registry_search.clients.redis_client import (
    CachedResponse,
    cache_key,
    match_response,
    put_response,
)
from registry_search.telemetry import CACHE_LOOKUPS_TOTAL

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An internal server error occurred"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET",
}


def with_cors(response: Response) -> Response:
    for name, value in CORS_HEADERS.items():
        response.headers[name] = value
    return response


class EdgeMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.method != "GET":
            return with_cors(PlainTextResponse("Method Not Allowed", status_code=405))

        key = cache_key(request.method, str(request.url))
        cached = await self._lookup(key)
        if cached is not None:
            return with_cors(
                Response(
                    content=cached.body,
                    status_code=cached.status_code,
                    headers=dict(cached.headers),
                )
            )

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error for %s %s", request.method, request.url.path)
            return with_cors(PlainTextResponse(INTERNAL_ERROR_MESSAGE, status_code=500))

        if response.status_code == 200:
            body = b"".join([chunk async for chunk in response.body_iterator])
            response = Response(
                content=body,
                status_code=response.status_code,
                headers=dict(response.headers),
            )
            ctx = request.app.state.execution_context
            ctx.wait_until(
                put_response(
                    key,
                    CachedResponse(200, list(response.headers.items()), body),
                ),
                name="cache_store",
            )

        return with_cors(response)

    async def _lookup(self, key: str):
        try:
            cached = await match_response(key)
        except Exception as exc:
            # A broken cache degrades to a miss
            CACHE_LOOKUPS_TOTAL.labels(result="error").inc()
            logger.warning("Response cache lookup failed: %s", exc)
            return None
        CACHE_LOOKUPS_TOTAL.labels(result="hit" if cached else "miss").inc()
        return cached
