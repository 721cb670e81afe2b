"""
Static object fallback — any GET that is not an API route.

  GET /                    → index.html
  GET /registry/docs/<key> → <key>
  GET /<key>               → <key>

Objects come from the blob store with their stored content type and a
one-hour cache directive. Routes are sync: boto3 is blocking, so FastAPI
runs them in its threadpool.
"""
import logging

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Depends, HTTPException, Response
from opentelemetry import trace

from registry_search.clients.blob_client import BlobStoreNotConfigured, get_object
from registry_search.config import Settings, get_settings
from registry_search.edge import INTERNAL_ERROR_MESSAGE
from registry_search.telemetry import BLOB_FETCH_TOTAL

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)

REGISTRY_DOCS_PREFIX = "/registry/docs/"


def serve_object(key: str, settings: Settings) -> Response:
    with tracer.start_as_current_span("fetch_object") as span:
        span.set_attribute("object.key", key)
        try:
            obj = get_object(key)
        except BlobStoreNotConfigured:
            BLOB_FETCH_TOTAL.labels(status="500").inc()
            logger.error("Object requested (%s) but no blob store is bound", key)
            raise HTTPException(status_code=500, detail="Object store is not configured")
        except (BotoCoreError, ClientError):
            BLOB_FETCH_TOTAL.labels(status="500").inc()
            logger.exception("Object store fetch failed for %s", key)
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR_MESSAGE)

        if obj is None:
            BLOB_FETCH_TOTAL.labels(status="404").inc()
            raise HTTPException(status_code=404, detail="Not found")

        BLOB_FETCH_TOTAL.labels(status="200").inc()
        span.set_attribute("object.size", len(obj.body))
        return Response(
            content=obj.body,
            media_type=obj.content_type,
            headers={"Cache-Control": f"public, max-age={settings.object_cache_max_age}"},
        )


@router.get("/")
def index(settings: Settings = Depends(get_settings)):
    return serve_object("index.html", settings)


@router.get(REGISTRY_DOCS_PREFIX + "{key:path}")
def registry_docs_object(key: str, settings: Settings = Depends(get_settings)):
    return serve_object(key, settings)


@router.get("/{key:path}")
def object_fallback(key: str, settings: Settings = Depends(get_settings)):
    return serve_object(key, settings)
