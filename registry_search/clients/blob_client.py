"""
S3-compatible object store client for pre-built documentation assets.

The registry docs (index pages, rendered provider/module JSON) are
published to a bucket by the build pipeline. This client only reads.
When no bucket is configured the store binding is considered absent.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

from registry_search.config import settings

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

_s3 = None


class BlobStoreNotConfigured(RuntimeError):
    """No bucket is bound to this deployment."""


@dataclass
class StoredObject:
    key: str
    body: bytes
    content_type: str


def init_blob_store() -> None:
    """Create the S3 client when a bucket is configured."""
    global _s3
    if not settings.blob_bucket:
        logger.warning("No blob bucket configured — object routes will return 500")
        return
    _s3 = boto3.client(
        "s3",
        endpoint_url=settings.blob_endpoint,
        aws_access_key_id=settings.blob_access_key,
        aws_secret_access_key=settings.blob_secret_key,
        config=Config(signature_version="s3v4"),
        region_name=settings.blob_region,
    )
    logger.info("Blob store bound to bucket '%s'", settings.blob_bucket)


def get_s3():
    if _s3 is None:
        raise BlobStoreNotConfigured("Blob store not initialised — no bucket bound")
    return _s3


def get_object(key: str) -> Optional[StoredObject]:
    """
    Fetch `key` from the bucket.
    Returns None when the object does not exist; other store errors raise.
    """
    s3 = get_s3()
    if not key:
        return None
    try:
        obj = s3.get_object(Bucket=settings.blob_bucket, Key=key)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code in ("NoSuchKey", "404", "NotFound"):
            return None
        raise

    return StoredObject(
        key=key,
        body=obj["Body"].read(),
        content_type=obj.get("ContentType") or DEFAULT_CONTENT_TYPE,
    )
