"""
Redis client wrapper — the shared HTTP response cache.

Responsibilities:
  • Cached responses — HASH keyed by resp:{method}:{url}
                        fields: status, headers (JSON), body (raw bytes)
                        TTL   = max-age of the response's Cache-Control

The edge middleware reads from it before routing and writes successful
(200) responses back in the background.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as aioredis

from registry_search.config import settings

logger = logging.getLogger(__name__)

_redis: Optional[aioredis.Redis] = None

_MAX_AGE = re.compile(r"max-age=(\d+)")


async def init_redis() -> None:
    global _redis
    if not settings.response_cache_enabled:
        logger.info("Response cache disabled")
        return
    _redis = aioredis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
    )
    await _redis.ping()
    logger.info("Redis connected at %s:%s", settings.redis_host, settings.redis_port)


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> Optional[aioredis.Redis]:
    """The cache binding, or None when the response cache is disabled."""
    return _redis


# ─────────────────────── Cached responses (HASH) ──────────────────────────

@dataclass
class CachedResponse:
    status_code: int
    headers: list[tuple[str, str]]
    body: bytes

    def ttl(self, default: int) -> int:
        for name, value in self.headers:
            if name.lower() == "cache-control":
                match = _MAX_AGE.search(value)
                if match:
                    return int(match.group(1))
        return default


def cache_key(method: str, url: str) -> str:
    return f"resp:{method.upper()}:{url}"


async def match_response(key: str) -> Optional[CachedResponse]:
    """Return the cached response stored under `key`, if any."""
    r = get_redis()
    if r is None:
        return None
    raw = await r.hgetall(key)
    if not raw:
        return None
    return CachedResponse(
        status_code=int(raw[b"status"]),
        headers=[tuple(h) for h in json.loads(raw[b"headers"])],
        body=raw[b"body"],
    )


async def put_response(key: str, cached: CachedResponse) -> None:
    r = get_redis()
    if r is None:
        return
    pipe = r.pipeline()
    pipe.hset(
        key,
        mapping={
            "status": cached.status_code,
            "headers": json.dumps(cached.headers),
            "body": cached.body,
        },
    )
    pipe.expire(key, cached.ttl(settings.query_cache_max_age))
    await pipe.execute()
