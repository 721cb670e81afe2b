"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Optional

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # ── Entity store (Postgres) ────────────────────────────────────────────
    database_url: Optional[str] = None
    # "dev" → local TCP connection, anything else → edge SQL-over-HTTP
    environment: str = "production"
    # None keeps queries unbounded
    query_timeout_seconds: Optional[float] = None

    # ── Response cache (Redis) ─────────────────────────────────────────────
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0
    response_cache_enabled: bool = True

    # ── Blob store (S3-compatible) ─────────────────────────────────────────
    blob_endpoint: Optional[str] = None   # None → AWS default endpoint
    blob_access_key: Optional[str] = None
    blob_secret_key: Optional[str] = None
    blob_region: str = "auto"
    blob_bucket: str = ""                 # empty → store binding absent

    # ── HTTP caching directives ────────────────────────────────────────────
    query_cache_max_age: int = 300        # 5 min for search / top providers
    object_cache_max_age: int = 3600      # 1 h for static objects

    # ── Ranking ────────────────────────────────────────────────────────────
    search_bucket_size: int = 5           # per type family
    top_providers_max_limit: int = 500

    # ── Observability ──────────────────────────────────────────────────────
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "registry-search"
    metrics_port: int = 9108

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency returning the process settings."""
    return settings
