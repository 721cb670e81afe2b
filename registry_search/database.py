"""
Per-request entity store connection + schema bootstrap.

Request handlers never share a connection: get_connection() opens one for
the request and hands its teardown to the ExecutionContext, so closing it
never delays the response.

init_db() is only used by the index loader; the request path is read-only.
"""
import logging
from typing import AsyncIterator

from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import DeclarativeBase

from registry_search.clients.db_client import QueryableConnection, get_client
from registry_search.config import Settings, get_settings
from registry_search.execution import ExecutionContext, get_execution_context

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


async def init_db(engine: AsyncEngine) -> None:
    """Enable pg_trgm and create all tables if they don't exist (idempotent)."""
    import registry_search.models  # noqa: F401  registers tables on Base

    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS pg_trgm"))
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Entity store schema initialised")


async def get_connection(
    settings: Settings = Depends(get_settings),
    ctx: ExecutionContext = Depends(get_execution_context),
) -> AsyncIterator[QueryableConnection]:
    """FastAPI dependency that yields a connected client for one request."""
    client = get_client(
        settings.environment,
        settings.database_url,
        timeout=settings.query_timeout_seconds,
    )
    try:
        await client.connect()
        yield client
    finally:
        ctx.wait_until(client.end(), name="connection_teardown")
