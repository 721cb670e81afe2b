#!/usr/bin/env python3
"""
Index loader — refreshes the entities table from the registry search feed.

The feed is newline-delimited JSON:
  line 1   {"type": "header", "header": {"last_updated": ...}}
  line 2+  {"type": "add",    "addition": {...entity...}}
           {"type": "delete", "deletion": {"id": ..., "deleted_at": ...}}

A run is skipped when another import is still in progress or when the last
successful import started after the feed was last updated. Otherwise all
items are applied in batches inside a single transaction and the run is
recorded in import_jobs. An unfinished job older than STALE_JOB_AFTER
belongs to a run that was killed and no longer blocks new imports.

Run:
  registry-search-load --database-url postgresql://... --batch-size 1000
"""
import argparse
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Optional

import httpx
from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from registry_search.clients.db_client import asyncpg_url
from registry_search.config import settings
from registry_search.database import init_db
from registry_search.models import Entity, ImportJob
from registry_search.schemas import FeedHeader, FeedLine, IndexItem

logger = logging.getLogger(__name__)

DEFAULT_FEED_URL = "https://api.opentofu.org/registry/docs/search.ndjson"

# an unfinished job older than this is a run that died without recording its outcome
STALE_JOB_AFTER = timedelta(hours=6)


# ─────────────────────────── Feed parsing ────────────────────────────────

def read_header(line: str) -> FeedHeader:
    parsed = FeedLine.model_validate_json(line)
    if parsed.type != "header" or parsed.header is None:
        raise ValueError(f"expected header type, got {parsed.type}")
    return parsed.header


def split_batch(lines: list[str]) -> tuple[list[IndexItem], list[str]]:
    """Return (items to upsert, ids to delete); unknown item types are skipped."""
    # one row per id: a single INSERT .. ON CONFLICT cannot touch a row twice
    additions: dict[str, IndexItem] = {}
    deletions: list[str] = []
    for line in lines:
        parsed = FeedLine.model_validate_json(line)
        if parsed.type == "add" and parsed.addition is not None:
            additions[parsed.addition.id] = parsed.addition
        elif parsed.type == "delete" and parsed.deletion is not None:
            deletions.append(parsed.deletion.id)
        else:
            logger.info("Skipping unknown item type: %s", parsed.type)
    return list(additions.values()), deletions


async def batched(lines: AsyncIterator[str], size: int) -> AsyncIterator[list[str]]:
    batch: list[str] = []
    async for line in lines:
        if not line.strip():
            continue
        batch.append(line)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def should_import(last_successful: Optional[ImportJob], header: FeedHeader) -> bool:
    if last_successful is None:
        return True
    return last_successful.created_at < header.last_updated


def import_running(
    latest: Optional[ImportJob],
    now: datetime,
    stale_after: timedelta = STALE_JOB_AFTER,
) -> bool:
    """True while the most recent job is unfinished and younger than `stale_after`."""
    if latest is None or not latest.in_progress:
        return False
    return now - latest.created_at < stale_after


# ─────────────────────────── DB helpers ──────────────────────────────────

async def upsert_items(session: AsyncSession, items: list[IndexItem]) -> None:
    if not items:
        return
    stmt = insert(Entity).values(
        [
            {
                "id": item.id,
                "type": item.type,
                "addr": item.addr,
                "version": item.version,
                "title": item.title,
                "description": item.description,
                "link_variables": item.link_variables,
                "last_updated": item.last_updated,
                "popularity": item.popularity,
                "warnings": item.warnings,
            }
            for item in items
        ]
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Entity.id],
        set_={
            col: stmt.excluded[col]
            for col in (
                "type", "addr", "version", "title", "description",
                "link_variables", "last_updated", "popularity", "warnings",
            )
        },
    )
    await session.execute(stmt)


async def delete_items(session: AsyncSession, ids: list[str]) -> None:
    if ids:
        await session.execute(delete(Entity).where(Entity.id.in_(ids)))


async def _latest_job(session: AsyncSession, successful_only: bool) -> Optional[ImportJob]:
    stmt = select(ImportJob).order_by(ImportJob.id.desc()).limit(1)
    if successful_only:
        stmt = stmt.where(ImportJob.successful.is_(True))
    return (await session.execute(stmt)).scalar_one_or_none()


async def _finish_job(session_factory, job_id: int, successful: bool) -> None:
    async with session_factory() as session, session.begin():
        await session.execute(
            update(ImportJob)
            .where(ImportJob.id == job_id)
            .values(completed_at=datetime.now(timezone.utc), successful=successful)
        )


# ─────────────────────────── Main ────────────────────────────────────────

async def load(
    database_url: str,
    feed_url: str,
    batch_size: int,
    stale_after: timedelta = STALE_JOB_AFTER,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """Apply the feed; returns the number of items handled (0 if skipped)."""
    engine = create_async_engine(asyncpg_url(database_url))
    await init_db(engine)
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    handled = 0
    try:
        async with httpx.AsyncClient(timeout=None, transport=transport) as http:
            async with http.stream("GET", feed_url) as resp:
                resp.raise_for_status()
                lines = resp.aiter_lines()
                try:
                    header = read_header(await anext(lines))
                except StopAsyncIteration:
                    raise ValueError("no data in search index")

                async with session_factory() as session:
                    latest = await _latest_job(session, successful_only=False)
                    if import_running(latest, datetime.now(timezone.utc), stale_after):
                        logger.info("Import already in progress, exiting")
                        return 0
                    if latest is not None and latest.in_progress:
                        logger.warning(
                            "Ignoring import job %d left unfinished since %s",
                            latest.id,
                            latest.created_at.isoformat(),
                        )
                    last_ok = await _latest_job(session, successful_only=True)
                    if not should_import(last_ok, header):
                        logger.info(
                            "No new data to import (last import %s, data updated %s)",
                            last_ok.created_at.isoformat(),
                            header.last_updated.isoformat(),
                        )
                        return 0

                async with session_factory() as session, session.begin():
                    job = ImportJob(created_at=datetime.now(timezone.utc))
                    session.add(job)
                    await session.flush()
                    job_id = job.id

                try:
                    async with session_factory() as session, session.begin():
                        async for batch in batched(lines, batch_size):
                            additions, deletions = split_batch(batch)
                            await upsert_items(session, additions)
                            await delete_items(session, deletions)
                            handled += len(additions) + len(deletions)
                            logger.info("Imported %d items", handled)
                except BaseException:
                    # cancellation (Ctrl-C) must not leave the job looking in progress
                    await _finish_job(session_factory, job_id, successful=False)
                    raise

                await _finish_job(session_factory, job_id, successful=True)
    finally:
        await engine.dispose()

    logger.info("Complete: handled %d items", handled)
    return handled


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Load the registry search feed into Postgres")
    parser.add_argument("--database-url", default=settings.database_url, help="Postgres connection string")
    parser.add_argument("--feed-url", default=DEFAULT_FEED_URL, help="Search feed (ndjson) URL")
    parser.add_argument("--batch-size", type=int, default=1000, help="Items per insert batch")
    args = parser.parse_args(argv)

    if not args.database_url:
        parser.error("set DATABASE_URL or pass --database-url")
    if args.batch_size <= 0:
        parser.error("the batch size must be greater than 0")

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    )
    asyncio.run(load(args.database_url, args.feed_url, args.batch_size))


if __name__ == "__main__":
    main()
