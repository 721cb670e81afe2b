"""
Entity store connections.

Two transports implement the same QueryableConnection capability:

  • LocalConnection — direct TCP connection through SQLAlchemy + asyncpg.
                      Used for local development against a plain Postgres.
  • EdgeConnection  — serverless Postgres "SQL over HTTP": every query is a
                      POST https://<host>/sql carrying the connection string
                      in a header. No socket is held between queries.

get_client() picks one from the environment discriminator. Each request
builds its own connection; neither transport pools across requests here.
"""
import json
import logging
from datetime import datetime
from typing import Any, Optional, Protocol, Sequence
from urllib.parse import urlsplit

import httpx
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine
from sqlalchemy.pool import NullPool

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class QueryableConnection(Protocol):
    async def connect(self) -> None: ...

    async def end(self) -> None: ...

    async def query(self, sql: str, params: Sequence[Any]) -> list[Row]: ...


class EdgeQueryError(Exception):
    """The SQL-over-HTTP endpoint rejected a query."""

    def __init__(self, message: str, status_code: int, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


# ─────────────────────────── Local (TCP) ──────────────────────────────────

def asyncpg_url(database_url: str) -> str:
    scheme, sep, rest = database_url.partition("://")
    if scheme in ("postgres", "postgresql"):
        return f"postgresql+asyncpg{sep}{rest}"
    return database_url


class LocalConnection:
    def __init__(self, database_url: str, timeout: Optional[float] = None) -> None:
        connect_args = {"command_timeout": timeout} if timeout else {}
        self._engine = create_async_engine(
            asyncpg_url(database_url),
            poolclass=NullPool,
            connect_args=connect_args,
        )
        self._conn: Optional[AsyncConnection] = None

    async def connect(self) -> None:
        self._conn = await self._engine.connect()

    async def query(self, sql: str, params: Sequence[Any]) -> list[Row]:
        if self._conn is None:
            raise RuntimeError("connect() must be called before query()")
        # asyncpg speaks $n placeholders natively
        result = await self._conn.exec_driver_sql(sql, tuple(params))
        return [dict(row) for row in result.mappings().all()]

    async def end(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
        await self._engine.dispose()


# ─────────────────────────── Edge (HTTP) ──────────────────────────────────

# Postgres type OIDs → Python converters; everything else stays text.
_INT_OIDS = {20, 21, 23}
_FLOAT_OIDS = {700, 701, 1700}
_JSON_OIDS = {114, 3802}
_TIMESTAMP_OIDS = {1114, 1184}
_BOOL_OID = 16


def _convert(value: Any, type_oid: Optional[int]) -> Any:
    if value is None or not isinstance(value, str):
        return value
    if type_oid in _INT_OIDS:
        return int(value)
    if type_oid in _FLOAT_OIDS:
        return float(value)
    if type_oid in _JSON_OIDS:
        return json.loads(value)
    if type_oid in _TIMESTAMP_OIDS:
        return datetime.fromisoformat(value)
    if type_oid == _BOOL_OID:
        return value == "t"
    return value


class EdgeConnection:
    def __init__(
        self,
        database_url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        host = urlsplit(database_url).hostname
        if not host:
            raise ValueError("DATABASE_URL has no host")
        self.database_url = database_url
        self.endpoint = f"https://{host}/sql"
        self._timeout = timeout
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        self._http = httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            headers={
                "Neon-Connection-String": self.database_url,
                "Neon-Raw-Text-Output": "true",
                "Neon-Array-Mode": "false",
            },
        )

    async def query(self, sql: str, params: Sequence[Any]) -> list[Row]:
        if self._http is None:
            raise RuntimeError("connect() must be called before query()")

        resp = await self._http.post(
            self.endpoint, json={"query": sql, "params": list(params)}
        )
        if resp.status_code != 200:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            raise EdgeQueryError(
                body.get("message") or f"HTTP {resp.status_code}",
                resp.status_code,
                body.get("code"),
            )

        data = resp.json()
        oids = {f["name"]: f.get("dataTypeID") for f in data.get("fields", [])}
        return [
            {name: _convert(value, oids.get(name)) for name, value in row.items()}
            for row in data.get("rows", [])
        ]

    async def end(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None


def get_client(
    environment: str,
    database_url: Optional[str],
    timeout: Optional[float] = None,
) -> QueryableConnection:
    """Build an unconnected client for the given environment."""
    if not database_url:
        raise ValueError("DATABASE_URL is required")

    if environment == "dev":
        return LocalConnection(database_url, timeout=timeout)
    return EdgeConnection(database_url, timeout=timeout)
