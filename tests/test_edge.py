"""Tests for the edge protocol: method gate, response cache, CORS, teardown."""
import asyncio

import pytest

from registry_search import database
from registry_search.clients import db_client, redis_client
from registry_search.config import settings

ROUTES = [
    "/search?q=aws",
    "/registry/docs/search?q=aws",
    "/providers/top?limit=3",
    "/",
    "/registry/docs/providers/hashicorp/aws/index.json",
    "/robots.txt",
]


def assert_cors(response):
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["access-control-allow-methods"] == "GET"


class TestMethodGate:
    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
    @pytest.mark.parametrize("path", ROUTES)
    async def test_non_get_is_405(self, client, db, method, path):
        response = await client.request(method, path)
        assert response.status_code == 405
        assert_cors(response)
        assert db.created == []

    async def test_405_is_not_cached(self, client, ctx, cache):
        await client.post("/search?q=aws")
        await ctx.drain()
        assert cache.store == {}


class TestResponseCache:
    async def test_repeat_request_is_served_from_cache(self, client, ctx, db, make_entity):
        db.rows = [make_entity("p1", "provider", "hashicorp/aws", popularity=10, rank_score=3.0)]

        first = await client.get("/search?q=aws")
        await ctx.drain()
        second = await client.get("/search?q=aws")

        assert first.status_code == second.status_code == 200
        assert first.content == second.content
        assert len(db.created) == 1
        assert_cors(second)

    async def test_cache_entry_uses_response_max_age(self, client, ctx, cache, s3):
        s3.put("index.html", b"<html></html>", "text/html")

        await client.get("/search?q=aws")
        await client.get("/")
        await ctx.drain()

        assert cache.ttls[redis_client.cache_key("GET", "http://testserver/search?q=aws")] == 300
        assert cache.ttls[redis_client.cache_key("GET", "http://testserver/")] == 3600

    async def test_different_query_is_a_miss(self, client, ctx, db):
        await client.get("/search?q=aws")
        await ctx.drain()
        await client.get("/search?q=google")

        assert len(db.created) == 2

    @pytest.mark.parametrize("path", ["/search", "/providers/top?limit=0", "/missing.json"])
    async def test_only_200_is_stored(self, client, ctx, cache, path):
        response = await client.get(path)
        await ctx.drain()

        assert response.status_code != 200
        assert cache.store == {}

    async def test_server_error_is_not_stored(self, client, ctx, cache, db):
        db.error = RuntimeError("boom")
        response = await client.get("/search?q=aws")
        await ctx.drain()

        assert response.status_code == 500
        assert cache.store == {}

    async def test_broken_cache_lookup_falls_through(self, client, monkeypatch, db):
        class BrokenRedis:
            async def hgetall(self, key):
                raise ConnectionError("redis down")

            def pipeline(self):
                raise ConnectionError("redis down")

        monkeypatch.setattr(redis_client, "_redis", BrokenRedis())

        response = await client.get("/search?q=aws")

        assert response.status_code == 200
        assert len(db.created) == 1

    async def test_cache_disabled(self, client, ctx, monkeypatch, db):
        monkeypatch.setattr(redis_client, "_redis", None)

        await client.get("/search?q=aws")
        await ctx.drain()
        await client.get("/search?q=aws")

        assert len(db.created) == 2


class TestCors:
    async def test_success(self, client):
        assert_cors(await client.get("/search?q=aws"))

    async def test_validation_error(self, client):
        response = await client.get("/search")
        assert response.status_code == 400
        assert_cors(response)

    async def test_not_found(self, client):
        response = await client.get("/nope.html")
        assert response.status_code == 404
        assert_cors(response)

    async def test_server_error(self, client, db):
        db.error = RuntimeError("boom")
        response = await client.get("/providers/top?limit=3")
        assert response.status_code == 500
        assert_cors(response)


class TestConnectionLifecycle:
    async def test_connection_closed_after_response(self, client, ctx, db):
        await client.get("/search?q=aws")
        await ctx.drain()

        (conn,) = db.created
        assert conn.connected
        assert conn.ended

    async def test_teardown_does_not_delay_response(self, client, ctx, monkeypatch):
        release = asyncio.Event()

        class SlowTeardown:
            ended = False

            async def connect(self):
                pass

            async def query(self, sql, params):
                return []

            async def end(self):
                await release.wait()
                self.ended = True

        conn = SlowTeardown()
        monkeypatch.setattr(database, "get_client", lambda *args, **kwargs: conn)

        response = await client.get("/search?q=aws")

        assert response.status_code == 200
        assert not conn.ended
        assert ctx.pending >= 1

        release.set()
        await ctx.drain()
        assert conn.ended

    async def test_teardown_failure_is_swallowed(self, client, ctx, monkeypatch):
        class FailingTeardown:
            async def connect(self):
                pass

            async def query(self, sql, params):
                return []

            async def end(self):
                raise ConnectionResetError("socket closed")

        monkeypatch.setattr(database, "get_client", lambda *args, **kwargs: FailingTeardown())

        response = await client.get("/search?q=aws")
        await ctx.drain()

        assert response.status_code == 200
        assert response.json() == []

    async def test_no_connection_for_invalid_request(self, client, db):
        await client.get("/search?q=")
        await client.get("/providers/top?limit=abc")

        assert db.created == []

    async def test_missing_database_url_is_opaque_500(self, client, monkeypatch):
        monkeypatch.setattr(database, "get_client", db_client.get_client)
        monkeypatch.setattr(settings, "database_url", None)

        response = await client.get("/search?q=aws")

        assert response.status_code == 500
        assert "DATABASE_URL" not in response.text
        assert_cors(response)
