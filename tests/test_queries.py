"""Tests for the TTL cache, QueryBuilder and CacheManager."""

import pytest

from notebypine import database
from notebypine.queries import (
    CacheManager, IncidentQueries, QueryBuilder, check_database_health, query_cache,
)
from notebypine.utils.cache import TTLCache
from notebypine.utils.errors import DatabaseError


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestTTLCache:

    def test_get_set_and_expiry(self):
        clock = FakeClock()
        cache = TTLCache(default_ttl=10, clock=clock)
        cache.set("a", {"x": 1})
        assert cache.get("a") == {"x": 1}
        clock.now += 11
        assert cache.get("a") is None
        assert "a" not in cache

    def test_per_entry_ttl(self):
        clock = FakeClock()
        cache = TTLCache(default_ttl=10, clock=clock)
        cache.set("short", 1, ttl=1)
        cache.set("long", 2)
        clock.now += 5
        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_invalidate_by_pattern(self):
        cache = TTLCache()
        cache.set("incidents?page=1", 1)
        cache.set("incidents/abc", 2)
        cache.set("solutions?page=1", 3)
        assert cache.invalidate("incidents") == 2
        assert len(cache) == 1
        assert cache.invalidate() == 1
        assert len(cache) == 0

    def test_stats_track_hit_rate(self):
        cache = TTLCache()
        cache.set("k", "v")
        cache.get("k")
        cache.get("missing")
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["size"] == 1

    def test_set_sweeps_expired_entries(self):
        clock = FakeClock()
        cache = TTLCache(default_ttl=1, clock=clock)
        cache.set("old", 1)
        clock.now += 2
        cache.set("new", 2)
        assert len(cache) == 1


class TestQueryBuilder:

    def test_params_combine_filters(self):
        builder = (
            QueryBuilder("incidents")
            .filter('status = "open"')
            .filter('severity = "high"')
            .sort("created")
            .paginate(2, 10)
        )
        params = builder.params()
        assert params["filter"] == '(status = "open") && (severity = "high")'
        assert params["sort"] == "-created"
        assert params["page"] == 2
        assert params["perPage"] == 10

    def test_limit_caps_at_one_hundred(self):
        assert QueryBuilder("incidents").limit(500).params()["perPage"] == 100

    def test_record_query_has_no_paging(self):
        builder = QueryBuilder("incidents", "abc")
        assert builder.params() == {}
        assert builder.cache_key() == "incidents/abc?"

    @pytest.mark.asyncio
    async def test_execute_caches_results(self, fake_pb, db, seeded):
        query = IncidentQueries.get_incidents_by_status("open")
        first = await query.execute()
        second = await IncidentQueries.get_incidents_by_status("open").execute()
        assert first == second
        assert fake_pb.count_requests("GET", "/api/collections/incidents/records") == 1

    @pytest.mark.asyncio
    async def test_no_cache_always_hits_pocketbase(self, fake_pb, db, seeded):
        await QueryBuilder("incidents").no_cache().execute()
        await QueryBuilder("incidents").no_cache().execute()
        assert fake_pb.count_requests("GET", "/api/collections/incidents/records") == 2

    @pytest.mark.asyncio
    async def test_search_matches_title_or_description(self, db, seeded):
        data = await IncidentQueries.search_incidents("POOL").execute()
        titles = {i["title"] for i in data["items"]}
        assert titles == {
            "Database connection timeout on checkout",
            "Connection pool exhausted on orders service",
        }

    @pytest.mark.asyncio
    async def test_similar_excludes_source(self, db, seeded):
        source = seeded["timeout"]
        data = await IncidentQueries.get_similar_incidents(
            source["id"], "Backend", ["connection"], 5
        ).execute()
        assert [i["id"] for i in data["items"]] == [seeded["pool"]["id"]]


class TestCacheManager:

    @pytest.mark.asyncio
    async def test_invalidate_type_targets_collection(self, db, seeded):
        await IncidentQueries.get_incidents_by_status("open").execute()
        await QueryBuilder("solutions").execute()
        assert CacheManager.invalidate_type("incidents") == 1
        assert len(query_cache) == 1

    @pytest.mark.asyncio
    async def test_warm_up_primes_status_lists(self, db, seeded):
        await CacheManager.warm_up()
        assert len(query_cache) == 2

    @pytest.mark.asyncio
    async def test_warm_up_swallows_failures(self, fake_pb, db):
        fake_pb.offline = True
        await CacheManager.warm_up()
        assert len(query_cache) == 0

    def test_stats_shape(self):
        assert set(CacheManager.get_stats()["query_cache"]) == {"size", "hits", "misses", "hit_rate"}


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, db):
        health = await check_database_health()
        assert health["healthy"] is True
        assert health["error"] is None

    @pytest.mark.asyncio
    async def test_unhealthy(self, fake_pb, db):
        fake_pb.healthy = False
        health = await check_database_health()
        assert health["healthy"] is False
        assert health["error"] == "Health check failed"

    @pytest.mark.asyncio
    async def test_not_connected(self, monkeypatch):
        monkeypatch.setattr(database, "_database", None)
        health = await check_database_health()
        assert health["healthy"] is False
        assert "Database not initialized" in health["error"]

    def test_get_database_before_connect(self, monkeypatch):
        monkeypatch.setattr(database, "_database", None)
        with pytest.raises(DatabaseError) as exc:
            database.get_database()
        assert exc.value.status_code == 503
        assert exc.value.code == "DATABASE_ERROR"
