"""
tests/test_cache.py – unit tests for the cache substrates and CacheClient.
"""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import redis

from app.services.cache import (
    CacheClient,
    CacheResult,
    CacheUnavailableError,
    MemoryCacheBackend,
    RedisCacheBackend,
    build_cache_backend,
)
from conftest import DownBackend, FakeClock, make_settings


# ── MemoryCacheBackend ────────────────────────────────────────────────────────


class TestMemoryCacheBackend:
    def test_set_get(self, backend: MemoryCacheBackend):
        backend.set("itinerary:1", '{"a": 1}', 60)
        assert backend.get("itinerary:1") == '{"a": 1}'
        assert backend.get("itinerary:missing") is None

    def test_overwrite_replaces_value_and_ttl(self, backend: MemoryCacheBackend, clock: FakeClock):
        backend.set("k", "old", 10)
        clock.advance(8)
        backend.set("k", "new", 10)
        clock.advance(8)
        assert backend.get("k") == "new"

    def test_ttl_boundary(self, backend: MemoryCacheBackend, clock: FakeClock):
        backend.set("k", "v", 300)
        clock.advance(299.9)
        assert backend.get("k") == "v"
        clock.advance(0.2)
        assert backend.get("k") is None
        assert len(backend) == 0

    def test_delete_pattern_exact_key(self, backend: MemoryCacheBackend):
        backend.set("itinerary:abc", "1", 60)
        backend.set("itinerary:abcd", "2", 60)
        assert backend.delete_pattern("itinerary:abc") == 1
        assert backend.get("itinerary:abc") is None
        assert backend.get("itinerary:abcd") == "2"

    def test_delete_pattern_no_match_is_noop(self, backend: MemoryCacheBackend):
        assert backend.delete_pattern("itinerary:nothing") == 0

    def test_prefix_delete_does_not_cross_namespaces(self, backend: MemoryCacheBackend):
        backend.set("itinerary:1", "a", 60)
        backend.set("itinerary:2", "b", 60)
        backend.set("shareable:ff00", "c", 60)
        assert backend.delete_pattern("itinerary:*") == 2
        assert backend.get("shareable:ff00") == "c"

    def test_len_counts_only_live_entries(self, backend: MemoryCacheBackend, clock: FakeClock):
        backend.set("short", "v", 10)
        backend.set("long", "v", 100)
        assert len(backend) == 2
        clock.advance(50)
        assert len(backend) == 1

    def test_ping_and_clear(self, backend: MemoryCacheBackend):
        backend.set("k", "v", 60)
        assert backend.ping() is True
        backend.clear()
        assert len(backend) == 0


# ── CacheClient ───────────────────────────────────────────────────────────────


class TestCacheClient:
    def test_json_round_trip(self, backend: MemoryCacheBackend):
        cache = CacheClient(backend)
        assert cache.set("itinerary:1", {"itinerary": {"title": "Trip"}}, 300).ok
        result = cache.get("itinerary:1")
        assert result.hit
        assert result.value == {"itinerary": {"title": "Trip"}}

    def test_miss_is_ok_not_degraded(self, backend: MemoryCacheBackend):
        result = CacheClient(backend).get("itinerary:none")
        assert result.ok
        assert not result.hit
        assert result.value is None

    def test_expired_looks_like_never_set(self, backend: MemoryCacheBackend, clock: FakeClock):
        cache = CacheClient(backend)
        cache.set("k", {"x": 1}, 5)
        clock.advance(6)
        assert cache.get("k") == cache.get("never-set")

    def test_undecodable_entry_is_a_miss(self, backend: MemoryCacheBackend):
        backend.set("k", "{not json", 60)
        result = CacheClient(backend).get("k")
        assert result.ok and not result.hit

    def test_failures_degrade_instead_of_raising(self):
        cache = CacheClient(DownBackend())
        assert cache.get("k").degraded
        assert cache.set("k", {"x": 1}, 60).degraded
        assert cache.delete_by_pattern("k").degraded
        assert cache.is_available() is False

    def test_delete_by_pattern_reports_count(self, backend: MemoryCacheBackend):
        cache = CacheClient(backend)
        cache.set("itinerary:1", {}, 60)
        assert cache.delete_by_pattern("itinerary:1") == CacheResult.success(1)
        assert cache.delete_by_pattern("itinerary:1") == CacheResult.success(0)


# ── RedisCacheBackend ─────────────────────────────────────────────────────────


class TestRedisCacheBackend:
    def test_set_uses_setex(self):
        client = MagicMock()
        RedisCacheBackend(client).set("itinerary:1", "{}", 300)
        client.setex.assert_called_once_with("itinerary:1", 300, "{}")

    def test_get_passes_through(self):
        client = MagicMock()
        client.get.return_value = '{"a": 1}'
        assert RedisCacheBackend(client).get("k") == '{"a": 1}'

    def test_delete_pattern_scans_then_deletes(self):
        client = MagicMock()
        client.scan_iter.return_value = iter(["itinerary:1"])
        client.delete.return_value = 1
        assert RedisCacheBackend(client).delete_pattern("itinerary:1") == 1
        client.scan_iter.assert_called_once_with(match="itinerary:1")
        client.delete.assert_called_once_with("itinerary:1")

    def test_delete_pattern_without_matches_skips_delete(self):
        client = MagicMock()
        client.scan_iter.return_value = iter([])
        assert RedisCacheBackend(client).delete_pattern("itinerary:x") == 0
        client.delete.assert_not_called()

    @pytest.mark.parametrize("error", [redis.ConnectionError("down"), redis.TimeoutError("slow")])
    def test_redis_errors_become_cache_unavailable(self, error):
        client = MagicMock()
        client.get.side_effect = error
        with pytest.raises(CacheUnavailableError):
            RedisCacheBackend(client).get("k")

    def test_ping_false_when_unreachable(self):
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("down")
        assert RedisCacheBackend(client).ping() is False

    def test_degrades_through_client_on_timeout(self):
        client = MagicMock()
        client.setex.side_effect = redis.TimeoutError("slow")
        assert CacheClient(RedisCacheBackend(client)).set("k", {}, 60).degraded


def test_build_cache_backend_selects_substrate():
    assert isinstance(build_cache_backend(make_settings(cache_backend="memory")), MemoryCacheBackend)
    assert isinstance(build_cache_backend(make_settings(cache_backend="redis")), RedisCacheBackend)
    with pytest.raises(ValueError):
        build_cache_backend(make_settings(cache_backend="memcached"))
