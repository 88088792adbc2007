"""
tests/test_read_through.py – cache-aside read path and invalidation policy.

The store is a MagicMock so store round trips can be counted exactly.
"""
from __future__ import annotations

import json
from datetime import date, datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from app.errors import AccessDeniedError, NotFoundError
from app.services.cache import CacheClient, MemoryCacheBackend
from app.services.invalidation import ItineraryCacheInvalidator
from app.services.read_through import ItineraryReadThrough, itinerary_cache_key
from conftest import DownBackend, FakeClock

OWNER = "owner-1"
STRANGER = "user-2"


def _record(itinerary_id: str = "it-1", title: str = "Test Trip", user_id: str = OWNER) -> SimpleNamespace:
    return SimpleNamespace(
        id=itinerary_id,
        user_id=user_id,
        owner=SimpleNamespace(id=user_id, username="alice", first_name="Alice", last_name="Tester"),
        title=title,
        destination="Paris",
        start_date=date(2024, 6, 1),
        end_date=date(2024, 6, 5),
        activities=[{"time": "09:00", "description": "Louvre", "location": "Paris"}],
        created_at=datetime(2024, 5, 1, 12, 0, 0),
        updated_at=datetime(2024, 5, 1, 12, 0, 0),
    )


@pytest.fixture
def store() -> MagicMock:
    store = MagicMock()
    store.get.return_value = _record()
    return store


@pytest.fixture
def cache(backend: MemoryCacheBackend) -> CacheClient:
    return CacheClient(backend)


@pytest.fixture
def reader(cache: CacheClient, store: MagicMock) -> ItineraryReadThrough:
    return ItineraryReadThrough(cache, store, ttl_seconds=300)


class TestCacheAside:
    def test_first_read_hits_store_once_and_populates_cache(self, reader, store, backend):
        view = reader.get("it-1", OWNER)

        store.get.assert_called_once_with("it-1")
        assert view["itinerary"]["title"] == "Test Trip"
        assert view["itinerary"]["startDate"] == "2024-06-01"
        assert json.loads(backend.get(itinerary_cache_key("it-1"))) == view

    def test_second_read_within_ttl_skips_store(self, reader, store):
        first = reader.get("it-1", OWNER)
        second = reader.get("it-1", OWNER)

        assert store.get.call_count == 1
        assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)

    def test_read_after_ttl_refetches(self, reader, store, clock: FakeClock):
        reader.get("it-1", OWNER)
        clock.advance(301)
        reader.get("it-1", OWNER)
        assert store.get.call_count == 2

    def test_not_found(self, reader, store, backend):
        store.get.return_value = None
        with pytest.raises(NotFoundError):
            reader.get("missing", OWNER)
        assert backend.get(itinerary_cache_key("missing")) is None

    def test_stranger_on_cold_cache_is_denied_and_nothing_cached(self, reader, backend):
        with pytest.raises(AccessDeniedError):
            reader.get("it-1", STRANGER)
        assert backend.get(itinerary_cache_key("it-1")) is None

    def test_degraded_cache_falls_through_to_store(self, store):
        reader = ItineraryReadThrough(CacheClient(DownBackend()), store)
        assert reader.get("it-1", OWNER)["itinerary"]["id"] == "it-1"
        assert reader.get("it-1", OWNER)["itinerary"]["id"] == "it-1"
        assert store.get.call_count == 2


class TestTrustOnHit:
    def test_hit_is_served_without_owner_check(self, reader, store):
        # Only an owned fetch can warm the key; afterwards the key is not per-user.
        warmed = reader.get("it-1", OWNER)
        assert reader.get("it-1", STRANGER) == warmed
        assert store.get.call_count == 1

    def test_owner_check_on_hit_when_enabled(self, cache, store):
        reader = ItineraryReadThrough(cache, store, verify_owner_on_hit=True)
        reader.get("it-1", OWNER)
        with pytest.raises(AccessDeniedError):
            reader.get("it-1", STRANGER)
        assert reader.get("it-1", OWNER)["itinerary"]["owner"]["id"] == OWNER
        assert store.get.call_count == 1


class TestInvalidation:
    def test_invalidate_forces_refetch_with_new_state(self, reader, store, cache):
        reader.get("it-1", OWNER)
        store.get.return_value = _record(title="Updated")

        ItineraryCacheInvalidator(cache).invalidate("it-1")

        assert reader.get("it-1", OWNER)["itinerary"]["title"] == "Updated"
        assert store.get.call_count == 2

    def test_invalidate_leaves_other_keys_alone(self, reader, store, cache, backend):
        store.get.side_effect = lambda itinerary_id: _record(itinerary_id)
        reader.get("it-1", OWNER)
        reader.get("it-10", OWNER)
        backend.set("shareable:0011223344556677", "{}", 60)

        assert ItineraryCacheInvalidator(cache).invalidate("it-1").value == 1
        assert backend.get(itinerary_cache_key("it-10")) is not None
        assert backend.get("shareable:0011223344556677") == "{}"

    def test_invalidate_cold_key_is_noop(self, cache):
        result = ItineraryCacheInvalidator(cache).invalidate("never-cached")
        assert result.ok and result.value == 0

    def test_invalidate_on_degraded_cache_does_not_raise(self):
        assert ItineraryCacheInvalidator(CacheClient(DownBackend())).invalidate("it-1").degraded
