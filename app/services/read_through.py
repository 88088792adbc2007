"""
app/services/read_through.py – cache-aside read path for itinerary-by-id.

Flow for ``get``:

1. look up ``itinerary:<id>`` in the cache;
2. hit  → return the cached view as-is (ownership is trusted, see below);
3. miss → load from the store, 404 if absent, 403 if not owned;
4. cache the view for ``ttl_seconds`` and return it.

A cached view is only ever written after a successful owner check, so by
default a hit is served without checking the requester again. Because the key
is not per-user, any requester who knows the id gets the cached copy while it
is warm. ``verify_owner_on_hit`` turns on an owner check against the copy.
"""
from __future__ import annotations

import logging
from typing import Any

from app.errors import AccessDeniedError, NotFoundError
from app.models import ItineraryOut
from app.services.cache import CacheClient
from app.services.store import ItineraryStore

logger = logging.getLogger(__name__)

ITINERARY_KEY_PREFIX = "itinerary:"


def itinerary_cache_key(itinerary_id: str) -> str:
    return f"{ITINERARY_KEY_PREFIX}{itinerary_id}"


def itinerary_view(record: Any) -> dict[str, Any]:
    """Serialise a store record into the cached / returned ``{"itinerary": ...}`` shape."""
    return {"itinerary": ItineraryOut.model_validate(record).model_dump(mode="json", by_alias=True)}


class ItineraryReadThrough:
    def __init__(
        self,
        cache: CacheClient,
        store: ItineraryStore,
        *,
        ttl_seconds: int = 300,
        verify_owner_on_hit: bool = False,
    ) -> None:
        self._cache = cache
        self._store = store
        self._ttl = ttl_seconds
        self._verify_owner_on_hit = verify_owner_on_hit

    def get(self, itinerary_id: str, requester_id: str) -> dict[str, Any]:
        key = itinerary_cache_key(itinerary_id)

        cached = self._cache.get(key)
        if cached.hit:
            if self._verify_owner_on_hit and _cached_owner(cached.value) != requester_id:
                raise AccessDeniedError("Access denied")
            logger.info("Cache hit", extra={"itinerary_id": itinerary_id})
            return cached.value

        logger.info("Cache miss", extra={"itinerary_id": itinerary_id, "degraded": cached.degraded})
        record = self._store.get(itinerary_id)
        if record is None:
            raise NotFoundError("Itinerary not found")
        if record.user_id != requester_id:
            raise AccessDeniedError("Access denied")

        view = itinerary_view(record)
        self._cache.set(key, view, self._ttl)
        return view


def _cached_owner(view: Any) -> Any:
    try:
        return view["itinerary"]["owner"]["id"]
    except (KeyError, TypeError):
        return None
