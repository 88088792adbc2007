"""
app/services/invalidation.py – evicts cached itinerary views after mutations.

Must be called only after the store has committed the update/delete, and
before the response goes back to the client. Eviction is best effort: a
degraded cache leaves a stale view that lives at most one TTL window.
"""
from __future__ import annotations

import logging

from app.services.cache import CacheClient, CacheResult
from app.services.read_through import itinerary_cache_key

logger = logging.getLogger(__name__)


class ItineraryCacheInvalidator:
    def __init__(self, cache: CacheClient) -> None:
        self._cache = cache

    def invalidate(self, itinerary_id: str) -> CacheResult[int]:
        # Exact key only; never widen to a wildcard that could reach shareable:*.
        result = self._cache.delete_by_pattern(itinerary_cache_key(itinerary_id))
        if result.degraded:
            logger.warning(
                "Cache invalidation skipped, stale reads possible until TTL",
                extra={"itinerary_id": itinerary_id},
            )
        return result
