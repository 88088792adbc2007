"""
app/services/sharing.py – public share links backed by immutable snapshots.

A snapshot is written once under ``shareable:<token>`` and then only read
until it expires. It is deliberately independent of the itinerary it came
from: later edits or deletion of the itinerary do not touch it.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from app.services.cache import CacheClient

logger = logging.getLogger(__name__)

SHARE_KEY_PREFIX = "shareable:"
SHARE_TOKEN_BYTES = 8
SHARE_EXPIRES_IN = "24 hours"


def share_cache_key(shareable_id: str) -> str:
    return f"{SHARE_KEY_PREFIX}{shareable_id}"


def generate_shareable_id() -> str:
    """16 hex chars; no uniqueness check, collisions overwrite."""
    return secrets.token_hex(SHARE_TOKEN_BYTES)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShareSnapshotStore:
    def __init__(
        self,
        cache: CacheClient,
        *,
        ttl_seconds: int = 86400,
        token_factory: Callable[[], str] = generate_shareable_id,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._cache = cache
        self._ttl = ttl_seconds
        self._token_factory = token_factory
        self._clock = clock

    def create(self, itinerary_id: str, snapshot_data: dict[str, Any]) -> Optional[str]:
        """Store a snapshot and return its token, or None if the cache is unavailable."""
        if not self._cache.is_available():
            logger.warning("Cache unavailable, cannot create shareable link", extra={"itinerary_id": itinerary_id})
            return None

        shareable_id = self._token_factory()
        envelope = {
            "itineraryId": itinerary_id,
            "data": snapshot_data,
            "createdAt": self._clock().isoformat(),
        }
        result = self._cache.set(share_cache_key(shareable_id), envelope, self._ttl)
        if result.degraded:
            return None

        logger.info(
            "Created shareable link",
            extra={"shareable_id": shareable_id, "itinerary_id": itinerary_id},
        )
        return shareable_id

    def resolve(self, shareable_id: str) -> Optional[dict[str, Any]]:
        """Return the stored envelope, or None if missing, expired or unreadable."""
        result = self._cache.get(share_cache_key(shareable_id))
        if not result.hit:
            logger.info("Shareable data not found", extra={"shareable_id": shareable_id})
            return None
        return result.value
