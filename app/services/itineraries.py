"""
app/services/itineraries.py – itinerary use-cases on top of store and cache.

Ordering rules that matter here:
• reads by id go through ``ItineraryReadThrough``;
• update/delete commit in the store first, then invalidate the cached view;
• share links snapshot the itinerary minus ``id``/``owner`` and never read
  the store again when resolved.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from app.db import Itinerary
from app.errors import AccessDeniedError, DomainValidationError, NotFoundError, ShareUnavailableError
from app.models import (
    ItineraryCreate,
    ItineraryOut,
    ItinerarySort,
    ItineraryUpdate,
    Pagination,
    ShareLinkResponse,
    SharedItineraryResponse,
)
from app.services.invalidation import ItineraryCacheInvalidator
from app.services.read_through import ItineraryReadThrough, itinerary_view
from app.services.sharing import SHARE_EXPIRES_IN, ShareSnapshotStore
from app.services.store import ItineraryStore, page_count

logger = logging.getLogger(__name__)

# Fields that never leave the owner's scope.
_PRIVATE_FIELDS = {"id", "owner"}


def _check_dates(start: Any, end: Any) -> None:
    if start >= end:
        raise DomainValidationError(
            "Validation failed",
            errors=[{"field": "endDate", "message": "End date must be after start date"}],
        )


class ItineraryService:
    def __init__(
        self,
        store: ItineraryStore,
        reader: ItineraryReadThrough,
        invalidator: ItineraryCacheInvalidator,
        shares: ShareSnapshotStore,
    ) -> None:
        self._store = store
        self._reader = reader
        self._invalidator = invalidator
        self._shares = shares

    # ── helpers ───────────────────────────────────────────────────────────────

    def _owned(self, itinerary_id: str, requester_id: str) -> Itinerary:
        record = self._store.get(itinerary_id)
        if record is None:
            raise NotFoundError("Itinerary not found")
        if record.user_id != requester_id:
            raise AccessDeniedError("Access denied")
        return record

    # ── CRUD ──────────────────────────────────────────────────────────────────

    def create(self, payload: ItineraryCreate, owner_id: str) -> dict[str, Any]:
        _check_dates(payload.start_date, payload.end_date)
        record = self._store.create(owner_id, payload.model_dump())
        return itinerary_view(record)

    def list_owned(
        self,
        owner_id: str,
        *,
        destination: Optional[str] = None,
        sort: ItinerarySort = ItinerarySort.CREATED_AT,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[dict[str, Any]], Pagination]:
        records, total = self._store.list_for_owner(
            owner_id, destination=destination, sort=sort, page=page, limit=limit
        )
        items = [ItineraryOut.model_validate(r).model_dump(mode="json", by_alias=True) for r in records]
        return items, Pagination(page=page, limit=limit, total=total, pages=page_count(total, limit))

    def get(self, itinerary_id: str, requester_id: str) -> dict[str, Any]:
        return self._reader.get(itinerary_id, requester_id)

    def update(self, itinerary_id: str, payload: ItineraryUpdate, requester_id: str) -> dict[str, Any]:
        current = self._owned(itinerary_id, requester_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        _check_dates(
            changes.get("start_date", current.start_date),
            changes.get("end_date", current.end_date),
        )

        updated = self._store.update(itinerary_id, changes)
        if updated is None:
            # Deleted between the ownership check and the write.
            raise NotFoundError("Itinerary not found")
        self._invalidator.invalidate(itinerary_id)
        return itinerary_view(updated)

    def delete(self, itinerary_id: str, requester_id: str) -> None:
        self._owned(itinerary_id, requester_id)
        if not self._store.delete(itinerary_id):
            raise NotFoundError("Itinerary not found")
        self._invalidator.invalidate(itinerary_id)

    # ── Sharing ───────────────────────────────────────────────────────────────

    def create_share_link(self, itinerary_id: str, requester_id: str, base_url: str) -> ShareLinkResponse:
        record = self._owned(itinerary_id, requester_id)
        public_data = ItineraryOut.model_validate(record).model_dump(
            mode="json", by_alias=True, exclude=_PRIVATE_FIELDS
        )

        shareable_id = self._shares.create(itinerary_id, public_data)
        if shareable_id is None:
            raise ShareUnavailableError("Failed to create shareable link")

        return ShareLinkResponse(
            shareable_id=shareable_id,
            shareable_url=f"{base_url.rstrip('/')}/api/itineraries/share/{shareable_id}",
            expires_in=SHARE_EXPIRES_IN,
        )

    def get_shared(self, shareable_id: str) -> SharedItineraryResponse:
        snapshot = self._shares.resolve(shareable_id)
        if snapshot is None:
            raise NotFoundError("Shareable link not found or expired")
        return SharedItineraryResponse(itinerary=snapshot["data"], shared_at=snapshot["createdAt"])
