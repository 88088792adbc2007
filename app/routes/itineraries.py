"""
app/routes/itineraries.py – itinerary CRUD and share-link endpoints.

Handlers are plain ``def`` functions: the store and the cache client are
blocking, so FastAPI runs each request on its worker threadpool.
"""
from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError

from app.db import User
from app.dependencies import Services, get_current_user, get_itinerary_service, get_services
from app.errors import ItineraryAPIError
from app.models import ApiResponse, ItineraryCreate, ItinerarySort, ItineraryUpdate
from app.services.itineraries import ItineraryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/itineraries", tags=["Itineraries"])


def _get_request_id(request: Request) -> str:
    return request.state.request_id if hasattr(request.state, "request_id") else str(uuid.uuid4())


def _store_failure(action: str, request: Request) -> ItineraryAPIError:
    logger.exception("Store error while trying to %s", action, extra={"request_id": _get_request_id(request)})
    return ItineraryAPIError(f"Failed to {action}")


# ── Public ────────────────────────────────────────────────────────────────────


@router.get(
    "/share/{shareable_id}",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Read a shared itinerary snapshot",
    description="Unauthenticated. Resolves only against the share snapshot store.",
    responses={404: {"description": "Shareable link not found or expired."}},
)
def get_shared_itinerary(
    shareable_id: str,
    service: ItineraryService = Depends(get_itinerary_service),
) -> ApiResponse:
    result = service.get_shared(shareable_id)
    return ApiResponse(
        message="Shareable itinerary retrieved successfully",
        data=result.model_dump(by_alias=True),
    )


# ── Authenticated ─────────────────────────────────────────────────────────────


@router.post(
    "",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    summary="Create an itinerary",
)
def create_itinerary(
    payload: ItineraryCreate,
    request: Request,
    user: User = Depends(get_current_user),
    service: ItineraryService = Depends(get_itinerary_service),
) -> ApiResponse:
    try:
        view = service.create(payload, user.id)
    except SQLAlchemyError as exc:
        raise _store_failure("create itinerary", request) from exc
    return ApiResponse(message="Itinerary created successfully", data=view)


@router.get(
    "",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="List the caller's itineraries",
    description="Filter by destination substring, sort by createdAt/startDate/title, paginate.",
)
def list_itineraries(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort: ItinerarySort = Query(default=ItinerarySort.CREATED_AT),
    destination: Optional[str] = Query(default=None, min_length=1),
    user: User = Depends(get_current_user),
    service: ItineraryService = Depends(get_itinerary_service),
) -> ApiResponse:
    try:
        items, pagination = service.list_owned(
            user.id, destination=destination, sort=sort, page=page, limit=limit
        )
    except SQLAlchemyError as exc:
        raise _store_failure("get itineraries", request) from exc
    return ApiResponse(message="Itineraries retrieved successfully", data=items, meta=pagination)


@router.get(
    "/{itinerary_id}",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Get one itinerary (read-through cached)",
    responses={403: {"description": "Not the owner."}, 404: {"description": "Not found."}},
)
def get_itinerary(
    itinerary_id: str,
    request: Request,
    user: User = Depends(get_current_user),
    service: ItineraryService = Depends(get_itinerary_service),
) -> ApiResponse:
    try:
        view = service.get(itinerary_id, user.id)
    except SQLAlchemyError as exc:
        raise _store_failure("get itinerary", request) from exc
    return ApiResponse(message="Itinerary retrieved successfully", data=view)


@router.put(
    "/{itinerary_id}",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Update an itinerary",
)
def update_itinerary(
    itinerary_id: str,
    payload: ItineraryUpdate,
    request: Request,
    user: User = Depends(get_current_user),
    service: ItineraryService = Depends(get_itinerary_service),
) -> ApiResponse:
    try:
        view = service.update(itinerary_id, payload, user.id)
    except SQLAlchemyError as exc:
        raise _store_failure("update itinerary", request) from exc
    return ApiResponse(message="Itinerary updated successfully", data=view)


@router.delete(
    "/{itinerary_id}",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Delete an itinerary",
    description="Outstanding share links keep serving their snapshot until they expire.",
)
def delete_itinerary(
    itinerary_id: str,
    request: Request,
    user: User = Depends(get_current_user),
    service: ItineraryService = Depends(get_itinerary_service),
) -> ApiResponse:
    try:
        service.delete(itinerary_id, user.id)
    except SQLAlchemyError as exc:
        raise _store_failure("delete itinerary", request) from exc
    return ApiResponse(message="Itinerary deleted successfully")


@router.post(
    "/{itinerary_id}/share",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Create a 24-hour public share link",
    responses={500: {"description": "Cache unavailable; link not created."}},
)
def create_share_link(
    itinerary_id: str,
    request: Request,
    user: User = Depends(get_current_user),
    service: ItineraryService = Depends(get_itinerary_service),
    services: Services = Depends(get_services),
) -> ApiResponse:
    base_url = services.settings.public_base_url or str(request.base_url)
    try:
        link = service.create_share_link(itinerary_id, user.id, base_url)
    except SQLAlchemyError as exc:
        raise _store_failure("create shareable link", request) from exc
    return ApiResponse(message="Shareable link created successfully", data=link.model_dump(by_alias=True))
