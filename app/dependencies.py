"""
app/dependencies.py – service wiring and FastAPI dependency providers.

``build_services`` runs once per application (inside ``create_app``); the
result hangs off ``app.state.services`` and is handed to route handlers via
``Depends``. Tests build an app with their own ``Settings`` or swap the cache
backend before the first request.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.engine import Engine

from app.config import Settings
from app.db import User, create_engine_from_settings, create_session_factory
from app.errors import AuthenticationError
from app.services.auth import AuthService
from app.services.cache import CacheBackend, CacheClient, build_cache_backend
from app.services.invalidation import ItineraryCacheInvalidator
from app.services.itineraries import ItineraryService
from app.services.read_through import ItineraryReadThrough
from app.services.sharing import ShareSnapshotStore
from app.services.store import ItineraryStore, UserStore


@dataclass
class Services:
    settings: Settings
    engine: Engine
    cache: CacheClient
    itineraries: ItineraryService
    auth: AuthService


def build_services(settings: Settings, cache_backend: Optional[CacheBackend] = None) -> Services:
    engine = create_engine_from_settings(settings)
    sessions = create_session_factory(engine)
    if cache_backend is None:
        cache_backend = build_cache_backend(settings)
    cache = CacheClient(cache_backend)

    store = ItineraryStore(sessions)
    itineraries = ItineraryService(
        store=store,
        reader=ItineraryReadThrough(
            cache,
            store,
            ttl_seconds=settings.itinerary_cache_ttl,
            verify_owner_on_hit=settings.cache_verify_owner_on_hit,
        ),
        invalidator=ItineraryCacheInvalidator(cache),
        shares=ShareSnapshotStore(cache, ttl_seconds=settings.share_ttl),
    )
    return Services(
        settings=settings,
        engine=engine,
        cache=cache,
        itineraries=itineraries,
        auth=AuthService(UserStore(sessions), settings),
    )


# ── Providers ─────────────────────────────────────────────────────────────────

_bearer = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_itinerary_service(services: Services = Depends(get_services)) -> ItineraryService:
    return services.itineraries


def get_auth_service(services: Services = Depends(get_services)) -> AuthService:
    return services.auth


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required")
    return auth.authenticate(credentials.credentials)
