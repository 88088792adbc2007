"""
tests/test_dependencies.py – service wiring in build_services.
"""
from __future__ import annotations

from app.dependencies import build_services
from app.services.cache import MemoryCacheBackend, RedisCacheBackend
from conftest import DownBackend, make_settings


def test_empty_injected_backend_is_used():
    injected = MemoryCacheBackend()
    assert len(injected) == 0

    services = build_services(make_settings(), cache_backend=injected)

    assert services.cache.backend is injected
    services.engine.dispose()


def test_injected_backend_receives_writes(backend: MemoryCacheBackend):
    services = build_services(make_settings(), cache_backend=backend)

    services.cache.set("itinerary:abc", {"title": "Test Trip"}, 300)

    assert backend.get("itinerary:abc") == '{"title": "Test Trip"}'
    services.engine.dispose()


def test_injected_failing_backend_is_kept():
    down = DownBackend()
    services = build_services(make_settings(), cache_backend=down)
    assert services.cache.backend is down
    assert services.cache.is_available() is False
    services.engine.dispose()


def test_backend_built_from_settings_when_not_injected():
    services = build_services(make_settings(cache_backend="redis"))
    assert isinstance(services.cache.backend, RedisCacheBackend)
    services.engine.dispose()
