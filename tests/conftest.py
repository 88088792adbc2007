"""
tests/conftest.py – shared pytest configuration and fixtures.

Every test app runs on the in-memory cache substrate and an in-memory SQLite
database. Integration tests (marked with @pytest.mark.integration) talk to a
real Redis at $REDIS_URL and are skipped by default. Pass --integration to
opt in:

    pytest --integration tests/test_redis_integration.py -v
"""
from __future__ import annotations

from typing import Any, Callable, Optional

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app
from app.services.cache import CacheUnavailableError, MemoryCacheBackend


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="Run integration tests that need a live Redis server.",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if not config.getoption("--integration"):
        skip = pytest.mark.skip(reason="Pass --integration to run this test.")
        for item in items:
            if item.get_closest_marker("integration"):
                item.add_marker(skip)


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class DownBackend:
    """Substrate that fails every call, as an unreachable Redis would."""

    def get(self, key):
        raise CacheUnavailableError("connection refused")

    def set(self, key, value, ttl_seconds):
        raise CacheUnavailableError("connection refused")

    def delete_pattern(self, pattern):
        raise CacheUnavailableError("connection refused")

    def ping(self):
        return False

    def close(self):
        pass


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "database_url": "sqlite://",
        "cache_backend": "memory",
        "jwt_secret": "test-secret-key-for-jwt-tokens",
        "rate_limit_max_requests": 1000,
        "database_connect_retries": 1,
        "environment": "test",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend(clock: FakeClock) -> MemoryCacheBackend:
    return MemoryCacheBackend(clock=clock)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def client(settings: Settings, backend: MemoryCacheBackend):
    with TestClient(create_app(settings, cache_backend=backend)) as c:
        yield c


@pytest.fixture
def register_user(client: TestClient) -> Callable[..., dict[str, str]]:
    """Register an account and return its auth headers plus id."""

    def _register(username: str = "alice", password: str = "password123", client_: Optional[TestClient] = None):
        c = client_ or client
        resp = c.post(
            "/api/auth/register",
            json={
                "username": username,
                "email": f"{username}@example.com",
                "password": password,
                "firstName": username.title(),
                "lastName": "Tester",
            },
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()["data"]
        return {"Authorization": f"Bearer {data['token']}", "user_id": data["user"]["id"]}

    return _register


def auth_only(user: dict[str, str]) -> dict[str, str]:
    return {"Authorization": user["Authorization"]}


TRIP_PAYLOAD: dict[str, Any] = {
    "title": "Test Trip",
    "destination": "Paris",
    "startDate": "2024-06-01",
    "endDate": "2024-06-05",
    "activities": [
        {"time": "09:00", "description": "Louvre guided tour", "location": "Musée du Louvre"},
        {"time": "19:30", "description": "Seine dinner cruise", "location": "Port de la Bourdonnais"},
    ],
}
