"""
app/services/cache.py – ephemeral key/value cache with per-key TTL.

Two interchangeable substrates sit behind one small interface:

• ``MemoryCacheBackend`` – in-process dict with lazy expiry and an injectable
  clock. Used by tests and single-process deployments.
• ``RedisCacheBackend`` – redis-py client; TTL is delegated to ``SETEX``.

``CacheClient`` is the object the rest of the app talks to. It serialises
values to JSON and converts every substrate failure into a ``degraded``
``CacheResult`` (logged, never raised), so a cache outage can only ever make
the service slower, not break it.
"""
from __future__ import annotations

import fnmatch
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Protocol, TypeVar

import redis

from app.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheUnavailableError(RuntimeError):
    """Raised by a substrate when it cannot be reached or times out."""


@dataclass(frozen=True)
class CacheResult(Generic[T]):
    """Outcome of a cache call: ``ok`` with an optional value, or ``degraded``."""

    value: Optional[T] = None
    degraded: bool = False

    @property
    def ok(self) -> bool:
        return not self.degraded

    @property
    def hit(self) -> bool:
        return self.ok and self.value is not None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "CacheResult[T]":
        return cls(value=value)

    @classmethod
    def unavailable(cls) -> "CacheResult[T]":
        return cls(degraded=True)


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def delete_pattern(self, pattern: str) -> int: ...

    def ping(self) -> bool: ...

    def close(self) -> None: ...


# ── Substrates ────────────────────────────────────────────────────────────────


class MemoryCacheBackend:
    """In-memory key/value store with per-entry TTL."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._store: dict[str, tuple[str, float]] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if missing or expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._store[key] = (value, self._clock() + ttl_seconds)

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            matched = [k for k in self._store if fnmatch.fnmatchcase(k, pattern)]
            for key in matched:
                del self._store[key]
            return len(matched)

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        self.clear()

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        """Number of live (unexpired) entries."""
        with self._lock:
            now = self._clock()
            return sum(1 for _, expires_at in self._store.values() if now < expires_at)


class RedisCacheBackend:
    """Redis-backed substrate; every redis-py error becomes ``CacheUnavailableError``."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisCacheBackend":
        # from_url does not connect; the first command does.
        client = redis.Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_connect_timeout,
        )
        return cls(client)

    def _call(self, op: Callable[..., Any], *args: Any) -> Any:
        try:
            return op(*args)
        except redis.RedisError as exc:
            raise CacheUnavailableError(str(exc)) from exc

    def get(self, key: str) -> Optional[str]:
        return self._call(self._client.get, key)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._call(self._client.setex, key, ttl_seconds, value)

    def delete_pattern(self, pattern: str) -> int:
        keys = self._call(lambda: list(self._client.scan_iter(match=pattern)))
        if not keys:
            return 0
        return int(self._call(self._client.delete, *keys))

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    def close(self) -> None:
        self._client.close()


def build_cache_backend(settings: Settings) -> CacheBackend:
    """Pick the substrate named by ``settings.cache_backend``."""
    backend = settings.cache_backend.lower()
    if backend == "memory":
        return MemoryCacheBackend()
    if backend == "redis":
        return RedisCacheBackend.from_settings(settings)
    raise ValueError(f"Unknown cache backend: {settings.cache_backend!r}")


# ── Client ────────────────────────────────────────────────────────────────────


class CacheClient:
    """JSON cache facade that never raises on substrate failure."""

    def __init__(self, backend: CacheBackend) -> None:
        self._backend = backend

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    def get(self, key: str) -> CacheResult[Any]:
        """Return ``ok(value)`` on hit, ``ok(None)`` on miss, ``degraded`` on failure."""
        try:
            raw = self._backend.get(key)
        except CacheUnavailableError as exc:
            logger.warning("Cache get failed, treating as miss", extra={"key": key, "error": str(exc)})
            return CacheResult.unavailable()
        if raw is None:
            return CacheResult.success(None)
        try:
            return CacheResult.success(json.loads(raw))
        except ValueError:
            logger.warning("Discarding undecodable cache entry", extra={"key": key})
            return CacheResult.success(None)

    def set(self, key: str, value: Any, ttl_seconds: int) -> CacheResult[None]:
        payload = json.dumps(value, default=str)
        try:
            self._backend.set(key, payload, ttl_seconds)
        except CacheUnavailableError as exc:
            logger.warning("Cache set failed, continuing without cache", extra={"key": key, "error": str(exc)})
            return CacheResult.unavailable()
        logger.debug("Cached key", extra={"key": key, "ttl_seconds": ttl_seconds})
        return CacheResult.success()

    def delete_by_pattern(self, pattern: str) -> CacheResult[int]:
        """Delete every key matching a glob pattern; zero matches is fine."""
        try:
            deleted = self._backend.delete_pattern(pattern)
        except CacheUnavailableError as exc:
            logger.warning("Cache delete failed", extra={"pattern": pattern, "error": str(exc)})
            return CacheResult.unavailable()
        if deleted:
            logger.info("Invalidated cache keys", extra={"pattern": pattern, "count": deleted})
        return CacheResult.success(deleted)

    def is_available(self) -> bool:
        return self._backend.ping()

    def close(self) -> None:
        try:
            self._backend.close()
        except redis.RedisError as exc:
            logger.warning("Error closing cache backend", extra={"error": str(exc)})
