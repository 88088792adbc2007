"""
app/config.py – application settings loaded from environment variables.
"""
from __future__ import annotations

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── App ───────────────────────────────────────────────────────────────────
    app_name: str = "Itinerary API"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    # ── Persistent store ──────────────────────────────────────────────────────
    database_url: str = "sqlite:///./itineraries.db"
    database_connect_retries: int = 5

    # ── Cache substrate ───────────────────────────────────────────────────────
    cache_backend: str = "redis"  # "redis" | "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 2.0
    redis_connect_timeout: float = 2.0

    # ── Cache / share TTLs (seconds) ──────────────────────────────────────────
    itinerary_cache_ttl: int = 300
    share_ttl: int = 86400
    cache_verify_owner_on_hit: bool = False
    public_base_url: Optional[str] = None

    # ── Auth ──────────────────────────────────────────────────────────────────
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expires_minutes: int = 60 * 24 * 7

    # ── Rate limiting (per client IP, /api/ only) ─────────────────────────────
    rate_limit_max_requests: int = 100
    rate_limit_window_minutes: int = 15

    # ── HTTP hardening ────────────────────────────────────────────────────────
    max_body_bytes: int = 10 * 1024 * 1024
    gzip_minimum_size: int = 1000
    security_headers: bool = True


settings = Settings()
