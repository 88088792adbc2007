"""
app/main.py – FastAPI application factory for the Itinerary API.

Features
────────
• Structured logging via structlog
• Request-ID middleware (X-Request-ID header)
• Rate limiting on /api/ (slowapi limiter storage, per client IP, 100 req / 15 min)
• Security headers, gzip compression and a request body size cap
• One cache client + store per app, built at startup and injected
• Uniform ``{success, message, timestamp, ...}`` envelope for errors
"""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from limits import RateLimitItem, RateLimitItemPerMinute
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.gzip import GZipMiddleware

from app.config import Settings, settings as default_settings
from app.db import init_db
from app.dependencies import build_services
from app.errors import ErrorCode, ItineraryAPIError
from app.models import ApiResponse
from app.routes.auth import router as auth_router
from app.routes.health import router as health_router
from app.routes.itineraries import router as itineraries_router
from app.services.cache import CacheBackend

# ── Logging setup ─────────────────────────────────────────────────────────────


def _configure_logging(settings: Settings) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer()
            if settings.debug
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
    )
    # Also configure standard logging to go through structlog
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )


logger = structlog.get_logger(__name__)

# ── Request-ID middleware ─────────────────────────────────────────────────────


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Attaches a unique request ID to each incoming request.
    Reads X-Request-ID from the client if present, otherwise generates one.
    Echoes the request ID in the response header.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        response: Response = await call_next(request)
        duration_ms = round((time.perf_counter() - start) * 1000, 1)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration_ms)

        logger.info(
            "request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        structlog.contextvars.clear_contextvars()
        return response


# ── Error envelopes ───────────────────────────────────────────────────────────


def _envelope(status_code: int, message: str, code: Optional[str] = None, errors=None) -> JSONResponse:
    body = ApiResponse(success=False, message=message, code=code, errors=errors)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def _api_error_handler(request: Request, exc: ItineraryAPIError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request failed", error=exc.message, cause=repr(exc.__cause__))
    return _envelope(exc.status_code, exc.message, exc.code.value, exc.errors)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]) or "body",
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return _envelope(400, "Validation failed", ErrorCode.VALIDATION_ERROR.value, errors)


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return _envelope(404, "Route not found", ErrorCode.NOT_FOUND.value)
    return _envelope(exc.status_code, str(exc.detail))


def _make_unhandled_handler(settings: Settings):
    async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled error", path=request.url.path, error=repr(exc))
        message = f"Internal server error: {exc}" if settings.debug else "Internal server error"
        return _envelope(500, message, ErrorCode.INTERNAL_ERROR.value)

    return _unhandled_error_handler


# ── Rate limiting / hardening middleware ──────────────────────────────────────


class APIRateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed-window request limit per client IP, applied only under ``/api/``.
    Counters live in the slowapi limiter's storage; the limit is shared by
    every API route rather than kept per endpoint.
    """

    def __init__(self, app, limiter: Limiter, limit: RateLimitItem, path_prefix: str = "/api/") -> None:
        super().__init__(app)
        self._limiter = limiter
        self._limit = limit
        self._path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next) -> Response:
        if not request.url.path.startswith(self._path_prefix):
            return await call_next(request)

        client = get_remote_address(request)
        allowed = self._limiter.limiter.hit(self._limit, "api", client)
        reset_at, remaining = self._limiter.limiter.get_window_stats(self._limit, "api", client)

        if not allowed:
            logger.warning("rate limit exceeded", client=client, path=request.url.path)
            response: Response = _envelope(
                429,
                "Too many requests from this IP, please try again later.",
                ErrorCode.RATE_LIMIT_EXCEEDED.value,
            )
            response.headers["Retry-After"] = str(max(0, int(reset_at - time.time())))
        else:
            response = await call_next(request)

        response.headers["RateLimit-Limit"] = str(self._limit.amount)
        response.headers["RateLimit-Remaining"] = str(remaining)
        return response


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests whose declared Content-Length exceeds ``max_bytes``."""

    def __init__(self, app, max_bytes: int) -> None:
        super().__init__(app)
        self._max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next) -> Response:
        declared = request.headers.get("content-length")
        if declared is not None:
            if not declared.isdigit():
                return _envelope(400, "Invalid Content-Length header", ErrorCode.VALIDATION_ERROR.value)
            if int(declared) > self._max_bytes:
                return _envelope(413, "Request entity too large", ErrorCode.PAYLOAD_TOO_LARGE.value)
        return await call_next(request)


_SECURITY_HEADERS = {
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}

_CONTENT_SECURITY_POLICY = (
    "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
    "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
    "object-src 'none';script-src 'self';script-src-attr 'none';"
    "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
)

# Swagger UI / ReDoc load their assets from a CDN.
_DOCS_PATHS = ("/docs", "/redoc")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds conservative browser security headers to every response."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        for name, value in _SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if not request.url.path.startswith(_DOCS_PATHS):
            response.headers.setdefault("Content-Security-Policy", _CONTENT_SECURITY_POLICY)
        return response


# ── Application factory ───────────────────────────────────────────────────────


def create_app(
    settings: Optional[Settings] = None,
    cache_backend: Optional[CacheBackend] = None,
) -> FastAPI:
    settings = settings or default_settings
    _configure_logging(settings)
    services = build_services(settings, cache_backend=cache_backend)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Itinerary API starting",
            name=settings.app_name,
            version=settings.app_version,
            cache_backend=settings.cache_backend,
        )
        init_db(services.engine, attempts=settings.database_connect_retries)
        if not services.cache.is_available():
            logger.warning("cache substrate unreachable at startup, running without cache")
        yield
        services.cache.close()
        services.engine.dispose()
        logger.info("Itinerary API shutting down")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "**Itinerary API** – travel itineraries with a read-through cache "
            "and 24-hour public share links.\n\n"
            "Authenticate with `Authorization: Bearer <token>` from `/api/auth/login`."
        ),
        openapi_tags=[
            {"name": "Auth", "description": "Register and log in."},
            {"name": "Itineraries", "description": "Itinerary CRUD and share links."},
            {"name": "Health", "description": "Liveness and readiness probes."},
        ],
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.services = services

    # ── Rate limiter ──────────────────────────────────────────────────────────
    app.state.limiter = Limiter(key_func=get_remote_address)
    api_limit = RateLimitItemPerMinute(
        settings.rate_limit_max_requests, multiples=settings.rate_limit_window_minutes
    )

    # ── Middleware (order matters – each add wraps the previous ones) ─────────
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_body_bytes)
    app.add_middleware(APIRateLimitMiddleware, limiter=app.state.limiter, limit=api_limit)
    if settings.security_headers:
        app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=settings.gzip_minimum_size)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Error handlers ────────────────────────────────────────────────────────
    app.add_exception_handler(ItineraryAPIError, _api_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _make_unhandled_handler(settings))

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(itineraries_router)

    return app


app = create_app()
