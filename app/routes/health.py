"""
app/routes/health.py – liveness and readiness endpoints.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.dependencies import Services, get_services
from app.models import HealthResponse, ReadinessResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_STARTED_AT = time.monotonic()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Liveness probe",
    description="Returns 200 while the process is up; also reports cache reachability.",
)
def health(services: Services = Depends(get_services)) -> HealthResponse:
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=round(time.monotonic() - _STARTED_AT, 3),
        environment=services.settings.environment,
        version=services.settings.app_version,
        cache_available=services.cache.is_available(),
    )


@router.get(
    "/readyz",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    description=(
        "Ready when the database answers. The cache is reported but not required: "
        "without it reads fall through to the store and only share creation fails."
    ),
)
def readyz(services: Services = Depends(get_services)) -> ReadinessResponse:
    checks: dict = {}

    try:
        with services.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        checks["database"] = True
    except SQLAlchemyError as exc:
        logger.warning("Database readiness check failed: %s", exc)
        checks["database"] = False

    checks["cache"] = services.cache.is_available()
    checks["cache_backend"] = services.settings.cache_backend

    return ReadinessResponse(ready=checks["database"], checks=checks)
