"""
app/models.py – Pydantic v2 request / response schemas for the Itinerary API.

JSON on the wire is camelCase (``startDate``, ``shareableId`` …); Python code
uses snake_case. Request bodies accept either spelling.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# ── Enumerations ──────────────────────────────────────────────────────────────


class ItinerarySort(str, Enum):
    CREATED_AT = "createdAt"
    START_DATE = "startDate"
    TITLE = "title"


# ── Itinerary requests ────────────────────────────────────────────────────────


class Activity(CamelModel):
    time: str = Field(..., min_length=1, examples=["09:00"])
    description: str = Field(..., min_length=1, examples=["Louvre guided tour"])
    location: str = Field(..., min_length=1, examples=["Musée du Louvre"])


class ItineraryCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=100, examples=["Test Trip"])
    destination: str = Field(..., min_length=1, examples=["Paris"])
    start_date: date = Field(..., examples=["2024-06-01"])
    end_date: date = Field(..., examples=["2024-06-05"])
    activities: list[Activity] = Field(default_factory=list)


class ItineraryUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    destination: Optional[str] = Field(default=None, min_length=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    activities: Optional[list[Activity]] = None


# ── Itinerary responses ───────────────────────────────────────────────────────


class OwnerSummary(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    first_name: str
    last_name: str


class ItineraryOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner: OwnerSummary
    title: str
    destination: str
    start_date: date
    end_date: date
    activities: list[Activity] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ShareLinkResponse(CamelModel):
    shareable_id: str
    shareable_url: str
    expires_in: str = "24 hours"


class SharedItineraryResponse(CamelModel):
    itinerary: dict[str, Any]
    shared_at: str


# ── Auth ──────────────────────────────────────────────────────────────────────


class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$")
    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)

    @field_validator("email")
    @classmethod
    def _lowercase_email(cls, value: str) -> str:
        return value.lower()


class LoginRequest(CamelModel):
    identifier: str = Field(..., min_length=1, description="Email or username.")
    password: str = Field(..., min_length=1)


class UserOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    email: str
    first_name: str
    last_name: str
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class AuthResult(CamelModel):
    user: UserOut
    token: str


# ── Envelope ──────────────────────────────────────────────────────────────────


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ApiResponse(BaseModel):
    """Envelope shared by every endpoint, success and error alike."""

    success: bool = True
    message: str
    timestamp: str = Field(default_factory=_utcnow_iso)
    data: Optional[Any] = None
    meta: Optional[Pagination] = None
    errors: Optional[list[dict[str, Any]]] = None
    code: Optional[str] = None


# ── Health ────────────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    uptime: float
    environment: str
    version: str
    cache_available: bool


class ReadinessResponse(BaseModel):
    ready: bool
    checks: dict[str, Any]
