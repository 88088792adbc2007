"""
app/errors.py – domain exceptions and the error codes sent to clients.

Services raise these; the handlers registered in ``app.main`` turn them into
the standard error envelope. Raw exception detail never reaches the client.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ItineraryAPIError(Exception):
    """Base exception for every error the API reports to a client."""

    status_code: int = 500
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, errors: Optional[list[dict[str, Any]]] = None) -> None:
        self.message = message
        self.errors = errors
        super().__init__(message)


class NotFoundError(ItineraryAPIError):
    status_code = 404
    code = ErrorCode.NOT_FOUND


class AccessDeniedError(ItineraryAPIError):
    """Authenticated, but not the owner of the requested itinerary."""

    status_code = 403
    code = ErrorCode.FORBIDDEN


class AuthenticationError(ItineraryAPIError):
    status_code = 401
    code = ErrorCode.UNAUTHORIZED


class ConflictError(ItineraryAPIError):
    status_code = 409
    code = ErrorCode.CONFLICT


class DomainValidationError(ItineraryAPIError):
    status_code = 400
    code = ErrorCode.VALIDATION_ERROR


class ShareUnavailableError(ItineraryAPIError):
    """The cache substrate could not store a share snapshot."""

    status_code = 500
    code = ErrorCode.INTERNAL_ERROR
