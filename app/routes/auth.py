"""
app/routes/auth.py – account registration and login.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.dependencies import get_auth_service
from app.errors import ConflictError, ItineraryAPIError
from app.models import ApiResponse, LoginRequest, RegisterRequest
from app.services.auth import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/register",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account",
    responses={409: {"description": "Email or username already taken."}},
)
def register(
    payload: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    try:
        result = auth.register(payload)
    except IntegrityError as exc:
        # Lost a race with a concurrent registration for the same name/email.
        raise ConflictError("User with this email or username already exists") from exc
    except SQLAlchemyError as exc:
        logger.exception("Registration failed")
        raise ItineraryAPIError("Registration failed") from exc
    return ApiResponse(message="User registered successfully", data=result.model_dump(mode="json", by_alias=True))


@router.post(
    "/login",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Log in with email or username",
    responses={401: {"description": "Invalid credentials or deactivated account."}},
)
def login(
    payload: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    try:
        result = auth.login(payload.identifier, payload.password)
    except SQLAlchemyError as exc:
        logger.exception("Login failed")
        raise ItineraryAPIError("Login failed") from exc
    return ApiResponse(message="Login successful", data=result.model_dump(mode="json", by_alias=True))
