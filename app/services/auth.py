"""
app/services/auth.py – account registration, login and bearer tokens.

Passwords are stored as ``pbkdf2_sha256$<iterations>$<salt>$<hash>``.
Tokens are HS256 JWTs whose ``sub`` is the user id.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone

import jwt

from app.config import Settings
from app.db import User
from app.errors import AuthenticationError, ConflictError
from app.models import AuthResult, RegisterRequest, UserOut
from app.services.store import UserStore

logger = logging.getLogger(__name__)

_PBKDF2_ITERATIONS = 260_000


# ── Passwords ─────────────────────────────────────────────────────────────────


def hash_password(password: str, *, iterations: int = _PBKDF2_ITERATIONS) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${base64.b64encode(digest).decode()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt, expected = encoded.split("$", 3)
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    try:
        digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    except ValueError:
        # Non-numeric or non-positive iteration count.
        logger.warning("Stored password hash is malformed")
        return False
    return hmac.compare_digest(base64.b64encode(digest).decode(), expected)


# ── Service ───────────────────────────────────────────────────────────────────


class AuthService:
    def __init__(self, users: UserStore, settings: Settings) -> None:
        self._users = users
        self._settings = settings

    def create_token(self, user_id: str) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": user_id,
            "iat": now,
            "exp": now + timedelta(minutes=self._settings.jwt_expires_minutes),
        }
        return jwt.encode(claims, self._settings.jwt_secret, algorithm=self._settings.jwt_algorithm)

    def decode_token(self, token: str) -> str:
        """Return the user id carried by a valid token."""
        try:
            claims = jwt.decode(
                token,
                self._settings.jwt_secret,
                algorithms=[self._settings.jwt_algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("Invalid token") from exc
        return str(claims["sub"])

    def authenticate(self, token: str) -> User:
        user = self._users.get(self.decode_token(token))
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid token")
        return user

    def register(self, payload: RegisterRequest) -> AuthResult:
        if self._users.exists(username=payload.username, email=payload.email):
            raise ConflictError("User with this email or username already exists")

        user = self._users.create(
            username=payload.username,
            email=payload.email,
            password_hash=hash_password(payload.password),
            first_name=payload.first_name,
            last_name=payload.last_name,
        )
        user = self._users.touch_last_login(user.id) or user
        logger.info("User registered", extra={"user_id": user.id})
        return AuthResult(user=UserOut.model_validate(user), token=self.create_token(user.id))

    def login(self, identifier: str, password: str) -> AuthResult:
        user = self._users.find_by_identifier(identifier)
        if user is None:
            raise AuthenticationError("Invalid credentials")
        if not user.is_active:
            raise AuthenticationError("Account is deactivated. Please contact support.")
        if not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid credentials")

        user = self._users.touch_last_login(user.id) or user
        logger.info("User logged in", extra={"user_id": user.id})
        return AuthResult(user=UserOut.model_validate(user), token=self.create_token(user.id))
