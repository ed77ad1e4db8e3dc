from __future__ import annotations

import hashlib
import logging
import re
import secrets
import time
from typing import Any, Dict, Optional

import bcrypt
import jwt
from bson import ObjectId

from ..config import get_settings
from ..db import get_db
from ..errors import AuthError, DuplicateError, ValidationError
from ..integrations.mailer import send_email
from ..models.user import UserDocument, UserLoginRequest, UserRegisterRequest
from ..repositories.exceptions import DuplicateKeyRepositoryError
from ..repositories.user import UserRepository

LOGGER = logging.getLogger("uvicorn.error")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
FORGOT_PASSWORD_MESSAGE = "If that email is registered, a reset link has been sent"


class RateLimiter:
    """Very small in-memory rate limiter for authentication flows."""

    def __init__(self, window_seconds: int, max_attempts: int) -> None:
        self._window = float(window_seconds)
        self._max_attempts = max_attempts
        self._state: Dict[str, Dict[str, float]] = {}

    def increment(self, key: str) -> bool:
        now = time.time()
        self._prune(now)
        record = self._state.get(key)
        if not record:
            record = {"count": 0.0, "expires": now + self._window}
        record["count"] = record.get("count", 0.0) + 1.0
        self._state[key] = record
        return record["count"] <= self._max_attempts

    def _prune(self, now: float) -> None:
        expired = [key for key, record in self._state.items() if record.get("expires", 0) < now]
        for key in expired:
            del self._state[key]

    def __len__(self) -> int:
        return len(self._state)

    def reset(self) -> None:
        self._state.clear()


_auth_limiter: Optional[RateLimiter] = None
_location_limiter: Optional[RateLimiter] = None


def get_auth_rate_limiter() -> RateLimiter:
    global _auth_limiter
    if _auth_limiter is None:
        settings = get_settings()
        _auth_limiter = RateLimiter(settings.auth_rate_limit_window, settings.auth_rate_limit_max)
    return _auth_limiter


def get_location_rate_limiter() -> RateLimiter:
    global _location_limiter
    if _location_limiter is None:
        _location_limiter = RateLimiter(60, get_settings().location_rate_limit_max)
    return _location_limiter


def reset_rate_limiters() -> None:
    global _auth_limiter, _location_limiter
    _auth_limiter = None
    _location_limiter = None


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthService:
    """Account creation, login, session tokens and the password reset flow."""

    def __init__(
        self,
        repository: UserRepository,
        *,
        jwt_secret: str,
        token_ttl_seconds: int,
        reset_token_ttl_seconds: int,
        bcrypt_rounds: int,
        frontend_url: str,
        admin_usernames: Optional[list[str]] = None,
    ) -> None:
        if not jwt_secret:
            raise RuntimeError("Missing JWT_SECRET env var for lomu")
        self._repository = repository
        self._jwt_secret = jwt_secret
        self._token_ttl = token_ttl_seconds
        self._reset_ttl = reset_token_ttl_seconds
        self._bcrypt_rounds = max(10, bcrypt_rounds)
        self._frontend_url = frontend_url.rstrip("/")
        self._admin_usernames = {name.lower() for name in admin_usernames or []}

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    def hash_password(self, raw: str) -> str:
        salt = bcrypt.gensalt(rounds=self._bcrypt_rounds)
        return bcrypt.hashpw(raw.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(raw: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(raw.encode("utf-8"), hashed.encode("utf-8"))
        except Exception:
            return False

    def issue_token(self, user_id: ObjectId) -> str:
        now = int(time.time())
        payload = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + self._token_ttl,
        }
        return jwt.encode(payload, self._jwt_secret, algorithm="HS256")

    def decode_token(self, token: str) -> Optional[ObjectId]:
        """Return the user id carried by ``token``; tampered or expired tokens yield None."""
        try:
            payload = jwt.decode(token, self._jwt_secret, algorithms=["HS256"])
        except jwt.PyJWTError:
            return None
        subject = str(payload.get("sub") or "")
        if not ObjectId.is_valid(subject):
            return None
        return ObjectId(subject)

    async def get_user_from_token(self, token: str) -> Optional[UserDocument]:
        if not token:
            return None
        user_id = self.decode_token(token)
        if user_id is None:
            return None
        return await self._repository.get_by_id(user_id)

    async def register_user(self, payload: UserRegisterRequest) -> UserDocument:
        username = (payload.username or "").strip()
        email = (payload.email or "").strip()
        password = payload.password or ""
        if not username or not email or not password:
            raise ValidationError("All fields are required")
        if len(password) < 6:
            raise ValidationError("Password should be at least 6 characters long")
        if len(username) < 3:
            raise ValidationError("Username should be at least 3 characters long")
        if not _EMAIL_RE.match(email):
            raise ValidationError("Invalid email address")
        if await self._repository.username_exists(username):
            raise DuplicateError("Username already exists")
        if await self._repository.email_exists(email):
            raise DuplicateError("Email already exists")

        now_ms = self._now_ms()
        role = "admin" if username.lower() in self._admin_usernames else "user"
        try:
            return await self._repository.create_user(
                username=username,
                email=email,
                password_hash=self.hash_password(password),
                role=role,
                created_at=now_ms,
                updated_at=now_ms,
            )
        except DuplicateKeyRepositoryError as exc:
            label = "Email" if exc.field == "email" else "Username"
            raise DuplicateError(f"{label} already exists") from None

    async def authenticate_user(self, payload: UserLoginRequest) -> UserDocument:
        email = (payload.email or "").strip()
        username = (payload.username or "").strip()
        if not payload.password or not (email or username):
            raise ValidationError("All fields are required")
        if email:
            user = await self._repository.get_by_email(email)
        else:
            user = await self._repository.get_by_username(username)
        # Same answer for unknown account and wrong password
        if not user or not self.verify_password(payload.password, user.password_hash):
            raise AuthError("Invalid credentials")
        return user

    async def forgot_password(self, email: str) -> str:
        """Start a reset for ``email`` if it is registered. The reply never reveals which case applied."""
        cleaned = (email or "").strip()
        if not cleaned:
            raise ValidationError("Email is required")
        user = await self._repository.get_by_email(cleaned)
        if not user:
            LOGGER.info("Password reset requested for unknown email")
            return FORGOT_PASSWORD_MESSAGE

        reset_token = secrets.token_hex(32)
        await self._repository.update_fields(
            user.id,
            {
                "resetPasswordToken": hash_reset_token(reset_token),
                "resetPasswordExpires": self._now_ms() + self._reset_ttl * 1000,
                "updatedAt": self._now_ms(),
            },
        )
        reset_link = f"{self._frontend_url}/reset-password/{reset_token}"
        minutes = max(1, self._reset_ttl // 60)
        html = f"""
            <h2>Password Reset Request</h2>
            <p>Hello {user.username},</p>
            <p>Click the link below to reset your password:</p>
            <a href="{reset_link}" target="_blank">{reset_link}</a>
            <p>This link will expire in {minutes} minutes.</p>
        """
        sent = await send_email(user.email, "Password Reset Request", html)
        if not sent:
            LOGGER.error("Password reset email could not be delivered for user %s", user.id)
        return FORGOT_PASSWORD_MESSAGE

    async def reset_password(self, token: str, password: str) -> UserDocument:
        if not password or len(password) < 6:
            raise ValidationError("Password must be at least 6 characters")
        if not token:
            raise ValidationError("Invalid or expired reset token")
        user = await self._repository.get_by_reset_token(hash_reset_token(token), now_ms=self._now_ms())
        if not user:
            raise ValidationError("Invalid or expired reset token")
        return await self._repository.update_fields(
            user.id,
            {"passwordHash": self.hash_password(password), "updatedAt": self._now_ms()},
            unset=("resetPasswordToken", "resetPasswordExpires"),
        )

    async def bootstrap_admins(self) -> int:
        """Promote configured usernames to the admin role."""
        return await self._repository.promote_admins(self._admin_usernames)


def get_auth_service() -> AuthService:
    settings = get_settings()
    return AuthService(
        UserRepository(get_db()),
        jwt_secret=settings.jwt_secret,
        token_ttl_seconds=settings.auth_token_ttl,
        reset_token_ttl_seconds=settings.reset_token_ttl,
        bcrypt_rounds=settings.bcrypt_rounds,
        frontend_url=settings.frontend_url,
        admin_usernames=settings.admin_usernames,
    )


__all__ = [
    "AuthService",
    "FORGOT_PASSWORD_MESSAGE",
    "RateLimiter",
    "get_auth_rate_limiter",
    "get_auth_service",
    "get_location_rate_limiter",
    "hash_reset_token",
    "reset_rate_limiters",
]
