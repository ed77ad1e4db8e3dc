"""Service-level error taxonomy mapped onto HTTP responses."""

from __future__ import annotations

from typing import Optional


class LomuError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    default_message: str = "Server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(LomuError):
    status_code = 400
    default_message = "Invalid request"


class DuplicateError(LomuError):
    status_code = 400
    default_message = "Already exists"


class DuplicateActionError(DuplicateError):
    """A like/pass was already recorded against the target."""


class NotFoundError(LomuError):
    status_code = 404
    default_message = "Not found"


class SelfActionError(LomuError):
    status_code = 400
    default_message = "You can't do that to yourself"


class AuthError(LomuError):
    status_code = 401
    default_message = "Not authorized"


class ForbiddenError(AuthError):
    status_code = 403
    default_message = "Forbidden"


class UpstreamError(LomuError):
    status_code = 502
    default_message = "Upstream service failed"


class ServerError(LomuError):
    status_code = 500
    default_message = "Server error"


__all__ = [
    "AuthError",
    "DuplicateActionError",
    "DuplicateError",
    "ForbiddenError",
    "LomuError",
    "NotFoundError",
    "SelfActionError",
    "ServerError",
    "UpstreamError",
    "ValidationError",
]
