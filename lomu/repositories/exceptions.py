"""Exceptions raised by the MongoDB repositories."""

from __future__ import annotations

from typing import Optional, Sequence

from pymongo.errors import DuplicateKeyError


class RepositoryError(RuntimeError):
    """Base exception raised when a repository operation fails."""


class DuplicateKeyRepositoryError(RepositoryError):
    """A write hit a unique index (username, email, checkout id).

    ``field`` is the logical field name so services can word the client message.
    """

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field

    @classmethod
    def from_driver(
        cls, exc: DuplicateKeyError, candidates: Sequence[str], *, label: str = "document"
    ) -> "DuplicateKeyRepositoryError":
        field = duplicate_field(exc, candidates)
        return cls(f"{field or label} already exists", field=field)


class NotFoundRepositoryError(RepositoryError):
    """Target document vanished between read and write."""


def duplicate_field(exc: DuplicateKeyError, candidates: Sequence[str]) -> Optional[str]:
    # keyPattern names the index keys ("usernameLower", "email"); older servers only put it in the message
    details = getattr(exc, "details", None) or {}
    pattern = details.get("keyPattern") or details.get("keyValue") or {}
    for key in pattern:
        for name in candidates:
            if key.startswith(name):
                return name
    text = str(exc)
    for name in candidates:
        if name in text:
            return name
    return None


__all__ = [
    "DuplicateKeyRepositoryError",
    "NotFoundRepositoryError",
    "RepositoryError",
    "duplicate_field",
]
