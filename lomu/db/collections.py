"""MongoDB collection names used by the API."""

from __future__ import annotations

USERS_COLLECTION = "users"
USER_CHATS_COLLECTION = "userchats"
PAYMENTS_COLLECTION = "payments"

__all__ = [
    "USERS_COLLECTION",
    "USER_CHATS_COLLECTION",
    "PAYMENTS_COLLECTION",
]
