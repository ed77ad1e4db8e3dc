"""Repository layer to abstract MongoDB access patterns."""

from .chat import ChatThreadRepository
from .payment import PaymentRepository
from .user import UserRepository

__all__ = ["ChatThreadRepository", "PaymentRepository", "UserRepository"]
