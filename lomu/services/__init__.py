from .auth_service import AuthService, get_auth_service
from .chat_service import ChatService, get_chat_service
from .matching_service import MatchingEngine, get_matching_engine
from .payment_service import PaymentService, get_payment_service
from .profile_service import ProfileService, get_profile_service

__all__ = [
    "AuthService",
    "ChatService",
    "MatchingEngine",
    "PaymentService",
    "ProfileService",
    "get_auth_service",
    "get_chat_service",
    "get_matching_engine",
    "get_payment_service",
    "get_profile_service",
]
