from fastapi import Depends, Header

from .errors import AuthError, ForbiddenError
from .models.user import UserDocument
from .services.auth_service import AuthService, get_auth_service


def _extract_token(authorization: str) -> str:
    if not authorization.lower().startswith("bearer "):
        raise AuthError("Not authorized, no token")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise AuthError("Not authorized, no token")
    return token


async def get_current_user(
    authorization: str = Header(default=""),
    service: AuthService = Depends(get_auth_service),
) -> UserDocument:
    if not authorization:
        raise AuthError("Not authorized, no token")
    token = _extract_token(authorization)
    user = await service.get_user_from_token(token)
    if not user:
        raise AuthError("Not authorized, token failed")
    return user


async def require_admin(current_user: UserDocument = Depends(get_current_user)) -> UserDocument:
    if not current_user.is_admin:
        raise ForbiddenError("Admin access required")
    return current_user


__all__ = ["get_current_user", "require_admin"]
