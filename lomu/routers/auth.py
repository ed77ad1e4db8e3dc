from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..models.user import AuthTokenResponse, UserLoginRequest, UserRegisterRequest
from ..services.auth_service import AuthService, get_auth_rate_limiter, get_auth_service
from ..services.profile_service import own_profile

router = APIRouter(prefix="/auth")


def _check_rate(request: Request, action: str) -> None:
    ip = request.client.host if request.client else "unknown"
    if not get_auth_rate_limiter().increment(f"{action}:{ip}"):
        raise HTTPException(status_code=429, detail="Too many requests, please try again later")


@router.post("/register", response_model=AuthTokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: UserRegisterRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
):
    _check_rate(request, "register")
    user = await service.register_user(body)
    return AuthTokenResponse(token=service.issue_token(user.id), user=own_profile(user))


@router.post("/login", response_model=AuthTokenResponse)
async def login(
    body: UserLoginRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
):
    _check_rate(request, "login")
    user = await service.authenticate_user(body)
    return AuthTokenResponse(token=service.issue_token(user.id), user=own_profile(user))
