from fastapi import APIRouter, Depends, Request

from ..models.user import ForgotPasswordRequest, MessageResponse, ResetPasswordRequest
from ..services.auth_service import AuthService, get_auth_service
from .auth import _check_rate

router = APIRouter(prefix="/password")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
):
    _check_rate(request, "forgot-password")
    message = await service.forgot_password(body.email)
    return MessageResponse(message=message)


@router.post("/reset-password/{token}", response_model=MessageResponse)
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
):
    await service.reset_password(token, body.password)
    return MessageResponse(message="Password has been reset successfully")
