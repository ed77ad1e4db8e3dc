import logging

from fastapi import APIRouter, Depends, Request

from ..dependencies import get_current_user
from ..models.payment import CALLBACK_ACK, StkPushRequest, StkPushResponse
from ..models.user import UserDocument
from ..services.payment_service import PaymentService, get_payment_service

LOGGER = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/payments")


@router.post("/stkpush", response_model=StkPushResponse)
async def stk_push(
    body: StkPushRequest,
    current_user: UserDocument = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return await service.initiate(current_user, body.phone, body.amount)


@router.post("/mpesa-callback")
async def mpesa_callback(request: Request, service: PaymentService = Depends(get_payment_service)):
    # The gateway only needs an acknowledgement; outcomes are recorded, never echoed back
    try:
        payload = await request.json()
    except ValueError:
        LOGGER.warning("M-Pesa callback body is not JSON")
        return CALLBACK_ACK
    try:
        await service.handle_callback(payload)
    except Exception as exc:
        LOGGER.error("M-Pesa callback processing failed: %s", exc)
    return CALLBACK_ACK
