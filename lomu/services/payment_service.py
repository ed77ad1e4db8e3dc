from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, Optional

from ..config import get_settings
from ..db import get_db
from ..errors import UpstreamError, ValidationError
from ..integrations.mpesa import MpesaClient
from ..models.payment import StkPushResponse
from ..models.user import UserDocument
from ..repositories.exceptions import DuplicateKeyRepositoryError
from ..repositories.payment import PaymentRepository

LOGGER = logging.getLogger("uvicorn.error")

_PHONE_RE = re.compile(r"^254[17]\d{8}$")


def _now_ms() -> int:
    return int(time.time() * 1000)


def normalize_phone(raw: Any) -> str:
    """Convert ``07XXXXXXXX``, ``+2547XXXXXXXX`` or ``7XXXXXXXX`` into ``2547XXXXXXXX``."""
    digits = re.sub(r"[\s\-()+]", "", str(raw or ""))
    if digits.startswith("0") and len(digits) == 10:
        digits = "254" + digits[1:]
    elif len(digits) == 9 and digits[0] in "17":
        digits = "254" + digits
    if not _PHONE_RE.match(digits):
        raise ValidationError("Invalid phone number")
    return digits


def normalize_amount(raw: Any) -> int:
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        raise ValidationError("Amount must be a positive whole number") from None
    if value <= 0 or not value.is_integer():
        raise ValidationError("Amount must be a positive whole number")
    return int(value)


def _callback_items(callback: Dict[str, Any]) -> Dict[str, Any]:
    metadata = callback.get("CallbackMetadata") or {}
    items = metadata.get("Item") or []
    return {item.get("Name"): item.get("Value") for item in items if isinstance(item, dict) and item.get("Name")}


class PaymentService:
    def __init__(self, repository: PaymentRepository, client: MpesaClient) -> None:
        self._repository = repository
        self._client = client

    async def initiate(self, user: UserDocument, phone: Any, amount: Any) -> StkPushResponse:
        msisdn = normalize_phone(phone)
        value = normalize_amount(amount)
        data = await self._client.stk_push(phone=msisdn, amount=value, reference=user.username[:12] or "Lomu")
        checkout_id = str(data["CheckoutRequestID"])
        try:
            await self._repository.create_pending(
                checkout_request_id=checkout_id,
                merchant_request_id=data.get("MerchantRequestID"),
                user_id=str(user.id),
                phone=msisdn,
                amount=value,
                now_ms=_now_ms(),
            )
        except DuplicateKeyRepositoryError:
            LOGGER.error("Gateway returned a checkout id that is already recorded: %s", checkout_id)
            raise UpstreamError("Failed to initiate STK Push") from None
        LOGGER.info("STK push %s initiated for user %s", checkout_id, user.id)
        return StkPushResponse(
            message="STK Push initiated",
            checkoutRequestId=checkout_id,
            merchantRequestId=data.get("MerchantRequestID"),
            customerMessage=data.get("CustomerMessage"),
        )

    async def handle_callback(self, payload: Any) -> Optional[str]:
        """Apply a gateway callback to its pending payment.

        Returns the resulting status, or None when the callback was ignored. Never raises for
        malformed or unknown callbacks.
        """
        callback = ((payload or {}).get("Body") or {}).get("stkCallback") if isinstance(payload, dict) else None
        if not isinstance(callback, dict):
            LOGGER.warning("Ignoring malformed M-Pesa callback")
            return None
        checkout_id = callback.get("CheckoutRequestID")
        if not checkout_id:
            LOGGER.warning("Ignoring M-Pesa callback without CheckoutRequestID")
            return None

        record = await self._repository.get_by_checkout_id(str(checkout_id))
        if record is None:
            LOGGER.warning("Ignoring M-Pesa callback for unknown checkout %s", checkout_id)
            return None
        if record.status != "pending":
            LOGGER.info("Ignoring repeated M-Pesa callback for %s (already %s)", checkout_id, record.status)
            return None

        try:
            result_code = int(callback.get("ResultCode"))
        except (TypeError, ValueError):
            LOGGER.warning("Ignoring M-Pesa callback with invalid ResultCode for %s", checkout_id)
            return None

        updates: Dict[str, Any] = {
            "resultCode": result_code,
            "resultDesc": callback.get("ResultDesc"),
            "updatedAt": _now_ms(),
        }
        if result_code == 0:
            items = _callback_items(callback)
            amount = items.get("Amount")
            phone = items.get("PhoneNumber")
            try:
                paid = None if amount is None else int(float(amount))
            except (TypeError, ValueError):
                LOGGER.error("M-Pesa callback with invalid Amount for %s", checkout_id)
                return None
            if paid is not None and paid != record.amount:
                LOGGER.error("M-Pesa callback amount mismatch for %s: %s != %s", checkout_id, amount, record.amount)
                return None
            if phone is not None and str(phone) != record.phone:
                LOGGER.error("M-Pesa callback phone mismatch for %s", checkout_id)
                return None
            updates["status"] = "success"
            updates["receipt"] = items.get("MpesaReceiptNumber")
        else:
            updates["status"] = "failed"

        resolved = await self._repository.resolve_pending(str(checkout_id), updates)
        if resolved is None:
            return None
        LOGGER.info("Payment %s %s: %s", checkout_id, resolved.status, resolved.result_desc)
        return resolved.status


_mpesa_client: Optional[MpesaClient] = None


def get_mpesa_client() -> MpesaClient:
    global _mpesa_client
    if _mpesa_client is None:
        _mpesa_client = MpesaClient(get_settings())
    return _mpesa_client


async def close_mpesa_client() -> None:
    global _mpesa_client
    if _mpesa_client is not None:
        await _mpesa_client.close()
        _mpesa_client = None


def get_payment_service() -> PaymentService:
    return PaymentService(PaymentRepository(get_db()), get_mpesa_client())


__all__ = [
    "PaymentService",
    "close_mpesa_client",
    "get_mpesa_client",
    "get_payment_service",
    "normalize_amount",
    "normalize_phone",
]
