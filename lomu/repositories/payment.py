"""Repository helpers for M-Pesa payment requests."""

from __future__ import annotations

from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..db.collections import PAYMENTS_COLLECTION
from ..models.payment import PaymentRecord
from .exceptions import DuplicateKeyRepositoryError


class PaymentRepository:
    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._database = database
        self._collection: AsyncIOMotorCollection = database[PAYMENTS_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    async def create_pending(
        self,
        *,
        checkout_request_id: str,
        merchant_request_id: Optional[str],
        user_id: str,
        phone: str,
        amount: int,
        now_ms: int,
    ) -> PaymentRecord:
        doc = {
            "checkoutRequestId": checkout_request_id,
            "merchantRequestId": merchant_request_id,
            "userId": user_id,
            "phone": phone,
            "amount": amount,
            "status": "pending",
            "createdAt": now_ms,
            "updatedAt": now_ms,
        }
        try:
            await self._collection.insert_one(doc)
        except DuplicateKeyError as exc:
            raise DuplicateKeyRepositoryError.from_driver(exc, ("checkoutRequestId",), label="payment") from exc
        return PaymentRecord(**doc)

    async def get_by_checkout_id(self, checkout_request_id: str) -> Optional[PaymentRecord]:
        doc = await self._collection.find_one({"checkoutRequestId": checkout_request_id})
        return PaymentRecord(**doc) if doc else None

    async def resolve_pending(
        self,
        checkout_request_id: str,
        updates: Dict[str, Any],
    ) -> Optional[PaymentRecord]:
        """Settle a payment that is still pending; settled payments are left untouched."""

        doc = await self._collection.find_one_and_update(
            {"checkoutRequestId": checkout_request_id, "status": "pending"},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        return PaymentRecord(**doc) if doc else None


__all__ = ["PaymentRepository"]
