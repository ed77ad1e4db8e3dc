import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, GEOSPHERE

from .collections import PAYMENTS_COLLECTION, USER_CHATS_COLLECTION, USERS_COLLECTION

LOGGER = logging.getLogger("uvicorn.error")


async def ensure_user_indexes(db: AsyncIOMotorDatabase) -> None:
    collection = db[USERS_COLLECTION]
    await collection.create_index("usernameLower", name="users_username_unique", unique=True)
    await collection.create_index("emailLower", name="users_email_unique", unique=True)
    await collection.create_index("resetPasswordToken", name="users_reset_token_idx", sparse=True)
    await collection.create_index("gender", name="users_gender_idx")
    try:
        await collection.create_index([("location", GEOSPHERE)], name="users_location_2dsphere")
    except Exception as exc:  # pragma: no cover - not every backend supports 2dsphere
        LOGGER.error("Failed to create 2dsphere index on users.location: %s", exc)


async def ensure_chat_indexes(db: AsyncIOMotorDatabase) -> None:
    collection = db[USER_CHATS_COLLECTION]
    await collection.create_index("userId", name="userchats_user_unique", unique=True)
    await collection.create_index(
        [("status", ASCENDING), ("lastActivity", DESCENDING)],
        name="userchats_status_activity_idx",
    )


async def ensure_payment_indexes(db: AsyncIOMotorDatabase) -> None:
    collection = db[PAYMENTS_COLLECTION]
    await collection.create_index("checkoutRequestId", name="payments_checkout_unique", unique=True)
    await collection.create_index(
        [("userId", ASCENDING), ("createdAt", DESCENDING)],
        name="payments_user_idx",
    )


__all__ = ["ensure_user_indexes", "ensure_chat_indexes", "ensure_payment_indexes"]
