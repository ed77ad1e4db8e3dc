"""Repository helpers for support chat threads."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..db.collections import USER_CHATS_COLLECTION

LOGGER = logging.getLogger("uvicorn.error")


class ChatThreadRepository:
    """One document per user holding the append-only message list."""

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._database = database
        self._collection: AsyncIOMotorCollection = database[USER_CHATS_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    async def get_by_user(self, user_id: ObjectId) -> Optional[Dict[str, Any]]:
        return await self._collection.find_one({"userId": user_id})

    async def get_by_id(self, thread_id: ObjectId) -> Optional[Dict[str, Any]]:
        return await self._collection.find_one({"_id": thread_id})

    async def get_or_create(self, user_id: ObjectId, *, now_ms: int) -> Dict[str, Any]:
        """Return the user's thread, creating an empty pending one if absent.

        The upsert is keyed on the unique ``userId`` so concurrent callers converge on one thread.
        """

        try:
            doc = await self._collection.find_one_and_update(
                {"userId": user_id},
                {
                    "$setOnInsert": {
                        "_id": ObjectId(),
                        "adminId": None,
                        "messages": [],
                        "status": "pending",
                        "lastActivity": now_ms,
                        "createdAt": now_ms,
                        "updatedAt": now_ms,
                    }
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Lost the insert race; the winner's document is there now.
            doc = await self._collection.find_one({"userId": user_id})
        if not doc:  # pragma: no cover - Motor returns the doc on upsert
            raise RuntimeError("chat thread upsert failed")
        return doc

    async def append_message(
        self,
        thread_id: ObjectId,
        message: Dict[str, Any],
        *,
        now_ms: int,
        reopen_closed: bool = False,
    ) -> Dict[str, Any]:
        update: Dict[str, Any] = {
            "$push": {"messages": message},
            "$set": {"lastActivity": now_ms, "updatedAt": now_ms},
        }
        doc = await self._collection.find_one_and_update(
            {"_id": thread_id},
            update,
            return_document=ReturnDocument.AFTER,
        )
        if doc and reopen_closed and doc.get("status") == "closed":
            doc = await self._collection.find_one_and_update(
                {"_id": thread_id, "status": "closed"},
                {"$set": {"status": "pending"}},
                return_document=ReturnDocument.AFTER,
            ) or await self._collection.find_one({"_id": thread_id})
        return doc

    async def set_reply(
        self,
        thread_id: ObjectId,
        message_id: ObjectId,
        reply: Dict[str, Any],
        *,
        now_ms: int,
    ) -> Optional[Dict[str, Any]]:
        return await self._collection.find_one_and_update(
            {"_id": thread_id, "messages._id": message_id},
            {
                "$set": {
                    "messages.$.reply": reply,
                    "lastActivity": now_ms,
                    "updatedAt": now_ms,
                }
            },
            return_document=ReturnDocument.AFTER,
        )

    async def assign_admin(
        self,
        thread_id: ObjectId,
        admin_id: ObjectId,
        *,
        now_ms: int,
    ) -> Optional[Dict[str, Any]]:
        """Attach an admin if none is assigned yet and move a pending thread to open."""

        await self._collection.update_one(
            {"_id": thread_id, "adminId": None},
            {"$set": {"adminId": admin_id, "updatedAt": now_ms}},
        )
        await self._collection.update_one(
            {"_id": thread_id, "status": "pending"},
            {"$set": {"status": "open", "updatedAt": now_ms}},
        )
        return await self._collection.find_one({"_id": thread_id})

    async def set_status(self, thread_id: ObjectId, status: str, *, now_ms: int) -> Optional[Dict[str, Any]]:
        return await self._collection.find_one_and_update(
            {"_id": thread_id},
            {"$set": {"status": status, "updatedAt": now_ms}},
            return_document=ReturnDocument.AFTER,
        )

    async def mark_read(
        self,
        thread_id: ObjectId,
        positions: List[int],
        *,
        now_ms: int,
        reply_positions: Sequence[int] = (),
    ) -> Optional[Dict[str, Any]]:
        """Flag the messages at ``positions`` (and replies at ``reply_positions``) as read.

        Messages are append-only, so a position keeps addressing the same message.
        """

        updates: Dict[str, Any] = {f"messages.{index}.read": True for index in positions}
        updates.update({f"messages.{index}.reply.read": True for index in reply_positions})
        updates["updatedAt"] = now_ms
        return await self._collection.find_one_and_update(
            {"_id": thread_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )

    async def list_threads(self, *, status: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if status:
            query["status"] = status
        cursor = self._collection.find(query).sort("lastActivity", DESCENDING).limit(limit)
        return await cursor.to_list(length=limit)

    async def delete_for_user(self, user_id: ObjectId) -> bool:
        result = await self._collection.delete_one({"userId": user_id})
        return bool(result.deleted_count)


__all__ = ["ChatThreadRepository"]
