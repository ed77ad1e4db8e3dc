from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from bson import ObjectId

from ..db import get_db
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models.chat import ChatMessage, ChatThread, ChatThreadSummary, SendMessageResponse
from ..models.identifiers import parse_object_id
from ..models.user import UserDocument
from ..repositories.chat import ChatThreadRepository
from ..repositories.user import UserRepository

LOGGER = logging.getLogger("uvicorn.error")

MAX_MESSAGE_LENGTH = 2000
ADMIN_SETTABLE_STATUSES = ("open", "closed")
THREAD_STATUSES = ("pending", "open", "closed")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _clean_body(body: Optional[str]) -> str:
    text = (body or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message must be {MAX_MESSAGE_LENGTH} characters or fewer")
    return text


def _new_message(sender: ObjectId, body: str, now_ms: int) -> Dict[str, Any]:
    return {"_id": ObjectId(), "sender": sender, "message": body, "timestamp": now_ms, "read": False}


class ChatService:
    """Support threads: one append-only conversation per user, answered by admins."""

    def __init__(self, chats: ChatThreadRepository, users: UserRepository) -> None:
        self._chats = chats
        self._users = users

    def _check_access(self, actor: UserDocument, owner_id: ObjectId) -> None:
        if owner_id != actor.id and not actor.is_admin:
            raise ForbiddenError("You can only access your own chat")

    async def _present(self, doc: Dict[str, Any]) -> ChatThread:
        senders = {doc.get("userId")}
        for message in doc.get("messages") or []:
            senders.add(message.get("sender"))
            reply = message.get("reply")
            if reply:
                senders.add(reply.get("sender"))
        names = await self._users.usernames_for(senders)

        messages = []
        for message in doc.get("messages") or []:
            entry = dict(message, senderName=names.get(message.get("sender")))
            if entry.get("reply"):
                entry["reply"] = dict(entry["reply"], senderName=names.get(entry["reply"].get("sender")))
            messages.append(entry)
        return ChatThread(**dict(doc, messages=messages, username=names.get(doc.get("userId"))))

    async def _require_thread(self, thread_id: Any) -> Dict[str, Any]:
        oid = parse_object_id(thread_id, "thread id")
        doc = await self._chats.get_by_id(oid)
        if not doc:
            raise NotFoundError("Chat not found")
        return doc

    async def post_message(
        self,
        actor: UserDocument,
        body: Optional[str],
        user_id: Optional[str] = None,
    ) -> SendMessageResponse:
        """Append a message to a user's thread, creating the thread on first contact.

        Messages are always accepted. A user writing into a closed thread moves it back to
        pending; an admin writing into someone else's thread claims it.
        """
        text = _clean_body(body)
        owner_id = parse_object_id(user_id, "user id") if user_id else actor.id
        self._check_access(actor, owner_id)
        if owner_id != actor.id and not await self._users.exists(owner_id):
            raise NotFoundError("User not found")

        now_ms = _now_ms()
        thread = await self._chats.get_or_create(owner_id, now_ms=now_ms)
        message = _new_message(actor.id, text, now_ms)
        from_owner = owner_id == actor.id
        updated = await self._chats.append_message(
            thread["_id"],
            message,
            now_ms=now_ms,
            reopen_closed=from_owner,
        )
        if not from_owner:
            updated = await self._chats.assign_admin(thread["_id"], actor.id, now_ms=now_ms)
        status = (updated or thread).get("status", "pending")
        return SendMessageResponse(
            message=ChatMessage(**dict(message, senderName=actor.username)),
            threadId=thread["_id"],
            status=status,
        )

    async def fetch_thread(self, actor: UserDocument, user_id: Any) -> ChatThread:
        owner_id = parse_object_id(user_id, "user id")
        self._check_access(actor, owner_id)
        if owner_id != actor.id and not await self._users.exists(owner_id):
            raise NotFoundError("User not found")
        doc = await self._chats.get_or_create(owner_id, now_ms=_now_ms())
        return await self._present(doc)

    async def list_threads(self, status: Optional[str] = None, limit: int = 100) -> List[ChatThreadSummary]:
        if status and status not in THREAD_STATUSES:
            raise ValidationError("Invalid status")
        docs = await self._chats.list_threads(status=status, limit=limit)
        names = await self._users.usernames_for(doc.get("userId") for doc in docs)
        summaries = []
        for doc in docs:
            messages = doc.get("messages") or []
            owner = doc.get("userId")
            unread = sum(1 for m in messages if m.get("sender") == owner and not m.get("read"))
            last = messages[-1] if messages else None
            summaries.append(
                ChatThreadSummary(
                    _id=doc["_id"],
                    userId=owner,
                    username=names.get(owner),
                    adminId=doc.get("adminId"),
                    status=doc.get("status", "pending"),
                    lastActivity=doc.get("lastActivity", 0),
                    unreadCount=unread,
                    lastMessage=ChatMessage(**dict(last, senderName=names.get(last.get("sender")))) if last else None,
                )
            )
        return summaries

    async def assign(self, thread_id: Any, admin: UserDocument) -> ChatThread:
        doc = await self._require_thread(thread_id)
        updated = await self._chats.assign_admin(doc["_id"], admin.id, now_ms=_now_ms())
        if not updated:
            raise NotFoundError("Chat not found")
        return await self._present(updated)

    async def reply(
        self,
        thread_id: Any,
        admin: UserDocument,
        body: Optional[str],
        message_id: Optional[str] = None,
    ) -> ChatThread:
        text = _clean_body(body)
        doc = await self._require_thread(thread_id)
        now_ms = _now_ms()
        if message_id:
            target = parse_object_id(message_id, "message id")
            reply = {"sender": admin.id, "message": text, "timestamp": now_ms, "read": False}
            if not await self._chats.set_reply(doc["_id"], target, reply, now_ms=now_ms):
                raise NotFoundError("Message not found")
        else:
            await self._chats.append_message(doc["_id"], _new_message(admin.id, text, now_ms), now_ms=now_ms)
        updated = await self._chats.assign_admin(doc["_id"], admin.id, now_ms=now_ms)
        return await self._present(updated or doc)

    async def set_status(self, thread_id: Any, status: str) -> ChatThread:
        value = (status or "").strip().lower()
        if value not in ADMIN_SETTABLE_STATUSES:
            raise ValidationError("Status must be open or closed")
        doc = await self._require_thread(thread_id)
        updated = await self._chats.set_status(doc["_id"], value, now_ms=_now_ms())
        if not updated:
            raise NotFoundError("Chat not found")
        LOGGER.info("Chat %s set to %s", doc["_id"], value)
        return await self._present(updated)

    async def mark_read(self, thread_id: Any, reader: UserDocument) -> ChatThread:
        """Mark everything in the thread not written by ``reader`` as read."""
        doc = await self._require_thread(thread_id)
        self._check_access(reader, doc["userId"])
        positions: List[int] = []
        reply_positions: List[int] = []
        for index, message in enumerate(doc.get("messages") or []):
            if message.get("sender") != reader.id and not message.get("read"):
                positions.append(index)
            reply = message.get("reply") or {}
            if reply and reply.get("sender") != reader.id and not reply.get("read"):
                reply_positions.append(index)
        if not positions and not reply_positions:
            return await self._present(doc)
        updated = await self._chats.mark_read(
            doc["_id"],
            positions,
            reply_positions=reply_positions,
            now_ms=_now_ms(),
        )
        return await self._present(updated or doc)


def get_chat_service() -> ChatService:
    db = get_db()
    return ChatService(ChatThreadRepository(db), UserRepository(db))


__all__ = ["ChatService", "get_chat_service"]
