from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .identifiers import PyObjectId

ThreadStatus = Literal["pending", "open", "closed"]


class ChatReply(BaseModel):
    """Single nested reply attached to a message."""

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    sender: PyObjectId
    sender_name: Optional[str] = Field(default=None, alias="senderName")
    message: str
    timestamp: int
    read: bool = False


class ChatMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: PyObjectId = Field(alias="_id")
    sender: PyObjectId
    sender_name: Optional[str] = Field(default=None, alias="senderName")
    message: str
    timestamp: int
    read: bool = False
    reply: Optional[ChatReply] = None


class ChatThread(BaseModel):
    """Support conversation between one user and the admin role."""

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: PyObjectId = Field(alias="_id")
    user_id: PyObjectId = Field(alias="userId")
    username: Optional[str] = None
    admin_id: Optional[PyObjectId] = Field(default=None, alias="adminId")
    messages: List[ChatMessage] = Field(default_factory=list)
    status: ThreadStatus = "pending"
    last_activity: int = Field(alias="lastActivity")
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")


class ChatThreadSummary(BaseModel):
    """Thread listing entry for the admin inbox."""

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: PyObjectId = Field(alias="_id")
    user_id: PyObjectId = Field(alias="userId")
    username: Optional[str] = None
    admin_id: Optional[PyObjectId] = Field(default=None, alias="adminId")
    status: ThreadStatus
    last_activity: int = Field(alias="lastActivity")
    unread_count: int = Field(default=0, alias="unreadCount")
    last_message: Optional[ChatMessage] = Field(default=None, alias="lastMessage")


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    message: str = ""


class SendMessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    message: ChatMessage
    thread_id: PyObjectId = Field(alias="threadId")
    status: ThreadStatus


class AdminReplyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    message_id: Optional[str] = Field(default=None, alias="messageId")


class ThreadStatusRequest(BaseModel):
    status: str


__all__ = [
    "AdminReplyRequest",
    "ChatMessage",
    "ChatReply",
    "ChatThread",
    "ChatThreadSummary",
    "SendMessageRequest",
    "SendMessageResponse",
    "ThreadStatus",
    "ThreadStatusRequest",
]
