from typing import List, Optional

from fastapi import APIRouter, Depends

from ..dependencies import get_current_user, require_admin
from ..models.chat import (
    AdminReplyRequest,
    ChatThread,
    ChatThreadSummary,
    SendMessageRequest,
    SendMessageResponse,
    ThreadStatusRequest,
)
from ..models.user import UserDocument
from ..services.chat_service import ChatService, get_chat_service

router = APIRouter(prefix="/chatAdmin")


@router.get("/user/{user_id}", response_model=ChatThread)
async def fetch_thread(
    user_id: str,
    current_user: UserDocument = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    return await service.fetch_thread(current_user, user_id)


@router.post("/send", response_model=SendMessageResponse)
async def send_message(
    body: SendMessageRequest,
    current_user: UserDocument = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    return await service.post_message(current_user, body.message, body.user_id)


@router.get("/threads", response_model=List[ChatThreadSummary])
async def list_threads(
    status: Optional[str] = None,
    admin: UserDocument = Depends(require_admin),
    service: ChatService = Depends(get_chat_service),
):
    return await service.list_threads(status)


@router.post("/{thread_id}/assign", response_model=ChatThread)
async def assign_thread(
    thread_id: str,
    admin: UserDocument = Depends(require_admin),
    service: ChatService = Depends(get_chat_service),
):
    return await service.assign(thread_id, admin)


@router.post("/{thread_id}/reply", response_model=ChatThread)
async def reply_to_thread(
    thread_id: str,
    body: AdminReplyRequest,
    admin: UserDocument = Depends(require_admin),
    service: ChatService = Depends(get_chat_service),
):
    return await service.reply(thread_id, admin, body.message, body.message_id)


@router.patch("/{thread_id}/status", response_model=ChatThread)
async def update_status(
    thread_id: str,
    body: ThreadStatusRequest,
    admin: UserDocument = Depends(require_admin),
    service: ChatService = Depends(get_chat_service),
):
    return await service.set_status(thread_id, body.status)


@router.patch("/{thread_id}/read", response_model=ChatThread)
async def mark_read(
    thread_id: str,
    current_user: UserDocument = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    return await service.mark_read(thread_id, current_user)
