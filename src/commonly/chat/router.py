"""Chat API endpoints: chats, messages, read state, typing."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.auth.dependencies import get_current_user
from commonly.chat.message_service import (
    ChatNotFoundError,
    NotParticipantError,
    build_message_list,
    get_messages,
    send_message,
)
from commonly.chat.participant_service import get_chat_participants
from commonly.chat.schemas import (
    ChatListResponse,
    ChatResponse,
    MarkChatReadResponse,
    MessageListResponse,
    MessageResponse,
    ParticipantsResponse,
    ReadStatusRequest,
    SendMessageRequest,
    StartChatRequest,
    TypingRequest,
    TypingResponse,
    UnreadCountResponse,
    UnreadIdsResponse,
)
from commonly.chat.service import chat_to_response, get_chat_by_id, get_or_create_chat, get_user_chats
from commonly.chat.typing_service import get_typing_users, update_typing_status
from commonly.chat.unread_service import (
    CANNOT_UNREAD,
    get_total_unread_count,
    get_unread_count,
    get_unread_message_ids,
    mark_chat_as_read,
    update_message_read_status,
)
from commonly.config import get_settings
from commonly.database import get_session
from commonly.db.models import Chat, Message, User
from commonly.dependencies import get_redis_dep
from commonly.users.service import get_user

router = APIRouter(prefix="/api/v1", tags=["Chats"])


async def _participant_chat(db: AsyncSession, chat_id: str, user: User) -> Chat:
    chat = await get_chat_by_id(db, chat_id)
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    if user.uid not in (chat.participants or []):
        raise HTTPException(status_code=403, detail="Not a participant of this chat")
    return chat


def _raise_backend_error(error: str | None) -> None:
    if error is not None:
        raise HTTPException(status_code=503, detail="Chat storage unavailable")


@router.get("/chats", response_model=ChatListResponse)
async def list_chats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """List the user's chats, most recently active first."""
    return ChatListResponse(chats=await get_user_chats(db, user.uid))


@router.post("/chats", response_model=ChatResponse)
async def start_chat(
    body: StartChatRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Open the chat with another user, creating it on first contact."""
    if body.user_id == user.uid:
        raise HTTPException(status_code=400, detail="Cannot start a chat with yourself")
    if await get_user(db, body.user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")

    chat, _created = await get_or_create_chat(db, user.uid, body.user_id)
    return chat_to_response(chat)


# Static paths before /chats/{chat_id}.
@router.get("/chats/unread-count", response_model=UnreadCountResponse)
async def total_unread_count(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Unread messages across all of the user's chats."""
    result = await get_total_unread_count(db, user.uid)
    _raise_backend_error(result.error)
    return UnreadCountResponse(unread_count=result.count)


@router.get("/chats/unread-ids", response_model=UnreadIdsResponse)
async def unread_message_ids(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    result = await get_unread_message_ids(db, user.uid)
    _raise_backend_error(result.error)
    return UnreadIdsResponse(message_ids=result.ids)


@router.get("/chats/{chat_id}", response_model=ChatResponse)
async def get_chat(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    chat = await _participant_chat(db, chat_id, user)
    return chat_to_response(chat)


@router.get("/chats/{chat_id}/participants", response_model=ParticipantsResponse)
async def chat_participants(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Profile snapshots of everyone in the chat."""
    await _participant_chat(db, chat_id, user)
    result = await get_chat_participants(db, chat_id)
    _raise_backend_error(result.error)
    return ParticipantsResponse(participants=result.users)


@router.get("/chats/{chat_id}/messages", response_model=MessageListResponse)
async def list_messages(
    chat_id: str,
    limit: int | None = Query(None, ge=1, le=200),
    before: int | None = Query(None, description="Epoch ms; return messages older than this"),
    before_id: str | None = Query(None, description="Message id; return messages older than this one"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Messages in display order, with the viewer's receipts and sender groups."""
    await _participant_chat(db, chat_id, user)
    messages = await get_messages(
        db, chat_id, limit=limit or get_settings().message_page_size, before=before, before_id=before_id
    )
    return build_message_list(chat_id, messages, user.uid)


@router.post("/chats/{chat_id}/messages", response_model=MessageResponse, status_code=201)
async def post_message(
    chat_id: str,
    body: SendMessageRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Any = Depends(get_redis_dep),
):
    try:
        return await send_message(
            db,
            chat_id,
            user.uid,
            text=body.text,
            image_url=body.image_url,
            voice_url=body.voice_url,
            redis=redis,
        )
    except ChatNotFoundError as e:
        raise HTTPException(status_code=404, detail="Chat not found") from e
    except NotParticipantError as e:
        raise HTTPException(status_code=403, detail="Not a participant of this chat") from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/chats/{chat_id}/read", response_model=MarkChatReadResponse)
async def read_chat(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Mark every message addressed to the user in this chat as read."""
    await _participant_chat(db, chat_id, user)
    result = await mark_chat_as_read(db, chat_id, user.uid)
    _raise_backend_error(result.error)
    return MarkChatReadResponse(updated=result.updated)


@router.get("/chats/{chat_id}/unread-count", response_model=UnreadCountResponse)
async def chat_unread_count(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    await _participant_chat(db, chat_id, user)
    result = await get_unread_count(db, chat_id, user.uid)
    _raise_backend_error(result.error)
    return UnreadCountResponse(unread_count=result.count)


@router.post("/messages/{message_id}/read", status_code=200)
async def read_message(
    message_id: str,
    body: ReadStatusRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Set a message's read flag. Only the recipient may change it."""
    message = await db.get(Message, message_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    if message.recipient_id != user.uid:
        raise HTTPException(status_code=403, detail="Only the recipient can change read status")

    result = await update_message_read_status(db, message_id, body.read if body else True)
    if not result.success:
        if result.error == CANNOT_UNREAD:
            raise HTTPException(status_code=400, detail=result.error)
        raise HTTPException(status_code=503, detail="Chat storage unavailable")
    return {"detail": "Read status updated"}


@router.put("/chats/{chat_id}/typing", response_model=TypingResponse)
async def set_typing(
    chat_id: str,
    body: TypingRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    await _participant_chat(db, chat_id, user)
    await update_typing_status(db, chat_id, user.uid, body.is_typing)
    typing = await get_typing_users(
        db, chat_id, exclude_user_id=user.uid, max_age_seconds=get_settings().typing_expiry_seconds
    )
    return TypingResponse(chat_id=chat_id, typing_user_ids=typing)


@router.get("/chats/{chat_id}/typing", response_model=TypingResponse)
async def who_is_typing(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Other participants currently typing."""
    await _participant_chat(db, chat_id, user)
    typing = await get_typing_users(
        db, chat_id, exclude_user_id=user.uid, max_age_seconds=get_settings().typing_expiry_seconds
    )
    return TypingResponse(chat_id=chat_id, typing_user_ids=typing)
