"""Sending and listing chat messages.

A send writes the message and the chat's last-message snapshot in one
commit, then fans out: a ``chat_message`` event to the recipient's
sockets and a ``message`` notification. Fan-out failures never fail the send.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.chat.presentation import (
    group_by_sender,
    is_own_message,
    message_parts,
    order_messages,
    other_participant_id,
    preview_text,
    read_receipt,
)
from commonly.chat.schemas import (
    MessageGroupResponse,
    MessageListResponse,
    MessageResponse,
    MessageView,
)
from commonly.chat.service import get_chat_by_id
from commonly.db.models import Message
from commonly.notifications.push import publish_to_user
from commonly.notifications.service import dispatch_notification
from commonly.timestamps import from_epoch_ms, to_epoch_ms, utcnow
from commonly.users.service import get_user

logger = structlog.get_logger()


class ChatNotFoundError(Exception):
    pass


class NotParticipantError(Exception):
    pass


def message_to_response(message: Message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        chat_id=message.chat_id,
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
        text=message.text,
        image_url=message.image_url,
        voice_url=message.voice_url,
        timestamp=to_epoch_ms(message.created_at),
        read=message.read,
    )


def build_message_list(chat_id: str, messages: list[MessageResponse], viewer_uid: str) -> MessageListResponse:
    """Attach viewer-relative display fields and sender groups."""
    views = [
        MessageView(
            **message.model_dump(),
            is_own=is_own_message(message, viewer_uid),
            receipt=(receipt.value if (receipt := read_receipt(message, viewer_uid)) else None),
            parts=[part.value for part in message_parts(message)],
        )
        for message in order_messages(messages)
    ]
    groups = [
        MessageGroupResponse(sender_id=group.sender_id, is_own=group.is_own, messages=group.messages)
        for group in group_by_sender(views, viewer_uid)
    ]
    return MessageListResponse(chat_id=chat_id, messages=views, groups=groups)


async def send_message(
    db: AsyncSession,
    chat_id: str,
    sender_id: str,
    text: str | None = None,
    image_url: str | None = None,
    voice_url: str | None = None,
    redis: Any | None = None,
) -> MessageResponse:
    """Write a message from ``sender_id`` into ``chat_id``.

    Raises:
        ChatNotFoundError: If the chat does not exist.
        NotParticipantError: If the sender is not in the chat.
        ValueError: If the message has no content.
    """
    text = text.strip() if text else None
    if not text and not image_url and not voice_url:
        msg = "A message needs text, an image or a voice clip"
        raise ValueError(msg)

    chat = await get_chat_by_id(db, chat_id)
    if chat is None:
        raise ChatNotFoundError(chat_id)
    if sender_id not in (chat.participants or []):
        raise NotParticipantError(chat_id)

    recipient_id = other_participant_id(chat.participants, sender_id)
    now = utcnow()
    message = Message(
        chat_id=chat.id,
        sender_id=sender_id,
        recipient_id=recipient_id,
        text=text,
        image_url=image_url,
        voice_url=voice_url,
        created_at=now,
        read=False,
    )
    db.add(message)
    await db.flush()

    chat.last_message_id = message.id
    chat.last_message_text = preview_text(message)
    chat.last_message_sender_id = sender_id
    chat.last_message_recipient_id = recipient_id
    chat.last_message_at = now
    chat.last_message_read = False
    chat.updated_at = now

    await db.commit()
    logger.info("message_sent", chat_id=chat.id, message_id=message.id, sender_id=sender_id)

    response = message_to_response(message)
    if recipient_id:
        await publish_to_user(redis, recipient_id, "chat_message", response.model_dump())
        await _notify_recipient(db, chat.id, sender_id, recipient_id, chat.last_message_text or "", redis)
    return response


async def _notify_recipient(
    db: AsyncSession,
    chat_id: str,
    sender_id: str,
    recipient_id: str,
    preview: str,
    redis: Any | None,
) -> None:
    try:
        sender = await get_user(db, sender_id)
        sender_name = (sender.display_name if sender else None) or "Someone"
        await dispatch_notification(
            db,
            recipient_id,
            "message",
            title=f"New message from {sender_name}",
            body=preview,
            image_url=sender.photo_url if sender else None,
            action_url=f"/chat/{chat_id}",
            data={"chatId": chat_id, "senderId": sender_id},
            redis=redis,
        )
    except SQLAlchemyError:
        await db.rollback()
        logger.warning("message_notification_failed", chat_id=chat_id, recipient_id=recipient_id, exc_info=True)


async def get_messages(
    db: AsyncSession,
    chat_id: str,
    limit: int = 50,
    before: int | None = None,
    before_id: str | None = None,
) -> list[MessageResponse]:
    """The newest ``limit`` messages of a chat, returned oldest first.

    ``before_id`` pages backwards from a known message: the cursor is that
    message's stored (created_at, id), so messages sharing its millisecond
    are neither skipped nor repeated. ``before`` (epoch ms) is the coarser
    form and is ignored when ``before_id`` is given. An unknown cursor
    yields an empty page.
    """
    query = select(Message).where(Message.chat_id == chat_id)
    if before_id is not None:
        cursor = await db.get(Message, before_id)
        if cursor is None or cursor.chat_id != chat_id:
            return []
        query = query.where(
            or_(
                Message.created_at < cursor.created_at,
                and_(Message.created_at == cursor.created_at, Message.id < cursor.id),
            )
        )
    elif before is not None:
        query = query.where(Message.created_at < from_epoch_ms(before))
    result = await db.execute(query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit))
    newest = [message_to_response(m) for m in result.scalars().all()]
    return order_messages(reversed(newest))
