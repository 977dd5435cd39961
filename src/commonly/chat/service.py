"""Chat core: lookup, idempotent creation, per-user chat list."""

from __future__ import annotations

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.chat.presentation import other_participant_id
from commonly.chat.schemas import ChatResponse, ChatSummaryResponse, LastMessageSnapshot
from commonly.chat.unread_service import get_unread_counts_by_chat
from commonly.db.models import Chat
from commonly.timestamps import to_epoch_ms, utcnow
from commonly.users.service import get_users_by_ids, user_snapshot

logger = structlog.get_logger()

KEY_SEPARATOR = "|"


def participant_key(uid_a: str, uid_b: str) -> str:
    """Order-insensitive key for a participant pair."""
    return KEY_SEPARATOR.join(sorted((uid_a, uid_b)))


def chat_to_response(chat: Chat) -> ChatResponse:
    last_message = None
    if chat.last_message_sender_id is not None and chat.last_message_at is not None:
        last_message = LastMessageSnapshot(
            id=chat.last_message_id,
            text=chat.last_message_text or "",
            sender_id=chat.last_message_sender_id,
            timestamp=to_epoch_ms(chat.last_message_at),
            read=bool(chat.last_message_read),
        )
    return ChatResponse(
        id=chat.id,
        participants=list(chat.participants or []),
        last_message=last_message,
        created_at=to_epoch_ms(chat.created_at),
        updated_at=to_epoch_ms(chat.updated_at),
    )


async def get_chat_by_id(db: AsyncSession, chat_id: str) -> Chat | None:
    result = await db.execute(select(Chat).where(Chat.id == chat_id))
    return result.scalar_one_or_none()


async def find_chat_by_participants(db: AsyncSession, uid_a: str, uid_b: str) -> Chat | None:
    result = await db.execute(select(Chat).where(Chat.participant_key == participant_key(uid_a, uid_b)))
    return result.scalar_one_or_none()


async def get_or_create_chat(db: AsyncSession, current_uid: str, other_uid: str) -> tuple[Chat, bool]:
    """Return the chat between two users, creating it on first contact.

    Returns:
        Tuple of (chat, created).

    Raises:
        ValueError: If either uid is empty or both are the same user.
    """
    if not current_uid or not other_uid:
        msg = "Both participants are required"
        raise ValueError(msg)
    if current_uid == other_uid:
        msg = "Cannot start a chat with yourself"
        raise ValueError(msg)

    existing = await find_chat_by_participants(db, current_uid, other_uid)
    if existing is not None:
        return existing, False

    now = utcnow()
    chat = Chat(
        participants=[current_uid, other_uid],
        participant_key=participant_key(current_uid, other_uid),
        created_at=now,
        updated_at=now,
    )
    db.add(chat)
    try:
        await db.commit()
    except IntegrityError:
        # Another request created the same pair first; use its row.
        await db.rollback()
        winner = await find_chat_by_participants(db, current_uid, other_uid)
        if winner is None:
            raise
        return winner, False

    logger.info("chat_created", chat_id=chat.id, participants=chat.participants)
    return chat, True


async def get_user_chats(db: AsyncSession, uid: str) -> list[ChatSummaryResponse]:
    """All chats containing ``uid``, most recently active first.

    Each summary carries the other participant's snapshot and the
    viewer's unread count.
    """
    result = await db.execute(
        select(Chat)
        .where(
            or_(
                Chat.participant_key.startswith(f"{uid}{KEY_SEPARATOR}", autoescape=True),
                Chat.participant_key.endswith(f"{KEY_SEPARATOR}{uid}", autoescape=True),
            )
        )
        .order_by(Chat.updated_at.desc())
    )
    chats = list(result.scalars().all())
    if not chats:
        return []

    other_ids = {chat.id: other_participant_id(chat.participants, uid) for chat in chats}
    users = {user.uid: user for user in await get_users_by_ids(db, other_ids.values())}
    unread = await get_unread_counts_by_chat(db, uid)

    summaries = []
    for chat in chats:
        other = users.get(other_ids[chat.id] or "")
        summaries.append(
            ChatSummaryResponse(
                **chat_to_response(chat).model_dump(),
                user=user_snapshot(other) if other else None,
                unread_count=unread.get(chat.id, 0),
            )
        )
    return summaries
