"""Unread message tracking.

Every operation returns a result object instead of raising: validation
failures short-circuit without touching the database, backend failures
are logged and surfaced through the ``error`` field. Callers check
``error`` and decide whether to retry.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.db.models import Chat, Message

logger = structlog.get_logger()

CANNOT_UNREAD = "A read message cannot be marked unread"


@dataclass(frozen=True)
class UnreadCountResult:
    count: int = 0
    error: str | None = None


@dataclass(frozen=True)
class UnreadIdsResult:
    ids: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class ReadStatusResult:
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class MarkReadResult:
    updated: int = 0
    error: str | None = None


def _unread_filter(user_id: str) -> tuple:
    return (Message.recipient_id == user_id, Message.read.is_(False))


async def get_unread_count(db: AsyncSession, chat_id: str, user_id: str) -> UnreadCountResult:
    """Count unread messages addressed to ``user_id`` in one chat."""
    if not chat_id or not user_id:
        return UnreadCountResult(error="chat_id and user_id are required")

    try:
        result = await db.execute(
            select(func.count())
            .select_from(Message)
            .where(Message.chat_id == chat_id, *_unread_filter(user_id))
        )
        return UnreadCountResult(count=result.scalar_one())
    except SQLAlchemyError as exc:
        logger.error("unread_count_failed", chat_id=chat_id, user_id=user_id, error=str(exc))
        return UnreadCountResult(error=str(exc))


async def get_total_unread_count(db: AsyncSession, user_id: str) -> UnreadCountResult:
    """Count unread messages addressed to ``user_id`` across all chats."""
    if not user_id:
        return UnreadCountResult(error="user_id is required")

    try:
        result = await db.execute(
            select(func.count()).select_from(Message).where(*_unread_filter(user_id))
        )
        return UnreadCountResult(count=result.scalar_one())
    except SQLAlchemyError as exc:
        logger.error("total_unread_count_failed", user_id=user_id, error=str(exc))
        return UnreadCountResult(error=str(exc))


async def get_unread_counts_by_chat(db: AsyncSession, user_id: str) -> dict[str, int]:
    """Unread count per chat for ``user_id`` in a single grouped query.

    Chats without unread messages are absent from the mapping.
    """
    result = await db.execute(
        select(Message.chat_id, func.count())
        .where(*_unread_filter(user_id))
        .group_by(Message.chat_id)
    )
    return {chat_id: count for chat_id, count in result.all()}


async def get_unread_message_ids(db: AsyncSession, user_id: str) -> UnreadIdsResult:
    """Ids of every unread message addressed to ``user_id``, oldest first."""
    if not user_id:
        return UnreadIdsResult(error="user_id is required")

    try:
        result = await db.execute(
            select(Message.id).where(*_unread_filter(user_id)).order_by(Message.created_at.asc())
        )
        return UnreadIdsResult(ids=list(result.scalars().all()))
    except SQLAlchemyError as exc:
        logger.error("unread_ids_failed", user_id=user_id, error=str(exc))
        return UnreadIdsResult(error=str(exc))


async def update_message_read_status(
    db: AsyncSession,
    message_id: str,
    is_read: bool,
) -> ReadStatusResult:
    """Set a message's read flag.

    Idempotent: marking an already-read message as read succeeds without a
    write. The flag only moves false -> true, so clearing it on a read
    message is refused. The owning chat's last-message snapshot follows
    when it points at the same message.
    """
    if not message_id:
        return ReadStatusResult(success=False, error="message_id is required")

    try:
        result = await db.execute(select(Message).where(Message.id == message_id))
        message = result.scalar_one_or_none()
        if message is None:
            return ReadStatusResult(success=False, error="Message not found")

        if message.read == is_read:
            return ReadStatusResult(success=True)
        if not is_read:
            return ReadStatusResult(success=False, error=CANNOT_UNREAD)

        await db.execute(update(Message).where(Message.id == message_id).values(read=True))
        await db.execute(
            update(Chat)
            .where(Chat.id == message.chat_id, Chat.last_message_id == message_id)
            .values(last_message_read=True)
        )
        await db.commit()
        return ReadStatusResult(success=True)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("read_status_update_failed", message_id=message_id, error=str(exc))
        return ReadStatusResult(success=False, error=str(exc))


async def mark_chat_as_read(db: AsyncSession, chat_id: str, user_id: str) -> MarkReadResult:
    """Mark every unread message addressed to ``user_id`` in a chat as read."""
    if not chat_id or not user_id:
        return MarkReadResult(error="chat_id and user_id are required")

    try:
        result = await db.execute(
            update(Message)
            .where(Message.chat_id == chat_id, *_unread_filter(user_id))
            .values(read=True)
        )
        await db.execute(
            update(Chat)
            .where(
                Chat.id == chat_id,
                Chat.last_message_recipient_id == user_id,
                Chat.last_message_read.is_(False),
            )
            .values(last_message_read=True)
        )
        await db.commit()
        return MarkReadResult(updated=result.rowcount or 0)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("mark_chat_read_failed", chat_id=chat_id, user_id=user_id, error=str(exc))
        return MarkReadResult(error=str(exc))
