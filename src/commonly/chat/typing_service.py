"""Per-chat typing indicators.

One row per (chat, user). A row counts as typing only while its flag is
set and it was refreshed within the expiry window, so a client that
disconnects mid-sentence stops showing as typing on its own.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.db.models import UserTyping
from commonly.timestamps import utcnow


async def find_typing_row(db: AsyncSession, chat_id: str, user_id: str) -> UserTyping | None:
    result = await db.execute(
        select(UserTyping).where(UserTyping.chat_id == chat_id, UserTyping.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def update_typing_status(db: AsyncSession, chat_id: str, user_id: str, is_typing: bool) -> None:
    row = await find_typing_row(db, chat_id, user_id)
    if row is None:
        db.add(UserTyping(chat_id=chat_id, user_id=user_id, is_typing=is_typing, updated_at=utcnow()))
        try:
            await db.commit()
            return
        except IntegrityError:
            # The user's other tab created the row first; update it instead.
            await db.rollback()
            row = await find_typing_row(db, chat_id, user_id)
            if row is None:
                raise

    row.is_typing = is_typing
    row.updated_at = utcnow()
    await db.commit()


async def get_typing_users(
    db: AsyncSession,
    chat_id: str,
    exclude_user_id: str | None = None,
    max_age_seconds: int = 10,
) -> list[str]:
    """User ids currently typing in ``chat_id``."""
    cutoff = utcnow() - timedelta(seconds=max_age_seconds)
    query = select(UserTyping.user_id).where(
        UserTyping.chat_id == chat_id,
        UserTyping.is_typing.is_(True),
        UserTyping.updated_at >= cutoff,
    )
    if exclude_user_id:
        query = query.where(UserTyping.user_id != exclude_user_id)

    result = await db.execute(query.order_by(UserTyping.user_id))
    return list(result.scalars().all())
