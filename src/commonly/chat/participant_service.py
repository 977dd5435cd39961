"""Resolve a chat's stored participant ids to user profile snapshots.

Participant identity lives on the chat row as an id list, so resolution
is two steps: read the chat, then batch-fetch its users in one query.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.chat.presentation import other_participant_id
from commonly.chat.schemas import UserSnapshot
from commonly.chat.service import get_chat_by_id
from commonly.db.models import Chat
from commonly.users.service import get_user, get_users_by_ids, user_snapshot

logger = structlog.get_logger()


@dataclass(frozen=True)
class ParticipantsResult:
    users: list[UserSnapshot] = field(default_factory=list)
    error: str | None = None


async def get_chat_participants(db: AsyncSession, chat_id: str) -> ParticipantsResult:
    """Profile snapshots for every participant of ``chat_id``.

    An unknown chat or one with no participants yields an empty list.
    """
    if not chat_id:
        return ParticipantsResult(error="chat_id is required")

    try:
        chat = await get_chat_by_id(db, chat_id)
        if chat is None or not chat.participants:
            return ParticipantsResult()

        users = await get_users_by_ids(db, chat.participants)
        return ParticipantsResult(users=[user_snapshot(u) for u in users])
    except SQLAlchemyError as exc:
        logger.error("participant_resolution_failed", chat_id=chat_id, error=str(exc))
        return ParticipantsResult(error=str(exc))


async def get_other_participant(db: AsyncSession, chat: Chat, current_uid: str) -> UserSnapshot | None:
    """Snapshot of the participant who is not ``current_uid``."""
    other_uid = other_participant_id(chat.participants, current_uid)
    if other_uid is None:
        return None

    user = await get_user(db, other_uid)
    return user_snapshot(user) if user else None
