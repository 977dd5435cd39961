"""Online / last-seen presence."""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.db.models import User
from commonly.timestamps import to_epoch_ms, utcnow

logger = structlog.get_logger()


@dataclass(frozen=True)
class Presence:
    uid: str
    online: bool
    last_seen: int | None


async def update_presence(db: AsyncSession, uid: str, online: bool) -> Presence | None:
    """Set a user's online flag. Going offline stamps ``last_seen``.

    Returns None when the user is unknown or the write fails.
    """
    try:
        result = await db.execute(select(User).where(User.uid == uid))
        user = result.scalar_one_or_none()
        if user is None:
            return None

        user.online = online
        if not online:
            user.last_seen = utcnow()
        await db.commit()
        return Presence(uid=uid, online=online, last_seen=to_epoch_ms(user.last_seen))
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("presence_update_failed", uid=uid, error=str(exc))
        return None


async def get_presence(db: AsyncSession, uid: str) -> Presence | None:
    result = await db.execute(select(User.online, User.last_seen).where(User.uid == uid))
    row = result.one_or_none()
    if row is None:
        return None
    return Presence(uid=uid, online=bool(row.online), last_seen=to_epoch_ms(row.last_seen))
