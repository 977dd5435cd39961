"""User profile lookups and snapshots."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from commonly.chat.schemas import UserSnapshot
from commonly.db.models import User
from commonly.timestamps import to_epoch_ms

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


def user_snapshot(user: User) -> UserSnapshot:
    """Build the public profile snapshot used in chat payloads."""
    return UserSnapshot(
        uid=user.uid,
        display_name=user.display_name,
        photo_url=user.photo_url,
        email=user.email,
        online=bool(user.online),
        last_seen=to_epoch_ms(user.last_seen),
    )


async def get_user(db: AsyncSession, uid: str) -> User | None:
    result = await db.execute(select(User).where(User.uid == uid))
    return result.scalar_one_or_none()


async def get_users_by_ids(db: AsyncSession, uids: Iterable[str]) -> list[User]:
    """Fetch all users for ``uids`` in one query, preserving the input order."""
    wanted = list(dict.fromkeys(uid for uid in uids if uid))
    if not wanted:
        return []

    result = await db.execute(select(User).where(User.uid.in_(wanted)))
    by_id = {user.uid: user for user in result.scalars().all()}
    return [by_id[uid] for uid in wanted if uid in by_id]


async def upsert_user_from_claims(
    db: AsyncSession,
    uid: str,
    display_name: str | None = None,
    photo_url: str | None = None,
    email: str | None = None,
) -> User:
    """Make sure a row exists for an authenticated uid, refreshing profile claims."""
    user = await get_user(db, uid)
    if user is None:
        user = User(uid=uid, display_name=display_name, photo_url=photo_url, email=email)
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            # A concurrent first request inserted the same uid.
            await db.rollback()
            user = await get_user(db, uid)
            if user is None:
                raise
        else:
            logger.info("user_snapshot_created", uid=uid)
            return user

    if display_name and user.display_name != display_name:
        user.display_name = display_name
    if photo_url and user.photo_url != photo_url:
        user.photo_url = photo_url
    if email and user.email != email:
        user.email = email
    await db.flush()
    return user


async def search_users(
    db: AsyncSession,
    query: str,
    exclude_uid: str | None = None,
    limit: int = 20,
) -> list[User]:
    """Case-insensitive substring search over display name and email.

    ``%`` and ``_`` in the query match literally.
    """
    term = query.strip()
    if not term:
        return []

    stmt = (
        select(User)
        .where(
            or_(
                User.display_name.icontains(term, autoescape=True),
                User.email.icontains(term, autoescape=True),
            )
        )
        .order_by(User.display_name.asc())
        .limit(limit)
    )
    if exclude_uid:
        stmt = stmt.where(User.uid != exclude_uid)

    result = await db.execute(stmt)
    return list(result.scalars().all())
