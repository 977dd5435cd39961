"""Notification creation and delivery.

Dispatch is opportunistic: a notification row is written only when the
recipient allows in-app notifications, then pushed to the user's
WebSocket connections through Redis. Push delivery (mobile/email) is
handled outside this service.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.db.models import Notification, NotificationSettings
from commonly.notifications.push import publish_to_user
from commonly.timestamps import to_epoch_ms, utcnow

logger = structlog.get_logger()

VALID_TYPES = {
    "message",
    "like",
    "follow",
    "comment",
    "podcast",
    "event",
    "system",
    "event_update",
    "new_follower",
    "referral_earnings",
    "sponsorship",
}

DEFAULT_SETTINGS = {
    "in_app_notifications": True,
    "push_notifications": True,
    "email_notifications": True,
    "marketing_emails": False,
}


@dataclass(frozen=True)
class DispatchResult:
    notification_id: str | None = None
    disabled: bool = False


def notification_payload(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "userId": notification.user_id,
        "type": notification.type,
        "title": notification.title,
        "body": notification.body,
        "imageUrl": notification.image_url,
        "actionUrl": notification.action_url,
        "data": notification.data,
        "read": notification.read,
        "createdAt": to_epoch_ms(notification.created_at),
    }


async def get_notification_settings(db: AsyncSession, user_id: str) -> dict[str, bool]:
    """User's delivery switches, falling back to defaults."""
    result = await db.execute(select(NotificationSettings).where(NotificationSettings.user_id == user_id))
    row = result.scalar_one_or_none()
    if row is None:
        return dict(DEFAULT_SETTINGS)
    return {key: getattr(row, key) for key in DEFAULT_SETTINGS}


async def update_notification_settings(db: AsyncSession, user_id: str, **changes: bool | None) -> dict[str, bool]:
    """Apply the given switches (``None`` leaves a switch unchanged)."""
    result = await db.execute(select(NotificationSettings).where(NotificationSettings.user_id == user_id))
    row = result.scalar_one_or_none()
    if row is None:
        row = NotificationSettings(user_id=user_id, **DEFAULT_SETTINGS)
        db.add(row)

    for key, value in changes.items():
        if key in DEFAULT_SETTINGS and value is not None:
            setattr(row, key, value)
    row.updated_at = utcnow()
    await db.flush()
    return {key: getattr(row, key) for key in DEFAULT_SETTINGS}


async def dispatch_notification(
    db: AsyncSession,
    user_id: str,
    type_: str,
    title: str,
    body: str = "",
    image_url: str | None = None,
    action_url: str | None = None,
    data: dict[str, Any] | None = None,
    redis: Any | None = None,
) -> DispatchResult:
    """Create a notification, commit it, then push it via WebSocket.

    Nothing is published if the commit fails. Returns ``disabled=True``
    without writing when the user turned in-app notifications off.

    Raises:
        ValueError: If ``type_`` is not a known notification type.
    """
    if type_ not in VALID_TYPES:
        msg = f"Invalid notification type: {type_}. Must be one of {sorted(VALID_TYPES)}"
        raise ValueError(msg)

    settings = await get_notification_settings(db, user_id)
    if not settings["in_app_notifications"]:
        logger.debug("notification_suppressed", user_id=user_id, type=type_)
        return DispatchResult(disabled=True)

    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title,
        body=body or "",
        image_url=image_url,
        action_url=action_url,
        data=data,
        read=False,
        created_at=utcnow(),
    )
    db.add(notification)
    await db.commit()

    await publish_to_user(redis, user_id, "notification", notification_payload(notification))
    return DispatchResult(notification_id=notification.id)


async def get_notifications(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Notification], int]:
    """Get user's notifications (paginated, most recent first)."""
    offset = (page - 1) * per_page

    total_result = await db.execute(
        select(func.count()).select_from(Notification).where(Notification.user_id == user_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .offset(offset)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def mark_notification_read(db: AsyncSession, user_id: str, notification_id: str) -> bool:
    """Mark a single notification as read. Returns True if found."""
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(read=True)
    )
    await db.flush()
    return result.rowcount > 0


async def get_unread_notification_count(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
    )
    return result.scalar_one()


async def mark_all_notifications_read(db: AsyncSession, user_id: str) -> int:
    """Mark every unread notification of the user as read. Returns the count updated."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
    )
    await db.flush()
    return result.rowcount


async def delete_notification(db: AsyncSession, user_id: str, notification_id: str) -> bool:
    """Delete one of the user's notifications. Returns True if it existed."""
    result = await db.execute(
        delete(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
    )
    await db.flush()
    return result.rowcount > 0
