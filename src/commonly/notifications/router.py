"""Notification API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.auth.dependencies import get_current_user
from commonly.database import get_session
from commonly.db.models import User
from commonly.notifications.schemas import (
    NotificationListResponse,
    NotificationResponse,
    NotificationSettingsResponse,
    NotificationSettingsUpdate,
    UnreadCountResponse,
)
from commonly.notifications.service import (
    delete_notification,
    get_notification_settings,
    get_notifications,
    get_unread_notification_count,
    mark_all_notifications_read,
    mark_notification_read,
    update_notification_settings,
)
from commonly.timestamps import to_epoch_ms

router = APIRouter(prefix="/api/v1", tags=["Notifications"])


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """List user's notifications (paginated)."""
    notifications, total = await get_notifications(db, user.uid, page, per_page)
    return NotificationListResponse(
        notifications=[
            NotificationResponse(
                id=n.id,
                type=n.type,
                title=n.title,
                body=n.body,
                image_url=n.image_url,
                action_url=n.action_url,
                data=n.data,
                read=n.read,
                created_at=to_epoch_ms(n.created_at),
            )
            for n in notifications
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
async def unread_notification_count(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    count = await get_unread_notification_count(db, user.uid)
    return UnreadCountResponse(unread_count=count)


@router.get("/notifications/settings", response_model=NotificationSettingsResponse)
async def read_settings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return NotificationSettingsResponse(**await get_notification_settings(db, user.uid))


@router.put("/notifications/settings", response_model=NotificationSettingsResponse)
async def write_settings(
    body: NotificationSettingsUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Update delivery switches. Omitted fields keep their value."""
    settings = await update_notification_settings(db, user.uid, **body.model_dump())
    await db.commit()
    return NotificationSettingsResponse(**settings)


@router.post("/notifications/{notification_id}/read", status_code=200)
async def read_notification(
    notification_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Mark a notification as read."""
    found = await mark_notification_read(db, user.uid, notification_id)
    if not found:
        raise HTTPException(status_code=404, detail="Notification not found")
    await db.commit()
    return {"detail": "Notification marked as read"}


@router.post("/notifications/read-all", status_code=200)
async def read_all_notifications(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Mark all of the user's notifications as read."""
    updated = await mark_all_notifications_read(db, user.uid)
    await db.commit()
    return {"detail": "All notifications marked as read", "updated": updated}


@router.delete("/notifications/{notification_id}", status_code=204)
async def remove_notification(
    notification_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    found = await delete_notification(db, user.uid, notification_id)
    if not found:
        raise HTTPException(status_code=404, detail="Notification not found")
    await db.commit()
    return Response(status_code=204)
