"""Pydantic schemas for notification endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: str
    type: str
    title: str
    body: str
    image_url: str | None = None
    action_url: str | None = None
    data: dict[str, Any] | None = None
    read: bool
    created_at: int


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    page: int
    per_page: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class NotificationSettingsResponse(BaseModel):
    in_app_notifications: bool
    push_notifications: bool
    email_notifications: bool
    marketing_emails: bool


class NotificationSettingsUpdate(BaseModel):
    in_app_notifications: bool | None = None
    push_notifications: bool | None = None
    email_notifications: bool | None = None
    marketing_emails: bool | None = None
