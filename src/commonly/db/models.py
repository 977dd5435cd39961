"""ORM models for users, chats, messages, wallets, referrals and notifications.

Ids are opaque strings: user ids come from the external auth provider,
every other id is a UUID4 rendered as text.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commonly.db.base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")
Money = Numeric(12, 2)


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Profile snapshot of an auth-provider user."""

    __tablename__ = "users"

    uid: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    online: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    last_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    followers: Mapped[list[str]] = mapped_column(JSONType, default=list)
    following: Mapped[list[str]] = mapped_column(JSONType, default=list)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    is_pro: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    is_merchant: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    wallet: Mapped[Wallet | None] = relationship("Wallet", back_populates="user", uselist=False)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class Chat(Base):
    """Two-party conversation. Participants are stored denormalized on the row."""

    __tablename__ = "chats"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    participants: Mapped[list[str]] = mapped_column(JSONType, nullable=False)
    # Sorted "uid|uid" pair; the unique constraint makes chat creation idempotent.
    participant_key: Mapped[str] = mapped_column(String(260), nullable=False, unique=True)

    last_message_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    last_message_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_message_sender_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_message_recipient_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_message_read: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Message(Base):
    """Chat message. Only ``read`` ever changes after insert."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_chat_created", "chat_id", "created_at"),
        Index("idx_messages_recipient_unread", "recipient_id", "read"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    chat_id: Mapped[str] = mapped_column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    sender_id: Mapped[str] = mapped_column(String(128), nullable=False)
    recipient_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    voice_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())


class UserTyping(Base):
    """Per-chat typing indicator, one row per (chat, user)."""

    __tablename__ = "user_typing"

    chat_id: Mapped[str] = mapped_column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    is_typing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Wallet ledger
# ---------------------------------------------------------------------------


class Wallet(Base):
    """Per-user balance summary. Created by backend functions on first earning."""

    __tablename__ = "wallets"

    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.uid", ondelete="CASCADE"), primary_key=True
    )
    total_earnings: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    available_balance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    pending_balance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    platform_credits: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    has_payout_method: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stripe_connect_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[User] = relationship("User", back_populates="wallet")


class Transaction(Base):
    """Append-only ledger entry. Status moves pending -> completed | failed."""

    __tablename__ = "transactions"
    __table_args__ = (Index("idx_transactions_user_created", "user_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.uid", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Referral(Base):
    """Trackable referral link for a (user, event) pair."""

    __tablename__ = "referrals"
    __table_args__ = (UniqueConstraint("user_id", "event_id", name="uq_referrals_user_event"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.uid", ondelete="CASCADE"), nullable=False)
    event_id: Mapped[str] = mapped_column(String(128), nullable=False)
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    earnings: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    click_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    conversion_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """Persisted in-app notification."""

    __tablename__ = "notifications"
    __table_args__ = (Index("idx_notifications_user_created", "user_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class NotificationSettings(Base):
    """Per-user delivery switches. A missing row means every channel uses its default."""

    __tablename__ = "notification_settings"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    in_app_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    push_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    marketing_emails: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
