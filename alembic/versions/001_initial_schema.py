"""Initial schema: users, chats, messages, typing, wallet ledger, referrals, notifications.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_money = sa.Numeric(12, 2)
_ts = sa.DateTime(timezone=True)


def upgrade() -> None:
    """Create all tables."""
    # --- Users ---
    op.create_table(
        "users",
        sa.Column("uid", sa.String(128), primary_key=True),
        sa.Column("display_name", sa.String(128), nullable=True),
        sa.Column("photo_url", sa.Text(), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("online", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("last_seen", _ts, nullable=True),
        sa.Column("followers", postgresql.JSONB(), server_default="[]", nullable=False),
        sa.Column("following", postgresql.JSONB(), server_default="[]", nullable=False),
        sa.Column("is_admin", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_pro", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_merchant", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("created_at", _ts, server_default=sa.text("now()"), nullable=False),
    )
    op.execute("CREATE INDEX ix_users_display_name_lower ON users (lower(display_name))")

    # --- Chats ---
    op.create_table(
        "chats",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("participants", postgresql.JSONB(), nullable=False),
        sa.Column("participant_key", sa.String(260), nullable=False, unique=True),
        sa.Column("last_message_id", sa.String(36), nullable=True),
        sa.Column("last_message_text", sa.Text(), nullable=True),
        sa.Column("last_message_sender_id", sa.String(128), nullable=True),
        sa.Column("last_message_recipient_id", sa.String(128), nullable=True),
        sa.Column("last_message_at", _ts, nullable=True),
        sa.Column("last_message_read", sa.Boolean(), nullable=True),
        sa.Column("created_at", _ts, nullable=False),
        sa.Column("updated_at", _ts, nullable=False),
    )
    op.create_index("idx_chats_updated", "chats", ["updated_at"])

    op.create_table(
        "messages",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("chat_id", sa.String(36), sa.ForeignKey("chats.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sender_id", sa.String(128), nullable=False),
        sa.Column("recipient_id", sa.String(128), nullable=True),
        sa.Column("text", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("voice_url", sa.Text(), nullable=True),
        sa.Column("created_at", _ts, nullable=False),
        sa.Column("read", sa.Boolean(), server_default="false", nullable=False),
    )
    op.create_index("idx_messages_chat_created", "messages", ["chat_id", "created_at"])
    op.create_index("idx_messages_recipient_unread", "messages", ["recipient_id", "read"])

    op.create_table(
        "user_typing",
        sa.Column("chat_id", sa.String(36), sa.ForeignKey("chats.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", sa.String(128), primary_key=True),
        sa.Column("is_typing", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("updated_at", _ts, nullable=False),
    )

    # --- Wallet ledger ---
    op.create_table(
        "wallets",
        sa.Column("user_id", sa.String(128), sa.ForeignKey("users.uid", ondelete="CASCADE"), primary_key=True),
        sa.Column("total_earnings", _money, server_default="0", nullable=False),
        sa.Column("available_balance", _money, server_default="0", nullable=False),
        sa.Column("pending_balance", _money, server_default="0", nullable=False),
        sa.Column("platform_credits", _money, server_default="0", nullable=False),
        sa.Column("has_payout_method", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("stripe_connect_id", sa.String(64), nullable=True),
        sa.Column("created_at", _ts, nullable=True),
        sa.Column("updated_at", _ts, nullable=True),
    )
    op.execute(
        "ALTER TABLE wallets ADD CONSTRAINT ck_wallets_balances_non_negative "
        "CHECK (available_balance >= 0 AND pending_balance >= 0)"
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(128), sa.ForeignKey("users.uid", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("amount", _money, nullable=False),
        sa.Column("status", sa.String(16), server_default="pending", nullable=False),
        sa.Column("description", sa.String(256), nullable=True),
        sa.Column("created_at", _ts, nullable=False),
        sa.Column("updated_at", _ts, nullable=True),
    )
    op.create_index("idx_transactions_user_created", "transactions", ["user_id", "created_at"])
    op.execute(
        "ALTER TABLE transactions ADD CONSTRAINT ck_transactions_type "
        "CHECK (type IN ('deposit', 'withdrawal', 'payment', 'refund', 'referral'))"
    )
    op.execute(
        "ALTER TABLE transactions ADD CONSTRAINT ck_transactions_status "
        "CHECK (status IN ('pending', 'completed', 'failed'))"
    )

    op.create_table(
        "referrals",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(128), sa.ForeignKey("users.uid", ondelete="CASCADE"), nullable=False),
        sa.Column("event_id", sa.String(128), nullable=False),
        sa.Column("code", sa.String(32), nullable=False, unique=True),
        sa.Column("created_at", _ts, nullable=False),
        sa.Column("earnings", _money, server_default="0", nullable=False),
        sa.Column("click_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("conversion_count", sa.Integer(), server_default="0", nullable=False),
        sa.UniqueConstraint("user_id", "event_id", name="uq_referrals_user_event"),
    )

    # --- Notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("body", sa.Text(), server_default="", nullable=False),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("action_url", sa.String(512), nullable=True),
        sa.Column("data", postgresql.JSONB(), nullable=True),
        sa.Column("read", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("created_at", _ts, nullable=False),
    )
    op.create_index("idx_notifications_user_created", "notifications", ["user_id", "created_at"])
    op.execute(
        "CREATE INDEX idx_notifications_user_unread ON notifications (user_id) WHERE read = false"
    )

    op.create_table(
        "notification_settings",
        sa.Column("user_id", sa.String(128), primary_key=True),
        sa.Column("in_app_notifications", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("push_notifications", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("email_notifications", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("marketing_emails", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("updated_at", _ts, nullable=True),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("notification_settings")
    op.drop_table("notifications")
    op.drop_table("referrals")
    op.drop_table("transactions")
    op.drop_table("wallets")
    op.drop_table("user_typing")
    op.drop_table("messages")
    op.drop_table("chats")
    op.drop_table("users")
