"""Tests for sending/listing messages, typing indicators and presence."""

from __future__ import annotations

import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from commonly.chat.message_service import (
    ChatNotFoundError,
    NotParticipantError,
    build_message_list,
    get_messages,
    send_message,
)
from commonly.chat.presentation import IMAGE_PREVIEW
from commonly.chat.typing_service import find_typing_row, get_typing_users, update_typing_status
from commonly.chat.unread_service import get_unread_count
from commonly.db.models import Chat, Notification, UserTyping
from commonly.notifications.service import update_notification_settings
from commonly.timestamps import to_epoch_ms, utcnow
from commonly.users.presence_service import get_presence, update_presence
from tests.conftest import BASE_TIME, add_message, make_chat, make_user


@pytest.fixture
async def chat(db: AsyncSession) -> Chat:
    await make_user(db, "alice", "Alice")
    await make_user(db, "bob", "Bob")
    return await make_chat(db, "alice", "bob")


class TestSendMessage:
    async def test_inserts_and_updates_snapshot(self, db: AsyncSession, chat: Chat) -> None:
        message = await send_message(db, chat.id, "alice", text="  hello bob  ")

        assert message.recipient_id == "bob"
        assert message.text == "hello bob"
        assert message.read is False

        db.expire_all()
        stored = (await db.execute(select(Chat).where(Chat.id == chat.id))).scalar_one()
        assert stored.last_message_id == message.id
        assert stored.last_message_text == "hello bob"
        assert stored.last_message_sender_id == "alice"
        assert stored.last_message_read is False
        assert to_epoch_ms(stored.updated_at) == message.timestamp
        assert (await get_unread_count(db, chat.id, "bob")).count == 1

    async def test_attachment_preview(self, db: AsyncSession, chat: Chat) -> None:
        await send_message(db, chat.id, "bob", image_url="https://cdn/img.png")
        db.expire_all()
        stored = (await db.execute(select(Chat).where(Chat.id == chat.id))).scalar_one()
        assert stored.last_message_text == IMAGE_PREVIEW

    async def test_publishes_and_notifies_recipient(self, db: AsyncSession, chat: Chat) -> None:
        redis = AsyncMock()
        message = await send_message(db, chat.id, "alice", text="ping", redis=redis)

        channels = [call.args[0] for call in redis.publish.await_args_list]
        assert channels == ["ws:user:bob", "ws:user:bob"]
        events = [json.loads(call.args[1])["event"] for call in redis.publish.await_args_list]
        assert events == ["chat_message", "notification"]
        payload = json.loads(redis.publish.await_args_list[0].args[1])["data"]
        assert payload["id"] == message.id

        notification = (await db.execute(select(Notification))).scalar_one()
        assert notification.user_id == "bob"
        assert notification.type == "message"
        assert notification.title == "New message from Alice"
        assert notification.data == {"chatId": chat.id, "senderId": "alice"}

    async def test_no_notification_when_in_app_disabled(self, db: AsyncSession, chat: Chat) -> None:
        await update_notification_settings(db, "bob", in_app_notifications=False)
        await db.commit()

        await send_message(db, chat.id, "alice", text="quiet")

        assert (await db.execute(select(Notification))).scalars().all() == []

    async def test_redis_failure_does_not_fail_send(self, db: AsyncSession, chat: Chat) -> None:
        redis = AsyncMock()
        redis.publish = AsyncMock(side_effect=ConnectionError("redis down"))
        message = await send_message(db, chat.id, "alice", text="still works", redis=redis)
        assert message.id

    async def test_notification_lookup_failure_does_not_fail_send(
        self, db: AsyncSession, chat: Chat, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def broken_get_user(session, uid):
            raise OperationalError("SELECT users", {}, Exception("database is locked"))

        monkeypatch.setattr("commonly.chat.message_service.get_user", broken_get_user)
        redis = AsyncMock()

        message = await send_message(db, chat.id, "alice", text="still sent", redis=redis)

        assert message.text == "still sent"
        events = [json.loads(call.args[1])["event"] for call in redis.publish.await_args_list]
        assert events == ["chat_message"]
        assert (await db.execute(select(Notification))).scalars().all() == []

    async def test_empty_message_rejected(self, db: AsyncSession, chat: Chat) -> None:
        with pytest.raises(ValueError):
            await send_message(db, chat.id, "alice", text="   ")

    async def test_non_participant_rejected(self, db: AsyncSession, chat: Chat) -> None:
        with pytest.raises(NotParticipantError):
            await send_message(db, chat.id, "mallory", text="hi")

    async def test_missing_chat(self, db: AsyncSession) -> None:
        with pytest.raises(ChatNotFoundError):
            await send_message(db, "nope", "alice", text="hi")


class TestGetMessages:
    async def test_ascending_regardless_of_insert_order(self, db: AsyncSession, chat: Chat) -> None:
        await add_message(db, chat, "bob", "third", minutes=3)
        await add_message(db, chat, "alice", "first", minutes=1)
        await add_message(db, chat, "bob", "second", minutes=2)

        messages = await get_messages(db, chat.id)
        assert [m.text for m in messages] == ["first", "second", "third"]

    async def test_limit_keeps_newest(self, db: AsyncSession, chat: Chat) -> None:
        for i in range(5):
            await add_message(db, chat, "bob", f"m{i}", minutes=i)

        messages = await get_messages(db, chat.id, limit=2)
        assert [m.text for m in messages] == ["m3", "m4"]

    async def test_before_pages_backwards(self, db: AsyncSession, chat: Chat) -> None:
        for i in range(4):
            await add_message(db, chat, "bob", f"m{i}", minutes=i)

        cutoff = to_epoch_ms(BASE_TIME + timedelta(minutes=2))
        messages = await get_messages(db, chat.id, before=cutoff)
        assert [m.text for m in messages] == ["m0", "m1"]

    async def test_cursor_pages_through_same_millisecond(self, db: AsyncSession, chat: Chat) -> None:
        for i, micros in enumerate([100, 300, 600]):
            message = await add_message(db, chat, "bob", f"m{i}")
            message.created_at = BASE_TIME + timedelta(microseconds=micros)
        await db.commit()

        seen: list[str] = []
        page = await get_messages(db, chat.id, limit=1)
        while page:
            seen = [m.text for m in page] + seen
            page = await get_messages(db, chat.id, limit=1, before_id=page[0].id)

        assert seen == ["m0", "m1", "m2"]

    async def test_cursor_breaks_identical_timestamps_by_id(self, db: AsyncSession, chat: Chat) -> None:
        for i in range(3):
            await add_message(db, chat, "alice", f"t{i}")

        newest = await get_messages(db, chat.id, limit=2)
        older = await get_messages(db, chat.id, limit=2, before_id=newest[0].id)

        assert len(older) == 1
        assert {m.id for m in newest} | {older[0].id} == {m.id for m in await get_messages(db, chat.id)}

    async def test_unknown_cursor_is_empty(self, db: AsyncSession, chat: Chat) -> None:
        await add_message(db, chat, "bob", "hello")
        assert await get_messages(db, chat.id, before_id="missing") == []

    async def test_view_marks_receipts_and_groups(self, db: AsyncSession, chat: Chat) -> None:
        await add_message(db, chat, "alice", "a1", minutes=1, read=True)
        await add_message(db, chat, "alice", "a2", minutes=2)
        await add_message(db, chat, "bob", "b1", minutes=3)

        view = build_message_list(chat.id, await get_messages(db, chat.id), "alice")

        assert [(m.text, m.is_own, m.receipt) for m in view.messages] == [
            ("a1", True, "read"),
            ("a2", True, "sent"),
            ("b1", False, None),
        ]
        assert [(g.sender_id, len(g.messages)) for g in view.groups] == [("alice", 2), ("bob", 1)]
        assert view.messages[0].parts == ["text"]


class TestTyping:
    async def test_typing_users_exclude_self(self, db: AsyncSession, chat: Chat) -> None:
        await update_typing_status(db, chat.id, "alice", True)
        await update_typing_status(db, chat.id, "bob", True)

        assert await get_typing_users(db, chat.id, exclude_user_id="alice") == ["bob"]

    async def test_stopping_clears(self, db: AsyncSession, chat: Chat) -> None:
        await update_typing_status(db, chat.id, "bob", True)
        await update_typing_status(db, chat.id, "bob", False)
        assert await get_typing_users(db, chat.id) == []

    async def test_stale_rows_expire(self, db: AsyncSession, chat: Chat) -> None:
        db.add(UserTyping(chat_id=chat.id, user_id="bob", is_typing=True, updated_at=utcnow() - timedelta(minutes=5)))
        await db.commit()
        assert await get_typing_users(db, chat.id, max_age_seconds=10) == []

    async def test_first_write_race_updates_winner(
        self,
        db: AsyncSession,
        chat: Chat,
        session_factory: async_sessionmaker[AsyncSession],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async with session_factory() as other:
            other.add(UserTyping(chat_id=chat.id, user_id="bob", is_typing=True, updated_at=utcnow()))
            await other.commit()

        calls = {"n": 0}
        real_find = find_typing_row

        async def miss_first(session, chat_id, user_id):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return await real_find(session, chat_id, user_id)

        monkeypatch.setattr("commonly.chat.typing_service.find_typing_row", miss_first)
        await update_typing_status(db, chat.id, "bob", False)

        assert calls["n"] == 2
        assert await get_typing_users(db, chat.id) == []


class TestPresence:
    async def test_going_offline_stamps_last_seen(self, db: AsyncSession, chat: Chat) -> None:
        online = await update_presence(db, "alice", True)
        assert online.online is True

        offline = await update_presence(db, "alice", False)
        assert offline.online is False
        assert offline.last_seen is not None

        presence = await get_presence(db, "alice")
        assert presence.online is False
        assert presence.last_seen == offline.last_seen

    async def test_unknown_user(self, db: AsyncSession) -> None:
        assert await update_presence(db, "ghost", True) is None
        assert await get_presence(db, "ghost") is None
