"""Tests for unread counting and read-status updates."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.chat.unread_service import (
    CANNOT_UNREAD,
    get_total_unread_count,
    get_unread_count,
    get_unread_counts_by_chat,
    get_unread_message_ids,
    mark_chat_as_read,
    update_message_read_status,
)
from commonly.db.models import Chat, Message
from tests.conftest import add_message, make_chat, make_user


async def _seed_two_chats(db: AsyncSession) -> tuple[Chat, Chat, list[Message]]:
    """alice has 2 unread in chat X (from bob) and 1 unread in chat Y (from carol)."""
    for uid in ("alice", "bob", "carol"):
        await make_user(db, uid)
    chat_x = await make_chat(db, "alice", "bob")
    chat_y = await make_chat(db, "alice", "carol")
    x1 = await add_message(db, chat_x, "bob", "x1", minutes=1)
    x2 = await add_message(db, chat_x, "bob", "x2", minutes=2)
    await add_message(db, chat_x, "bob", "already read", minutes=0, read=True)
    await add_message(db, chat_x, "alice", "own message", minutes=3)
    y1 = await add_message(db, chat_y, "carol", "y1", minutes=4)
    return chat_x, chat_y, [x1, x2, y1]


class TestCounts:
    async def test_per_chat_count(self, db: AsyncSession) -> None:
        chat_x, chat_y, _ = await _seed_two_chats(db)
        assert (await get_unread_count(db, chat_x.id, "alice")).count == 2
        assert (await get_unread_count(db, chat_y.id, "alice")).count == 1

    async def test_only_messages_addressed_to_user_count(self, db: AsyncSession) -> None:
        chat_x, _, _ = await _seed_two_chats(db)
        # bob received alice's one unread message
        assert (await get_unread_count(db, chat_x.id, "bob")).count == 1

    async def test_total_equals_sum_of_chats(self, db: AsyncSession) -> None:
        chat_x, chat_y, _ = await _seed_two_chats(db)
        per_chat = [(await get_unread_count(db, c.id, "alice")).count for c in (chat_x, chat_y)]
        total = await get_total_unread_count(db, "alice")
        assert total.error is None
        assert total.count == sum(per_chat) == 3

    async def test_grouped_counts(self, db: AsyncSession) -> None:
        chat_x, chat_y, _ = await _seed_two_chats(db)
        assert await get_unread_counts_by_chat(db, "alice") == {chat_x.id: 2, chat_y.id: 1}

    async def test_unknown_chat_counts_zero(self, db: AsyncSession) -> None:
        result = await get_unread_count(db, "no-such-chat", "alice")
        assert result.count == 0
        assert result.error is None

    async def test_unread_ids_oldest_first(self, db: AsyncSession) -> None:
        _, _, (x1, x2, y1) = await _seed_two_chats(db)
        result = await get_unread_message_ids(db, "alice")
        assert result.ids == [x1.id, x2.id, y1.id]


class TestValidation:
    async def test_empty_ids_short_circuit(self, db: AsyncSession) -> None:
        result = await get_unread_count(db, "", "alice")
        assert result.count == 0
        assert result.error is not None

        assert (await get_total_unread_count(db, "")).error is not None
        assert (await get_unread_message_ids(db, "")).ids == []
        assert (await update_message_read_status(db, "", True)).success is False
        assert (await mark_chat_as_read(db, "chat", "")).error is not None

    async def test_backend_failure_is_reported_not_raised(self, db: AsyncSession, monkeypatch) -> None:
        async def broken_execute(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is down"))

        monkeypatch.setattr(db, "execute", broken_execute)
        result = await get_total_unread_count(db, "alice")
        assert result.count == 0
        assert "database is down" in result.error


class TestReadStatus:
    async def test_reading_one_message_updates_counts(self, db: AsyncSession) -> None:
        chat_x, chat_y, (x1, _, _) = await _seed_two_chats(db)

        result = await update_message_read_status(db, x1.id, True)

        assert result.success is True
        assert (await get_unread_count(db, chat_x.id, "alice")).count == 1
        assert (await get_unread_count(db, chat_y.id, "alice")).count == 1
        assert (await get_total_unread_count(db, "alice")).count == 2

    async def test_marking_read_twice_succeeds(self, db: AsyncSession) -> None:
        _, _, (x1, _, _) = await _seed_two_chats(db)
        first = await update_message_read_status(db, x1.id, True)
        second = await update_message_read_status(db, x1.id, True)
        assert first.success is True
        assert second.success is True
        assert second.error is None

    async def test_read_message_cannot_become_unread(self, db: AsyncSession) -> None:
        _, _, (x1, _, _) = await _seed_two_chats(db)
        await update_message_read_status(db, x1.id, True)

        result = await update_message_read_status(db, x1.id, False)

        assert result.success is False
        assert result.error == CANNOT_UNREAD
        db.expire_all()
        refreshed = (await db.execute(select(Message).where(Message.id == x1.id))).scalar_one()
        assert refreshed.read is True

    async def test_unread_to_unread_is_noop_success(self, db: AsyncSession) -> None:
        _, _, (x1, _, _) = await _seed_two_chats(db)
        assert (await update_message_read_status(db, x1.id, False)).success is True

    async def test_missing_message(self, db: AsyncSession) -> None:
        result = await update_message_read_status(db, "missing", True)
        assert result.success is False
        assert result.error == "Message not found"

    async def test_snapshot_follows_last_message(self, db: AsyncSession) -> None:
        chat_x, _, (_, x2, _) = await _seed_two_chats(db)
        chat_x.last_message_id = x2.id
        chat_x.last_message_read = False
        await db.commit()

        await update_message_read_status(db, x2.id, True)

        db.expire_all()
        chat = (await db.execute(select(Chat).where(Chat.id == chat_x.id))).scalar_one()
        assert chat.last_message_read is True


class TestMarkChatRead:
    async def test_marks_only_that_chat(self, db: AsyncSession) -> None:
        chat_x, chat_y, _ = await _seed_two_chats(db)

        result = await mark_chat_as_read(db, chat_x.id, "alice")

        assert result.updated == 2
        assert (await get_unread_count(db, chat_x.id, "alice")).count == 0
        assert (await get_unread_count(db, chat_y.id, "alice")).count == 1
        # alice's own message to bob stays unread for bob
        assert (await get_unread_count(db, chat_x.id, "bob")).count == 1

    async def test_second_call_updates_nothing(self, db: AsyncSession) -> None:
        chat_x, _, _ = await _seed_two_chats(db)
        await mark_chat_as_read(db, chat_x.id, "alice")
        assert (await mark_chat_as_read(db, chat_x.id, "alice")).updated == 0
