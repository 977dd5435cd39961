"""Display contract for chat messages.

Pure functions over message snapshots: ordering, own/other attribution,
read receipts, attachment parts, sender grouping. Nothing here writes;
receipt state is read straight off the ``read`` flag.

``ActiveChatGuard`` protects a session against a superseded fetch: a
response for a chat the viewer already left must not be applied.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Protocol, TypeVar

IMAGE_PREVIEW = "\U0001f4f7 Image"
VOICE_PREVIEW = "\U0001f3a4 Voice message"


class MessageLike(Protocol):
    id: str
    sender_id: str
    timestamp: int
    read: bool
    text: str | None
    image_url: str | None
    voice_url: str | None


M = TypeVar("M", bound=MessageLike)


class ReceiptState(str, Enum):
    SENT = "sent"
    READ = "read"


class MessagePart(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VOICE = "voice"


def order_messages(messages: Iterable[M]) -> list[M]:
    """Ascending by timestamp; ties keep their incoming order."""
    return sorted(messages, key=lambda m: m.timestamp)


def other_participant_id(participants: Sequence[str] | None, current_uid: str) -> str | None:
    """The first participant that is not the current user."""
    for uid in participants or ():
        if uid != current_uid:
            return uid
    return None


def is_own_message(message: MessageLike, current_uid: str) -> bool:
    return message.sender_id == current_uid


def read_receipt(message: MessageLike, current_uid: str) -> ReceiptState | None:
    """Receipt indicator for the viewer. Only own messages carry one."""
    if not is_own_message(message, current_uid):
        return None
    return ReceiptState.READ if message.read else ReceiptState.SENT


def message_parts(message: MessageLike) -> list[MessagePart]:
    """Displayable parts in render order: image, voice, then text."""
    parts = []
    if message.image_url:
        parts.append(MessagePart.IMAGE)
    if message.voice_url:
        parts.append(MessagePart.VOICE)
    if message.text and message.text.strip():
        parts.append(MessagePart.TEXT)
    return parts


def preview_text(message: MessageLike) -> str:
    """One-line chat list preview. Attachments without text get a label."""
    if message.text and message.text.strip():
        return message.text
    if message.image_url:
        return IMAGE_PREVIEW
    if message.voice_url:
        return VOICE_PREVIEW
    return ""


@dataclass
class MessageGroup(Generic[M]):
    sender_id: str
    is_own: bool
    messages: list[M]


def group_by_sender(messages: Iterable[M], current_uid: str) -> list[MessageGroup[M]]:
    """Split time-ordered messages into consecutive runs by the same sender."""
    groups: list[MessageGroup[M]] = []
    for message in order_messages(messages):
        if groups and groups[-1].sender_id == message.sender_id:
            groups[-1].messages.append(message)
        else:
            groups.append(
                MessageGroup(
                    sender_id=message.sender_id,
                    is_own=is_own_message(message, current_uid),
                    messages=[message],
                )
            )
    return groups


@dataclass(frozen=True)
class ChatContext:
    chat_id: str
    user_id: str
    generation: int


class ActiveChatGuard:
    """Tracks which chat a session is looking at.

    ``activate`` returns a context token; a fetch started under that token
    is applied only while ``is_current(token)`` still holds.
    """

    def __init__(self) -> None:
        self._current: ChatContext | None = None
        self._generation = 0

    @property
    def current(self) -> ChatContext | None:
        return self._current

    def activate(self, chat_id: str, user_id: str) -> ChatContext:
        self._generation += 1
        self._current = ChatContext(chat_id=chat_id, user_id=user_id, generation=self._generation)
        return self._current

    def clear(self) -> None:
        self._generation += 1
        self._current = None

    def is_current(self, token: ChatContext) -> bool:
        return self._current is not None and self._current == token

    def accepts(self, chat_id: str, user_id: str) -> bool:
        """Whether a response for (chat_id, user_id) matches the active context."""
        current = self._current
        return current is not None and current.chat_id == chat_id and current.user_id == user_id
