"""Pydantic schemas for chat and message endpoints.

All timestamps are epoch milliseconds.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


# --- Users ---


class UserSnapshot(BaseModel):
    uid: str
    display_name: str | None = None
    photo_url: str | None = None
    email: str | None = None
    online: bool = False
    last_seen: int | None = None


# --- Chats ---


class LastMessageSnapshot(BaseModel):
    id: str | None = None
    text: str
    sender_id: str
    timestamp: int
    read: bool


class ChatResponse(BaseModel):
    id: str
    participants: list[str]
    last_message: LastMessageSnapshot | None = None
    created_at: int
    updated_at: int


class ChatSummaryResponse(ChatResponse):
    user: UserSnapshot | None = None
    unread_count: int = 0


class ChatListResponse(BaseModel):
    chats: list[ChatSummaryResponse]


class StartChatRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)


class ParticipantsResponse(BaseModel):
    participants: list[UserSnapshot]


# --- Messages ---


class SendMessageRequest(BaseModel):
    text: str | None = Field(None, max_length=4000)
    image_url: str | None = Field(None, max_length=2048)
    voice_url: str | None = Field(None, max_length=2048)

    @model_validator(mode="after")
    def _has_content(self) -> SendMessageRequest:
        if not (self.text or "").strip() and not self.image_url and not self.voice_url:
            msg = "A message needs text, an image or a voice clip"
            raise ValueError(msg)
        return self


class MessageResponse(BaseModel):
    id: str
    chat_id: str
    sender_id: str
    recipient_id: str | None = None
    text: str | None = None
    image_url: str | None = None
    voice_url: str | None = None
    timestamp: int
    read: bool


class MessageView(MessageResponse):
    """A message as displayed to one viewer."""

    is_own: bool
    receipt: str | None = None
    parts: list[str] = []


class MessageGroupResponse(BaseModel):
    sender_id: str
    is_own: bool
    messages: list[MessageView]


class MessageListResponse(BaseModel):
    chat_id: str
    messages: list[MessageView]
    groups: list[MessageGroupResponse]


# --- Unread ---


class UnreadCountResponse(BaseModel):
    unread_count: int


class UnreadIdsResponse(BaseModel):
    message_ids: list[str]


class MarkChatReadResponse(BaseModel):
    updated: int


class ReadStatusRequest(BaseModel):
    read: bool = True


# --- Typing ---


class TypingRequest(BaseModel):
    is_typing: bool


class TypingResponse(BaseModel):
    chat_id: str
    typing_user_ids: list[str]
