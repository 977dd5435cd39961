"""Pydantic schemas for user search and presence."""

from __future__ import annotations

from pydantic import BaseModel

from commonly.chat.schemas import UserSnapshot


class UserSearchResponse(BaseModel):
    users: list[UserSnapshot]


class PresenceUpdateRequest(BaseModel):
    online: bool


class PresenceResponse(BaseModel):
    uid: str
    online: bool
    last_seen: int | None = None
