"""User endpoints: search and presence."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.auth.dependencies import get_current_user
from commonly.database import get_session
from commonly.db.models import User
from commonly.users.presence_service import get_presence, update_presence
from commonly.users.schemas import PresenceResponse, PresenceUpdateRequest, UserSearchResponse
from commonly.users.service import search_users, user_snapshot

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/search", response_model=UserSearchResponse)
async def search(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(20, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Find people to chat with by name or email."""
    users = await search_users(db, q, exclude_uid=user.uid, limit=limit)
    return UserSearchResponse(users=[user_snapshot(u) for u in users])


@router.put("/me/presence", response_model=PresenceResponse)
async def set_presence(
    body: PresenceUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    presence = await update_presence(db, user.uid, body.online)
    if presence is None:
        raise HTTPException(status_code=503, detail="Presence could not be updated")
    return PresenceResponse(uid=presence.uid, online=presence.online, last_seen=presence.last_seen)


@router.get("/{uid}/presence", response_model=PresenceResponse)
async def read_presence(
    uid: str,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    presence = await get_presence(db, uid)
    if presence is None:
        raise HTTPException(status_code=404, detail="User not found")
    return PresenceResponse(uid=presence.uid, online=presence.online, last_seen=presence.last_seen)
