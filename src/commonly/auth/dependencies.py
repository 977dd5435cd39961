"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.auth.jwt import verify_token
from commonly.database import get_session
from commonly.db.models import User
from commonly.users.service import upsert_user_from_claims

_bearer = HTTPBearer(auto_error=False)


async def user_from_token(db: AsyncSession, token: str) -> User:
    """
    Verify a bearer token and return the matching user snapshot.

    The first authenticated request creates the user row from the token's
    profile claims. Raises ``jwt.InvalidTokenError`` on a bad token.
    """
    payload = verify_token(token)
    user = await upsert_user_from_claims(
        db,
        payload["sub"],
        display_name=payload.get("name"),
        photo_url=payload.get("picture"),
        email=payload.get("email"),
    )
    await db.commit()
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Extract and verify the JWT, return the User model. Raises 401 on failure."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return await user_from_token(db, credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
