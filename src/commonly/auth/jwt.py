"""
HS256 JWT verification for tokens issued by the external auth provider.

The provider signs access tokens with a shared secret; ``sub`` is the
user's uid and ``name``, ``picture`` and ``email`` carry profile claims.
This service only verifies tokens. ``create_access_token`` mints one for
local tooling and tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from commonly.config import get_settings


def create_access_token(
    uid: str,
    name: str | None = None,
    picture: str | None = None,
    email: str | None = None,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """
    Create a signed access token in the provider's claim layout.

    Args:
        uid: The user's auth-provider uid.
        name: Optional display name claim.
        picture: Optional avatar URL claim.
        email: Optional email claim.
        expires_in: Token lifetime.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": uid,
        "iat": now,
        "exp": now + expires_in,
    }
    if settings.jwt_audience:
        payload["aud"] = settings.jwt_audience
    for claim, value in (("name", name), ("picture", picture), ("email", email)):
        if value is not None:
            payload[claim] = value
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Returns:
        Decoded payload dictionary.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or has no subject.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options={"verify_aud": settings.jwt_audience is not None},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if not payload.get("sub"):
        msg = "Token has no subject"
        raise jwt.InvalidTokenError(msg)

    return payload
