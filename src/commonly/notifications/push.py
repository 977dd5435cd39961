"""Publish per-user realtime events over Redis pub/sub for WebSocket delivery."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def user_channel(user_id: str) -> str:
    return f"ws:user:{user_id}"


async def publish_to_user(redis: Any | None, user_id: str, event: str, data: dict[str, Any]) -> bool:
    """Publish ``{"event": ..., "data": ...}`` to ``ws:user:{user_id}``.

    The WebSocket bridge pattern-subscribes to ``ws:user:*`` and routes the
    event to all of the user's connections. Returns False when Redis is
    unavailable or the publish fails; callers never fail on that.
    """
    if redis is None:
        return False

    try:
        await redis.publish(user_channel(user_id), json.dumps({"event": event, "data": data}))
    except Exception:
        logger.warning("Failed to publish %s via ws:user:%s", event, user_id, exc_info=True)
        return False
    return True
