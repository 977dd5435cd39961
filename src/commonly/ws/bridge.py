"""Bridges Redis pub/sub to WebSocket clients.

Services publish per-user events (``chat_message``, ``notification``) to
``ws:user:{uid}``; every API process relays them to the user's local
connections.
"""

import asyncio
import json

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from commonly.ws.manager import manager

logger = structlog.get_logger()

USER_CHANNEL_PREFIX = "ws:user:"
USER_CHANNEL_PATTERN = f"{USER_CHANNEL_PREFIX}*"


def parse_user_channel(channel: str) -> str | None:
    """The uid in a ``ws:user:{uid}`` channel name, or None."""
    if not channel.startswith(USER_CHANNEL_PREFIX):
        return None
    return channel[len(USER_CHANNEL_PREFIX):] or None


class PubSubBridge:
    """Subscribes to per-user Redis channels and pushes events to WebSocket clients."""

    def __init__(self, redis_client: aioredis.Redis) -> None:
        self.redis = redis_client
        self._running = False

    async def handle_message(self, message: dict) -> int:
        """Relay one pub/sub message. Returns the number of connections reached."""
        if message.get("type") != "pmessage":
            return 0

        redis_channel = message.get("channel", "")
        if isinstance(redis_channel, bytes):
            redis_channel = redis_channel.decode()
        user_id = parse_user_channel(redis_channel)
        if user_id is None:
            logger.warning("pubsub_invalid_user_channel", channel=redis_channel)
            return 0

        try:
            data = message.get("data", b"")
            if isinstance(data, bytes):
                data = data.decode()
            payload = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError):
            payload = None
        if not isinstance(payload, dict):
            logger.warning("pubsub_invalid_message", channel=redis_channel)
            return 0

        event_type = payload.get("event", "notification")
        sent = await manager.send_to_user_direct(user_id, {
            "type": event_type,
            "payload": payload.get("data", payload),
        })
        if sent > 0:
            logger.debug("user_event_sent", user_id=user_id, event=event_type, recipients=sent)
        return sent

    async def start(self) -> None:
        """Listen until ``stop`` is called."""
        self._running = True
        pubsub = self.redis.pubsub()
        try:
            await pubsub.psubscribe(USER_CHANNEL_PATTERN)
        except RedisError as exc:
            self._running = False
            logger.error("pubsub_bridge_unavailable", error=str(exc))
            return
        logger.info("pubsub_bridge_started", patterns=[USER_CHANNEL_PATTERN])

        try:
            while self._running:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None:
                    continue
                await self.handle_message(message)
        except asyncio.CancelledError:
            pass
        except RedisError as exc:
            logger.error("pubsub_bridge_lost", error=str(exc))
        finally:
            await pubsub.punsubscribe()
            await pubsub.close()
            logger.info("pubsub_bridge_stopped")

    async def stop(self) -> None:
        """Signal the bridge to stop."""
        self._running = False
