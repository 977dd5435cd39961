"""WebSocket connection manager.

Tracks active connections per user and the chat each connection has
open. Per-user events fan out to every connection of that user; chat
snapshots go to one connection and only while its chat is still open.
"""

import json
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

import structlog
from fastapi import WebSocket

from commonly.chat.presentation import ActiveChatGuard, ChatContext

logger = structlog.get_logger()


@dataclass
class ClientConnection:
    """Represents a single WebSocket client."""

    websocket: WebSocket
    user_id: str
    guard: ActiveChatGuard = field(default_factory=ActiveChatGuard)
    connected_at: float = field(default_factory=time.time)
    messages_sent: int = 0


class ConnectionManager:
    """Manages all active WebSocket connections on this process."""

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}  # conn_id -> client
        self._user_connections: dict[str, set[str]] = defaultdict(set)  # user_id -> {conn_ids}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, conn_id: str, user_id: str) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        self._connections[conn_id] = ClientConnection(websocket=websocket, user_id=user_id)
        self._user_connections[user_id].add(conn_id)
        logger.info("ws_connected", conn_id=conn_id, user_id=user_id)

    async def disconnect(self, conn_id: str) -> None:
        client = self._connections.pop(conn_id, None)
        if client is None:
            return

        client.guard.clear()
        self._user_connections[client.user_id].discard(conn_id)
        if not self._user_connections[client.user_id]:
            del self._user_connections[client.user_id]

        logger.info("ws_disconnected", conn_id=conn_id, user_id=client.user_id)

    def open_chat(self, conn_id: str, chat_id: str) -> ChatContext | None:
        """Make ``chat_id`` the connection's active chat. Returns the context token."""
        client = self._connections.get(conn_id)
        if client is None:
            return None
        return client.guard.activate(chat_id, client.user_id)

    def close_chat(self, conn_id: str) -> None:
        client = self._connections.get(conn_id)
        if client is not None:
            client.guard.clear()

    def active_chat(self, conn_id: str) -> ChatContext | None:
        client = self._connections.get(conn_id)
        return client.guard.current if client else None

    async def _send(self, conn_id: str, client: ClientConnection, payload: str) -> bool:
        try:
            await client.websocket.send_text(payload)
        except Exception:
            await self.disconnect(conn_id)
            return False
        client.messages_sent += 1
        return True

    async def send_chat_snapshot(self, conn_id: str, token: ChatContext, message: dict[str, Any]) -> bool:
        """Send a chat snapshot fetched under ``token``.

        Dropped when the connection has since switched or closed chats.
        """
        client = self._connections.get(conn_id)
        if client is None or not client.guard.is_current(token):
            logger.debug("ws_stale_snapshot_dropped", conn_id=conn_id, chat_id=token.chat_id)
            return False
        return await self._send(conn_id, client, json.dumps(message))

    async def send_to_user_direct(self, user_id: str, message: dict[str, Any]) -> int:
        """Send a message to every connection of a user.

        ``chat_message`` events also say whether the message belongs to the
        chat that connection has open.
        """
        conn_ids = list(self._user_connections.get(user_id, set()))
        sent = 0
        for conn_id in conn_ids:
            client = self._connections.get(conn_id)
            if client is None:
                continue
            outgoing = message
            if message.get("type") == "chat_message":
                chat_id = (message.get("payload") or {}).get("chat_id", "")
                outgoing = {**message, "active": client.guard.accepts(chat_id, user_id)}
            if await self._send(conn_id, client, json.dumps(outgoing)):
                sent += 1
        return sent

    def get_stats(self) -> dict[str, int]:
        return {
            "total_connections": len(self._connections),
            "unique_users": len(self._user_connections),
            "open_chats": sum(1 for c in self._connections.values() if c.guard.current is not None),
        }


# Global singleton
manager = ConnectionManager()
