"""WebSocket endpoint: JWT authentication, active-chat tracking, realtime events."""

import asyncio
import json
import uuid
from typing import Any

import jwt
import structlog
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from commonly.auth.dependencies import user_from_token
from commonly.chat.message_service import build_message_list, get_messages
from commonly.chat.presentation import ChatContext
from commonly.chat.service import get_chat_by_id
from commonly.config import get_settings
from commonly.database import get_session_factory
from commonly.ws.manager import ConnectionManager, manager

logger = structlog.get_logger()

router = APIRouter()


async def push_chat_snapshot(
    session_factory: async_sessionmaker[AsyncSession],
    conn_manager: ConnectionManager,
    conn_id: str,
    token: ChatContext,
) -> bool:
    """Fetch the chat's messages and send them if ``token`` is still the active chat."""
    try:
        async with session_factory() as db:
            chat = await get_chat_by_id(db, token.chat_id)
            if chat is None or token.user_id not in (chat.participants or []):
                return await conn_manager.send_chat_snapshot(conn_id, token, {
                    "type": "error",
                    "message": f"Cannot open chat: {token.chat_id}",
                })
            messages = await get_messages(db, token.chat_id, limit=get_settings().message_page_size)
    except SQLAlchemyError:
        logger.warning("ws_snapshot_failed", conn_id=conn_id, chat_id=token.chat_id, exc_info=True)
        return await conn_manager.send_chat_snapshot(conn_id, token, {
            "type": "error",
            "message": "Chat history unavailable",
        })

    snapshot = build_message_list(token.chat_id, messages, token.user_id)
    return await conn_manager.send_chat_snapshot(conn_id, token, {
        "type": "messages",
        "payload": snapshot.model_dump(),
    })


def _log_snapshot_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("ws_snapshot_task_failed", exc_info=task.exception())


def parse_client_frame(raw: str) -> dict[str, Any] | None:
    """Decode a client frame. Anything but a JSON object is rejected as None."""
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return msg if isinstance(msg, dict) else None


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> None:
    """Single WebSocket endpoint per client session.

    Protocol:
        Client -> Server:
            {"action": "open_chat", "chat_id": "..."}
            {"action": "close_chat"}
            {"action": "ping"}

        Server -> Client:
            {"type": "messages", "payload": {...}}       snapshot of the open chat
            {"type": "chat_message", "payload": {...}, "active": bool}
            {"type": "notification", "payload": {...}}
            {"type": "chat_opened", "chat_id": "..."}
            {"type": "chat_closed"}
            {"type": "pong"}
            {"type": "error", "message": "..."}
    """
    try:
        async with session_factory() as db:
            user = await user_from_token(db, token)
            user_id = user.uid
    except jwt.InvalidTokenError as e:
        await websocket.close(code=4001, reason=f"Authentication failed: {e}")
        return

    conn_id = str(uuid.uuid4())
    await manager.connect(websocket, conn_id, user_id)
    pending: set[asyncio.Task] = set()

    try:
        while True:
            raw = await websocket.receive_text()
            msg = parse_client_frame(raw)
            if msg is None:
                await websocket.send_json({"type": "error", "message": "Expected a JSON object"})
                continue

            action = msg.get("action")

            if action == "open_chat":
                chat_id = msg.get("chat_id")
                if not chat_id or not isinstance(chat_id, str):
                    await websocket.send_json({"type": "error", "message": "chat_id is required"})
                    continue
                context = manager.open_chat(conn_id, chat_id)
                await websocket.send_json({"type": "chat_opened", "chat_id": chat_id})
                # Fetch off the receive loop so a later open/close supersedes it.
                task = asyncio.create_task(push_chat_snapshot(session_factory, manager, conn_id, context))
                pending.add(task)
                task.add_done_callback(pending.discard)
                task.add_done_callback(_log_snapshot_failure)

            elif action == "close_chat":
                manager.close_chat(conn_id)
                await websocket.send_json({"type": "chat_closed"})

            elif action == "ping":
                await websocket.send_json({"type": "pong"})

            else:
                await websocket.send_json({
                    "type": "error",
                    "message": f"Unknown action: {action}",
                })

    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("ws_error", conn_id=conn_id)
    finally:
        for task in pending:
            task.cancel()
        await manager.disconnect(conn_id)
