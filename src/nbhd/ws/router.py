"""WebSocket endpoint: JWT at handshake, then a small event protocol."""

import json
import uuid
from typing import Any

import jwt
import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.auth.jwt import verify_token
from nbhd.database import get_session_factory
from nbhd.errors import DomainError
from nbhd.notifications.service import (
    UNREAD_COUNT,
    emit_unread_count,
    get_notifications,
    get_unread_count,
    mark_all_as_read,
    mark_as_read,
    serialize_notifications,
)
from nbhd.ws.manager import ClientConnection, manager
from nbhd.ws.presence import get_presence

logger = structlog.get_logger()

router = APIRouter()


def _parse_frame(raw: str) -> tuple[str, dict[str, Any]] | None:
    """Decode a client frame into (event, data). None when the frame is malformed."""
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(msg, dict) or not isinstance(msg.get("event"), str):
        return None
    data = msg.get("data") or {}
    if not isinstance(data, dict):
        return None
    return msg["event"], data


async def _handle(db: AsyncSession, client: ClientConnection, event: str, data: dict[str, Any]) -> None:
    user_id = client.user_id

    if event == "get_notifications":
        limit = min(max(int(data.get("limit", 50)), 1), 200)
        notifications = await get_notifications(db, user_id, limit, bool(data.get("unread_only", False)))
        await client.send("notifications_list", await serialize_notifications(db, notifications))

    elif event == "mark_as_read":
        notification = await mark_as_read(db, user_id, int(data["notification_id"]))
        await db.commit()
        await client.send("marked_as_read", {"notification_id": notification.id})
        await emit_unread_count(db, user_id)

    elif event == "mark_all_as_read":
        count = await mark_all_as_read(db, user_id)
        await db.commit()
        await client.send("marked_all_as_read", {"count": count})
        await emit_unread_count(db, user_id)

    elif event == "ping":
        await get_presence().refresh(user_id)
        await client.send("pong", {})

    else:
        await client.send("error", {"message": f"Unknown event: {event}"})


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    """Per-user push channel.

    Protocol:
        Client -> Server:
            {"event": "get_notifications", "data": {"limit": 50, "unread_only": false}}
            {"event": "mark_as_read", "data": {"notification_id": 1}}
            {"event": "mark_all_as_read"}
            {"event": "ping"}

        Server -> Client:
            {"event": "new_notification", "data": {...}}
            {"event": "unread_count", "data": {"count": 3}}
            {"event": "notifications_list", "data": [...]}
            {"event": "marked_as_read", "data": {"notification_id": 1}}
            {"event": "marked_all_as_read", "data": {"count": 3}}
            {"event": "pong", "data": {}}
            {"event": "error", "data": {"message": "..."}}
    """
    try:
        payload = verify_token(token, expected_type="access")
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        await websocket.close(code=4001, reason=f"Authentication failed: {e}")
        return

    conn_id = str(uuid.uuid4())
    client = await manager.connect(websocket, conn_id, user_id)
    presence = get_presence()
    await presence.register(user_id, client)

    session_factory = get_session_factory()
    try:
        async with session_factory() as db:
            await client.send(UNREAD_COUNT, {"count": await get_unread_count(db, user_id)})

        while True:
            frame = _parse_frame(await websocket.receive_text())
            if frame is None:
                await client.send("error", {"message": "Invalid message"})
                continue
            event, data = frame

            async with session_factory() as db:
                try:
                    await _handle(db, client, event, data)
                except DomainError as e:
                    await client.send("error", {"message": e.detail, "code": e.code})
                except (KeyError, TypeError, ValueError):
                    await client.send("error", {"message": f"Invalid payload for {event}"})

    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("ws_error", conn_id=conn_id)
    finally:
        await presence.unregister(user_id, client)
        await manager.disconnect(conn_id)
