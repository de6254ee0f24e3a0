"""WebSocket connection manager.

Tracks the live WebSocket connections of this process, grouped per user, and
pushes ``{"event": ..., "data": ...}`` frames to them.
"""

import json
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

import structlog
from fastapi import WebSocket

logger = structlog.get_logger()


@dataclass(eq=False)
class ClientConnection:
    """A single WebSocket client. Doubles as a presence channel."""

    websocket: WebSocket
    conn_id: str
    user_id: int
    connected_at: float = field(default_factory=time.time)
    messages_sent: int = 0

    async def send(self, event: str, data: Any) -> None:  # noqa: ANN401
        await self.websocket.send_text(json.dumps({"event": event, "data": data}, default=str))
        self.messages_sent += 1


class ConnectionManager:
    """Manages all active WebSocket connections.

    Safe for asyncio via the single-threaded event loop.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}  # conn_id -> client
        self._user_connections: dict[int, set[str]] = defaultdict(set)  # user_id -> {conn_ids}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def is_connected(self, user_id: int) -> bool:
        return bool(self._user_connections.get(user_id))

    async def connect(self, websocket: WebSocket, conn_id: str, user_id: int) -> ClientConnection:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        client = ClientConnection(websocket=websocket, conn_id=conn_id, user_id=user_id)
        self._connections[conn_id] = client
        self._user_connections[user_id].add(conn_id)
        logger.info("ws_connected", conn_id=conn_id, user_id=user_id)
        return client

    async def disconnect(self, conn_id: str) -> ClientConnection | None:
        """Forget a connection. Returns the removed client, if it was known."""
        client = self._connections.pop(conn_id, None)
        if client is None:
            return None

        self._user_connections[client.user_id].discard(conn_id)
        if not self._user_connections[client.user_id]:
            del self._user_connections[client.user_id]

        logger.info("ws_disconnected", conn_id=conn_id, user_id=client.user_id)
        return client

    async def send_to_user(self, user_id: int, event: str, data: Any) -> int:  # noqa: ANN401
        """Send an event to every connection of a user on this process.

        Connections that fail to accept the frame are dropped. Returns the
        number of connections that received it.
        """
        sent = 0
        for conn_id in list(self._user_connections.get(user_id, set())):
            client = self._connections.get(conn_id)
            if client is None:
                continue
            try:
                await client.send(event, data)
                sent += 1
            except Exception:  # noqa: BLE001
                logger.debug("ws_send_failed", conn_id=conn_id, user_id=user_id)
                await self.disconnect(conn_id)
        return sent

    def get_stats(self) -> dict[str, int]:
        """Get connection statistics."""
        return {
            "total_connections": len(self._connections),
            "unique_users": len(self._user_connections),
        }


# Global singleton
manager = ConnectionManager()
