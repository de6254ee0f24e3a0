"""Connection manager tests."""

import json
from unittest.mock import AsyncMock

import pytest

from nbhd.ws.manager import ConnectionManager


def _socket() -> AsyncMock:
    return AsyncMock()


@pytest.mark.asyncio
async def test_connect_send_disconnect() -> None:
    manager = ConnectionManager()
    ws = _socket()

    client = await manager.connect(ws, "c1", 7)
    ws.accept.assert_awaited_once()
    assert manager.is_connected(7)
    assert manager.get_stats() == {"total_connections": 1, "unique_users": 1}

    assert await manager.send_to_user(7, "pong", {}) == 1
    assert json.loads(ws.send_text.await_args.args[0]) == {"event": "pong", "data": {}}
    assert client.messages_sent == 1

    assert await manager.disconnect("c1") is client
    assert not manager.is_connected(7)
    assert await manager.disconnect("c1") is None


@pytest.mark.asyncio
async def test_failed_socket_is_dropped() -> None:
    manager = ConnectionManager()
    healthy, broken = _socket(), _socket()
    broken.send_text.side_effect = RuntimeError("closed")
    await manager.connect(healthy, "ok", 7)
    await manager.connect(broken, "bad", 7)

    assert await manager.send_to_user(7, "unread_count", {"count": 1}) == 1
    assert manager.connection_count == 1
    assert manager.is_connected(7)

