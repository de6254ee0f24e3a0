"""WebSocket event handling tests."""

import json
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.errors import Forbidden
from nbhd.notifications.service import notify
from nbhd.ws.manager import ClientConnection
from nbhd.ws.router import _handle, _parse_frame


def _client(user_id: int) -> ClientConnection:
    return ClientConnection(websocket=AsyncMock(), conn_id=f"conn-{user_id}", user_id=user_id)


def _frames(client: ClientConnection) -> list[dict]:
    return [json.loads(call.args[0]) for call in client.websocket.send_text.await_args_list]


@pytest.mark.asyncio
async def test_get_notifications_and_mark_read(db: AsyncSession, alice, presence) -> None:
    first = await notify(db, alice.id, "alert", "Road closed")
    await notify(db, alice.id, "event", "Block party")
    await db.commit()
    client = _client(alice.id)
    await presence.register(alice.id, client)

    await _handle(db, client, "get_notifications", {"limit": 10})
    listing = _frames(client)[-1]
    assert listing["event"] == "notifications_list"
    assert [n["title"] for n in listing["data"]] == ["Block party", "Road closed"]

    await _handle(db, client, "mark_as_read", {"notification_id": first.id})
    events = [(f["event"], f["data"]) for f in _frames(client)[-2:]]
    assert events == [("marked_as_read", {"notification_id": first.id}), ("unread_count", {"count": 1})]

    await _handle(db, client, "mark_all_as_read", {})
    events = [(f["event"], f["data"]) for f in _frames(client)[-2:]]
    assert events == [("marked_all_as_read", {"count": 1}), ("unread_count", {"count": 0})]


@pytest.mark.asyncio
async def test_ping_and_unknown_event(db: AsyncSession, alice, presence) -> None:
    client = _client(alice.id)

    await _handle(db, client, "ping", {})
    await _handle(db, client, "dance", {})

    frames = _frames(client)
    assert frames[0] == {"event": "pong", "data": {}}
    assert frames[1]["event"] == "error"
    assert "dance" in frames[1]["data"]["message"]


@pytest.mark.asyncio
async def test_cannot_mark_someone_elses_notification(db: AsyncSession, alice, bob, presence) -> None:
    notification = await notify(db, alice.id, "alert", "Private")
    await db.commit()

    with pytest.raises(Forbidden):
        await _handle(db, _client(bob.id), "mark_as_read", {"notification_id": notification.id})


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('{"event": "get_notifications", "data": {"limit": 5}}', ("get_notifications", {"limit": 5})),
        ('{"event": "ping"}', ("ping", {})),
        ('{"event": "mark_all_as_read", "data": null}', ("mark_all_as_read", {})),
        ('{"event": "get_notifications", "data": "x"}', None),
        ('{"event": "get_notifications", "data": [1, 2]}', None),
        ('{"data": {}}', None),
        ('{"event": 3}', None),
        ("[1, 2, 3]", None),
        ('"ping"', None),
        ("not json", None),
    ],
)
def test_parse_frame(raw: str, expected: tuple | None) -> None:
    assert _parse_frame(raw) == expected
