"""Notification storage, fanout and read-state tests."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.database import get_session_factory
from nbhd.db.helpers import utcnow
from nbhd.db.models import Event, Notification, Post
from nbhd.notifications.service import (
    NEW_NOTIFICATION,
    best_effort,
    notify,
    notify_many,
    push_to_user,
    send_pending_pushes,
)
from nbhd.ws.presence import LocalPresenceRegistry


class _BrokenChannel:
    async def send(self, event: str, data: object) -> None:
        raise ConnectionError("socket gone")


class _VisibilityChannel:
    """Looks the pushed notification up from a separate session."""

    def __init__(self) -> None:
        self.visible: list[bool] = []

    async def send(self, event: str, data: dict) -> None:
        if event != NEW_NOTIFICATION:
            return
        async with get_session_factory()() as other:
            self.visible.append(await other.get(Notification, data["id"]) is not None)


async def _seed(db: AsyncSession, user_id: int, count: int) -> list[Notification]:
    created = [await notify(db, user_id, "alert", f"Alert {i}", "Water main break") for i in range(count)]
    await db.commit()
    return created


@pytest.mark.asyncio
async def test_offline_user_fetches_later(client: AsyncClient, alice, bob, auth) -> None:
    """No presence: the notification is only stored, and shows up on the next fetch."""
    await client.post("/api/v1/direct/send", json={"receiver_id": bob.id, "content": "Are you home?"}, headers=auth(alice))

    response = await client.get("/api/v1/notifications", headers=auth(bob))
    data = response.json()
    assert data["unread_count"] == 1
    assert data["notifications"][0]["content"] == "Are you home?"
    assert data["notifications"][0]["is_read"] is False


@pytest.mark.asyncio
async def test_online_user_gets_push(client: AsyncClient, alice, bob, auth, online) -> None:
    channel = await online(bob)

    await client.post("/api/v1/direct/send", json={"receiver_id": bob.id, "content": "Are you home?"}, headers=auth(alice))

    pushed = channel.events(NEW_NOTIFICATION)
    assert len(pushed) == 1
    assert pushed[0]["title"] == "New Message"
    assert pushed[0]["user_id"] == bob.id

    stored = (await client.get("/api/v1/notifications", headers=auth(bob))).json()["notifications"]
    assert stored[0]["id"] == pushed[0]["id"]


@pytest.mark.asyncio
async def test_push_failure_keeps_stored_row(db: AsyncSession, alice, presence: LocalPresenceRegistry) -> None:
    await presence.register(alice.id, _BrokenChannel())

    notification = await notify(db, alice.id, "alert", "Storm warning", presence=presence)
    await db.commit()
    assert await send_pending_pushes(db) == 0

    assert notification is not None
    assert await db.get(Notification, notification.id) is not None
    assert await push_to_user(alice.id, NEW_NOTIFICATION, {}, presence) is False


@pytest.mark.asyncio
async def test_invalid_values_are_ignored(db: AsyncSession, alice) -> None:
    assert await notify(db, alice.id, "spam", "x") is None
    assert await notify(db, alice.id, "alert", "x", related_type="planet", related_id=1) is None
    assert await notify(db, alice.id, "alert", "x", priority="critical") is None

    count = await db.execute(select(func.count()).select_from(Notification))
    assert count.scalar_one() == 0


@pytest.mark.asyncio
async def test_notify_many_deduplicates(db: AsyncSession, alice, bob) -> None:
    created = await notify_many(db, [alice.id, bob.id, alice.id], "event", "Block party", priority="low")
    await db.commit()
    assert sorted(n.user_id for n in created) == sorted([alice.id, bob.id])


@pytest.mark.asyncio
async def test_unread_only_and_limit(client: AsyncClient, db: AsyncSession, alice, auth) -> None:
    notifications = await _seed(db, alice.id, 3)
    await client.patch(f"/api/v1/notifications/{notifications[0].id}/read", headers=auth(alice))

    unread = await client.get("/api/v1/notifications", params={"unread_only": True}, headers=auth(alice))
    assert {n["id"] for n in unread.json()["notifications"]} == {notifications[1].id, notifications[2].id}

    limited = await client.get("/api/v1/notifications", params={"limit": 1}, headers=auth(alice))
    assert [n["id"] for n in limited.json()["notifications"]] == [notifications[2].id]
    assert limited.json()["unread_count"] == 2


@pytest.mark.asyncio
async def test_mark_read_pushes_unread_count(client: AsyncClient, db: AsyncSession, alice, bob, auth, online) -> None:
    notifications = await _seed(db, alice.id, 2)
    channel = await online(alice)

    response = await client.patch(f"/api/v1/notifications/{notifications[0].id}/read", headers=auth(alice))
    assert response.status_code == 200
    assert response.json()["is_read"] is True
    assert channel.events("unread_count") == [{"count": 1}]

    count = await client.get("/api/v1/notifications/unread/count", headers=auth(alice))
    assert count.json() == {"count": 1}

    foreign = await client.patch(f"/api/v1/notifications/{notifications[1].id}/read", headers=auth(bob))
    assert foreign.status_code == 403
    missing = await client.patch("/api/v1/notifications/9999/read", headers=auth(alice))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_mark_all_read_and_clear(client: AsyncClient, db: AsyncSession, alice, auth) -> None:
    await _seed(db, alice.id, 3)

    marked = await client.patch("/api/v1/notifications/read-all", headers=auth(alice))
    assert marked.json()["count"] == 3

    count = await client.get("/api/v1/notifications/unread/count", headers=auth(alice))
    assert count.json() == {"count": 0}

    cleared = await client.delete("/api/v1/notifications/clear-read", headers=auth(alice))
    assert cleared.status_code == 200
    assert cleared.json()["count"] == 3
    assert (await client.get("/api/v1/notifications", headers=auth(alice))).json()["notifications"] == []


@pytest.mark.asyncio
async def test_delete_notification(client: AsyncClient, db: AsyncSession, alice, bob, auth) -> None:
    (notification,) = await _seed(db, alice.id, 1)

    foreign = await client.delete(f"/api/v1/notifications/{notification.id}", headers=auth(bob))
    assert foreign.status_code == 403

    response = await client.delete(f"/api/v1/notifications/{notification.id}", headers=auth(alice))
    assert response.status_code == 204
    assert (await client.get("/api/v1/notifications", headers=auth(alice))).json()["unread_count"] == 0


@pytest.mark.asyncio
async def test_push_happens_after_commit(client: AsyncClient, alice, bob, auth, presence: LocalPresenceRegistry) -> None:
    channel = _VisibilityChannel()
    await presence.register(bob.id, channel)

    await client.post("/api/v1/direct/send", json={"receiver_id": bob.id, "content": "Gate is open"}, headers=auth(alice))

    assert channel.visible == [True]


@pytest.mark.asyncio
async def test_nothing_is_pushed_before_commit(db: AsyncSession, alice, online) -> None:
    channel = await online(alice)

    notification = await notify(db, alice.id, "alert", "Boil water advisory")
    assert channel.sent == []

    await db.commit()
    assert await send_pending_pushes(db) == 1
    assert [n["id"] for n in channel.events(NEW_NOTIFICATION)] == [notification.id]


@pytest.mark.asyncio
async def test_failed_side_effect_drops_queued_pushes(db: AsyncSession, alice, online) -> None:
    channel = await online(alice)

    async with best_effort(db, "alert_fanout"):
        await notify(db, alice.id, "alert", "Power outage")
        raise SQLAlchemyError("connection reset")

    assert channel.sent == []
    assert await send_pending_pushes(db) == 0
    count = await db.execute(select(func.count()).select_from(Notification))
    assert count.scalar_one() == 0


@pytest.mark.asyncio
async def test_related_name_resolved(client: AsyncClient, db: AsyncSession, alice, bob, auth, online) -> None:
    channel = await online(alice)
    post = Post(user_id=alice.id, content="Lost cat near the park", status="active", created_at=utcnow())
    event = Event(organizer_id=bob.id, title="Street cleanup", created_at=utcnow())
    db.add_all([post, event])
    await db.flush()

    async with best_effort(db, "related_names"):
        await notify(db, alice.id, "alert", "New like", related_type="post", related_id=post.id)
        await notify(db, alice.id, "event", "New signup", related_type="event", related_id=event.id)
        await notify(db, alice.id, "system", "New Follower", related_type="user", related_id=bob.id)
        await notify(db, alice.id, "alert", "Gone", related_type="post", related_id=9999)
        await notify(db, alice.id, "system", "Welcome")

    pushed = {n["title"]: n["related_name"] for n in channel.events(NEW_NOTIFICATION)}
    assert pushed == {
        "New like": "Lost cat near the park",
        "New signup": "Street cleanup",
        "New Follower": "Bob",
        "Gone": None,
        "Welcome": None,
    }

    listed = (await client.get("/api/v1/notifications", headers=auth(alice))).json()["notifications"]
    assert {n["title"]: n["related_name"] for n in listed} == pushed
