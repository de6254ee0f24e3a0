"""Device push-token registry tests."""

import pytest
from httpx import AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.db.models import NotificationToken
from nbhd.errors import NotFound, ValidationFailed
from nbhd.notifications.tokens import list_tokens, register_token, unregister_token


@pytest.mark.asyncio
async def test_register_and_list(client: AsyncClient, alice, auth) -> None:
    response = await client.post(
        "/api/v1/notifications/register-token",
        json={"token": "fcm-abc", "platform": "android", "device_id": "pixel-7"},
        headers=auth(alice),
    )
    assert response.status_code == 200
    data = response.json()
    assert (data["token"], data["platform"], data["device_id"], data["is_active"]) == (
        "fcm-abc",
        "android",
        "pixel-7",
        True,
    )

    await client.post("/api/v1/notifications/register-token", json={"token": "apns-1", "platform": "ios"}, headers=auth(alice))

    listed = await client.get("/api/v1/notifications/tokens", headers=auth(alice))
    assert sorted(t["token"] for t in listed.json()["tokens"]) == ["apns-1", "fcm-abc"]


@pytest.mark.asyncio
async def test_register_rejects_unknown_platform(client: AsyncClient, alice, auth) -> None:
    response = await client.post(
        "/api/v1/notifications/register-token",
        json={"token": "x", "platform": "blackberry"},
        headers=auth(alice),
    )
    assert response.status_code == 400
    assert response.json()["code"] == "validation"

    missing = await client.post("/api/v1/notifications/register-token", json={"platform": "web"}, headers=auth(alice))
    assert missing.status_code == 422


@pytest.mark.asyncio
async def test_reregister_moves_token_and_reactivates(db: AsyncSession, alice, bob) -> None:
    await register_token(db, alice.id, "web-push-1", "web")
    await db.execute(update(NotificationToken).values(is_active=False))
    await db.commit()

    token = await register_token(db, bob.id, "web-push-1", "web", "firefox")
    assert (token.user_id, token.is_active, token.device_id) == (bob.id, True, "firefox")
    assert await list_tokens(db, alice.id) == []
    assert [t.token for t in await list_tokens(db, bob.id)] == ["web-push-1"]

    with pytest.raises(ValidationFailed):
        await register_token(db, bob.id, "web-push-2", "fax")


@pytest.mark.asyncio
async def test_deactivate_and_unregister(client: AsyncClient, alice, bob, auth) -> None:
    await client.post("/api/v1/notifications/register-token", json={"token": "t1", "platform": "web"}, headers=auth(alice))
    await client.post("/api/v1/notifications/register-token", json={"token": "t2", "platform": "ios"}, headers=auth(alice))

    foreign = await client.patch("/api/v1/notifications/token/t1/deactivate", headers=auth(bob))
    assert foreign.status_code == 404

    deactivated = await client.patch("/api/v1/notifications/token/t1/deactivate", headers=auth(alice))
    assert deactivated.status_code == 204
    listed = await client.get("/api/v1/notifications/tokens", headers=auth(alice))
    assert [t["token"] for t in listed.json()["tokens"]] == ["t2"]

    assert (await client.delete("/api/v1/notifications/token/t2", headers=auth(bob))).status_code == 404
    assert (await client.delete("/api/v1/notifications/token/t2", headers=auth(alice))).status_code == 204
    assert (await client.delete("/api/v1/notifications/token/t2", headers=auth(alice))).status_code == 404
    assert (await client.get("/api/v1/notifications/tokens", headers=auth(alice))).json()["tokens"] == []


@pytest.mark.asyncio
async def test_tokens_require_auth(client: AsyncClient) -> None:
    response = await client.get("/api/v1/notifications/tokens")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unregister_unknown_token(db: AsyncSession, alice) -> None:
    with pytest.raises(NotFound):
        await unregister_token(db, alice.id, "nope")
