"""Group membership and group chat tests."""

import pytest
from httpx import AsyncClient

THUMBS_UP = "\U0001f44d"


async def _create_group(client: AsyncClient, headers: dict, name: str = "Maple Street") -> dict:
    response = await client.post("/api/v1/groups", json={"name": name, "street_name": "Maple"}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def _join(client: AsyncClient, auth, group_id: int, admin, user) -> None:
    invited = await client.post(f"/api/v1/groups/{group_id}/invite", json={"user_id": user.id}, headers=auth(admin))
    assert invited.status_code == 200, invited.text
    accepted = await client.post(
        f"/api/v1/groups/{group_id}/invites/{invited.json()['invite_id']}/accept", headers=auth(user)
    )
    assert accepted.status_code == 200, accepted.text


@pytest.mark.asyncio
async def test_create_group_makes_creator_admin(client: AsyncClient, alice, auth) -> None:
    group = await _create_group(client, auth(alice))
    assert group["member_count"] == 1
    assert group["created_by"] == alice.id
    assert group["group_type"] == "street"

    mine = await client.get("/api/v1/groups/mine", headers=auth(alice))
    assert [(g["id"], g["my_role"]) for g in mine.json()] == [(group["id"], "admin")]

    detail = await client.get(f"/api/v1/groups/{group['id']}", headers=auth(alice))
    assert detail.json()["my_role"] == "admin"
    assert [m["username"] for m in detail.json()["members"]] == ["alice"]


@pytest.mark.asyncio
async def test_invalid_group_type(client: AsyncClient, alice, auth) -> None:
    response = await client.post("/api/v1/groups", json={"name": "x", "group_type": "castle"}, headers=auth(alice))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_invite_and_accept(client: AsyncClient, alice, bob, auth) -> None:
    group = await _create_group(client, auth(alice))
    gid = group["id"]

    invited = await client.post(f"/api/v1/groups/{gid}/invite", json={"user_id": bob.id}, headers=auth(alice))
    assert invited.status_code == 200
    invite_id = invited.json()["invite_id"]
    assert invited.json()["status"] == "invited"

    again = await client.post(f"/api/v1/groups/{gid}/invite", json={"user_id": bob.id}, headers=auth(alice))
    assert again.json()["invite_id"] == invite_id

    pending = await client.get("/api/v1/groups/invites", headers=auth(bob))
    assert [(i["group_id"], i["invite_id"], i["inviter_name"]) for i in pending.json()] == [(gid, invite_id, "Alice")]

    notifications = (await client.get("/api/v1/notifications", headers=auth(bob))).json()["notifications"]
    assert [n["type"] for n in notifications] == ["group_invite"]

    wrong_user = await client.post(f"/api/v1/groups/{gid}/invites/{invite_id}/accept", headers=auth(alice))
    assert wrong_user.status_code == 404

    accepted = await client.post(f"/api/v1/groups/{gid}/invites/{invite_id}/accept", headers=auth(bob))
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "active"
    assert accepted.json()["role"] == "member"

    detail = await client.get(f"/api/v1/groups/{gid}", headers=auth(bob))
    assert detail.json()["member_count"] == 2
    assert detail.json()["my_role"] == "member"

    inviter_notifications = (await client.get("/api/v1/notifications", headers=auth(alice))).json()["notifications"]
    assert inviter_notifications[0]["title"] == "Invite Accepted"

    reused = await client.post(f"/api/v1/groups/{gid}/invites/{invite_id}/accept", headers=auth(bob))
    assert reused.status_code == 404


@pytest.mark.asyncio
async def test_reject_invite(client: AsyncClient, alice, bob, auth) -> None:
    gid = (await _create_group(client, auth(alice)))["id"]
    invited = await client.post(f"/api/v1/groups/{gid}/invite", json={"user_id": bob.id}, headers=auth(alice))
    invite_id = invited.json()["invite_id"]

    rejected = await client.post(f"/api/v1/groups/{gid}/invites/{invite_id}/reject", headers=auth(bob))
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "rejected"

    assert (await client.get("/api/v1/groups/invites", headers=auth(bob))).json() == []
    detail = await client.get(f"/api/v1/groups/{gid}", headers=auth(alice))
    assert detail.json()["member_count"] == 1

    # a rejected user can be invited again with a fresh token
    reinvited = await client.post(f"/api/v1/groups/{gid}/invite", json={"user_id": bob.id}, headers=auth(alice))
    assert reinvited.json()["invite_id"] != invite_id


@pytest.mark.asyncio
async def test_invite_guards(client: AsyncClient, alice, bob, carol, auth) -> None:
    gid = (await _create_group(client, auth(alice)))["id"]

    itself = await client.post(f"/api/v1/groups/{gid}/invite", json={"user_id": alice.id}, headers=auth(alice))
    assert itself.status_code == 400
    assert itself.json()["code"] == "invalid_target"

    outsider = await client.post(f"/api/v1/groups/{gid}/invite", json={"user_id": carol.id}, headers=auth(bob))
    assert outsider.status_code == 403

    await _join(client, auth, gid, alice, bob)
    member_invites = await client.post(f"/api/v1/groups/{gid}/invite", json={"user_id": carol.id}, headers=auth(bob))
    assert member_invites.status_code == 403

    already = await client.post(f"/api/v1/groups/{gid}/invite", json={"user_id": bob.id}, headers=auth(alice))
    assert already.status_code == 409
    assert already.json()["code"] == "already_member"


@pytest.mark.asyncio
async def test_add_member_directly(client: AsyncClient, alice, bob, auth) -> None:
    gid = (await _create_group(client, auth(alice)))["id"]

    added = await client.post(f"/api/v1/groups/{gid}/members", json={"user_id": bob.id}, headers=auth(alice))
    assert added.status_code == 201
    assert added.json()["status"] == "active"

    duplicate = await client.post(f"/api/v1/groups/{gid}/members", json={"user_id": bob.id}, headers=auth(alice))
    assert duplicate.status_code == 409

    notifications = (await client.get("/api/v1/notifications", headers=auth(bob))).json()["notifications"]
    assert notifications[0]["title"] == "Added to Group"


@pytest.mark.asyncio
async def test_last_admin_cannot_leave(client: AsyncClient, alice, bob, auth) -> None:
    gid = (await _create_group(client, auth(alice)))["id"]
    await _join(client, auth, gid, alice, bob)

    blocked = await client.post(f"/api/v1/groups/{gid}/leave", headers=auth(alice))
    assert blocked.status_code == 409
    assert blocked.json()["code"] == "last_admin"

    step_down = await client.patch(
        f"/api/v1/groups/{gid}/members/{alice.id}/role", json={"role": "member"}, headers=auth(alice)
    )
    assert step_down.status_code == 409

    promoted = await client.patch(f"/api/v1/groups/{gid}/members/{bob.id}/role", json={"role": "admin"}, headers=auth(alice))
    assert promoted.status_code == 200
    assert promoted.json()["role"] == "admin"

    left = await client.post(f"/api/v1/groups/{gid}/leave", headers=auth(alice))
    assert left.status_code == 200
    assert left.json()["member_count"] == 1

    detail = await client.get(f"/api/v1/groups/{gid}", headers=auth(alice))
    assert detail.status_code == 403
    mine = await client.get("/api/v1/groups/mine", headers=auth(alice))
    assert mine.json() == []


@pytest.mark.asyncio
async def test_member_can_leave(client: AsyncClient, alice, bob, auth) -> None:
    gid = (await _create_group(client, auth(alice)))["id"]
    await _join(client, auth, gid, alice, bob)

    left = await client.post(f"/api/v1/groups/{gid}/leave", headers=auth(bob))
    assert left.status_code == 200
    assert left.json()["member_count"] == 1

    twice = await client.post(f"/api/v1/groups/{gid}/leave", headers=auth(bob))
    assert twice.status_code == 404


@pytest.mark.asyncio
async def test_remove_member(client: AsyncClient, alice, bob, carol, auth) -> None:
    gid = (await _create_group(client, auth(alice)))["id"]
    await _join(client, auth, gid, alice, bob)
    await _join(client, auth, gid, alice, carol)

    by_member = await client.delete(f"/api/v1/groups/{gid}/members/{carol.id}", headers=auth(bob))
    assert by_member.status_code == 403

    removed = await client.delete(f"/api/v1/groups/{gid}/members/{carol.id}", headers=auth(alice))
    assert removed.status_code == 204

    detail = await client.get(f"/api/v1/groups/{gid}", headers=auth(alice))
    assert detail.json()["member_count"] == 2
    assert {m["username"] for m in detail.json()["members"]} == {"alice", "bob"}

    history = await client.get(f"/api/v1/groups/{gid}/messages", headers=auth(carol))
    assert history.status_code == 403


@pytest.mark.asyncio
async def test_non_member_is_forbidden(client: AsyncClient, alice, carol, auth) -> None:
    gid = (await _create_group(client, auth(alice)))["id"]

    read = await client.get(f"/api/v1/groups/{gid}/messages", headers=auth(carol))
    assert read.status_code == 403
    assert read.json()["code"] == "forbidden"

    post = await client.post(f"/api/v1/groups/{gid}/messages", json={"content": "hi"}, headers=auth(carol))
    assert post.status_code == 403

    missing = await client.get("/api/v1/groups/9999/messages", headers=auth(carol))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_group_message_fanout(client: AsyncClient, alice, bob, carol, auth, online) -> None:
    gid = (await _create_group(client, auth(alice), name="Block Watch"))["id"]
    await _join(client, auth, gid, alice, bob)
    await _join(client, auth, gid, alice, carol)
    bob_channel = await online(bob)

    sent = await client.post(f"/api/v1/groups/{gid}/messages", json={"content": "Streetlight out on 5th"}, headers=auth(alice))
    assert sent.status_code == 201
    assert sent.json()["kind"] == "group"
    assert sent.json()["group_id"] == gid
    assert sent.json()["message_type"] == "text"
    assert sent.json()["message_id"] == sent.json()["id"]

    pushed = bob_channel.events("new_notification")
    assert [n["title"] for n in pushed] == ["New message in Block Watch"]
    assert pushed[0]["related_type"] == "group"
    assert pushed[0]["related_id"] == gid
    assert pushed[0]["related_name"] == "Block Watch"

    carol_notes = (await client.get("/api/v1/notifications", headers=auth(carol))).json()["notifications"]
    assert carol_notes[0]["title"] == "New message in Block Watch"
    assert carol_notes[0]["related_name"] == "Block Watch"
    alice_notes = (await client.get("/api/v1/notifications", headers=auth(alice))).json()["notifications"]
    assert all(n["title"] != "New message in Block Watch" for n in alice_notes)

    history = await client.get(f"/api/v1/groups/{gid}/messages", headers=auth(bob))
    assert [m["content"] for m in history.json()["messages"]] == ["Streetlight out on 5th"]


@pytest.mark.asyncio
async def test_group_message_edit_delete_and_reactions(client: AsyncClient, alice, bob, auth) -> None:
    gid = (await _create_group(client, auth(alice)))["id"]
    await _join(client, auth, gid, alice, bob)

    message = (await client.post(f"/api/v1/groups/{gid}/messages", json={"content": "Yard sale"}, headers=auth(bob))).json()
    url = f"/api/v1/groups/{gid}/messages/{message['id']}"

    not_author = await client.patch(url, json={"content": "x"}, headers=auth(alice))
    assert not_author.status_code == 403
    edited = await client.patch(url, json={"content": "Yard sale Sunday"}, headers=auth(bob))
    assert edited.json()["content"] == "Yard sale Sunday"

    await client.post(f"{url}/react", json={"emoji": THUMBS_UP}, headers=auth(alice))
    await client.post(f"{url}/react", json={"emoji": THUMBS_UP}, headers=auth(alice))
    reactions = await client.get(f"{url}/reactions", headers=auth(bob))
    assert reactions.json()["by_emoji"][THUMBS_UP]["count"] == 1

    wrong_group = await client.get(f"/api/v1/groups/{gid + 1}/messages/{message['id']}/reactions", headers=auth(bob))
    assert wrong_group.status_code == 404

    # admins may delete other members' messages
    deleted = await client.delete(url, headers=auth(alice))
    assert deleted.status_code == 204
    history = await client.get(f"/api/v1/groups/{gid}/messages", headers=auth(bob))
    assert history.json()["messages"] == []


@pytest.mark.asyncio
async def test_member_cannot_delete_others_message(client: AsyncClient, alice, bob, auth) -> None:
    gid = (await _create_group(client, auth(alice)))["id"]
    await _join(client, auth, gid, alice, bob)
    message = (await client.post(f"/api/v1/groups/{gid}/messages", json={"content": "admin note"}, headers=auth(alice))).json()

    response = await client.delete(f"/api/v1/groups/{gid}/messages/{message['id']}", headers=auth(bob))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_group_reply_snapshot(client: AsyncClient, alice, bob, auth) -> None:
    gid = (await _create_group(client, auth(alice)))["id"]
    await _join(client, auth, gid, alice, bob)
    original = (await client.post(f"/api/v1/groups/{gid}/messages", json={"content": "Who has a ladder?"}, headers=auth(alice))).json()

    reply = await client.post(
        f"/api/v1/groups/{gid}/messages",
        json={"content": "Me", "reply_to_message_id": original["id"]},
        headers=auth(bob),
    )
    assert reply.json()["reply_to"]["content"] == "Who has a ladder?"

    await client.delete(f"/api/v1/groups/{gid}/messages/{original['id']}", headers=auth(alice))
    history = await client.get(f"/api/v1/groups/{gid}/messages", headers=auth(bob))
    assert history.json()["messages"][0]["reply_to"]["content"] == "Who has a ladder?"
