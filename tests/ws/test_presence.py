"""Presence registry tests."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from nbhd.ws.presence import LocalPresenceRegistry, RedisPresenceRegistry, RedisUserChannel


class _Recorder:
    def __init__(self) -> None:
        self.sent: list[tuple[str, object]] = []

    async def send(self, event: str, data: object) -> None:
        self.sent.append((event, data))


@pytest.mark.asyncio
async def test_local_lookup_single_and_many() -> None:
    registry = LocalPresenceRegistry()
    assert await registry.lookup(1) is None

    phone, laptop = _Recorder(), _Recorder()
    await registry.register(1, phone)
    assert await registry.lookup(1) is phone

    await registry.register(1, laptop)
    channel = await registry.lookup(1)
    await channel.send("unread_count", {"count": 2})
    assert phone.sent == laptop.sent == [("unread_count", {"count": 2})]


@pytest.mark.asyncio
async def test_local_unregister() -> None:
    registry = LocalPresenceRegistry()
    channel = _Recorder()
    await registry.register(1, channel)
    await registry.register(1, channel)

    await registry.unregister(1, channel)
    assert await registry.lookup(1) is None
    await registry.unregister(1, channel)


class _Dead:
    async def send(self, event: str, data: object) -> None:
        raise ConnectionError("closed")


@pytest.mark.asyncio
async def test_local_broadcast_skips_failed_channel() -> None:
    registry = LocalPresenceRegistry()
    laptop = _Recorder()
    await registry.register(1, _Dead())
    await registry.register(1, laptop)

    channel = await registry.lookup(1)
    await channel.send("new_notification", {"id": 5})
    assert laptop.sent == [("new_notification", {"id": 5})]


@pytest.mark.asyncio
async def test_local_broadcast_raises_when_every_channel_fails() -> None:
    registry = LocalPresenceRegistry()
    await registry.register(1, _Dead())
    await registry.register(1, _Dead())

    channel = await registry.lookup(1)
    with pytest.raises(ConnectionError):
        await channel.send("new_notification", {"id": 5})


def _redis() -> MagicMock:
    redis = MagicMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[1, True])
    redis.pipeline.return_value = pipe
    redis.srem = AsyncMock()
    redis.expire = AsyncMock()
    redis.scard = AsyncMock(return_value=0)
    redis.publish = AsyncMock()
    return redis


@pytest.mark.asyncio
async def test_redis_register_sets_ttl() -> None:
    redis = _redis()
    registry = RedisPresenceRegistry(redis, ttl_seconds=30)

    await registry.register(5, SimpleNamespace(conn_id="conn-1"))

    pipe = redis.pipeline.return_value
    pipe.sadd.assert_called_once_with("presence:user:5", "conn-1")
    pipe.expire.assert_called_once_with("presence:user:5", 30)
    pipe.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_unregister_and_refresh() -> None:
    redis = _redis()
    registry = RedisPresenceRegistry(redis, ttl_seconds=30)

    await registry.unregister(5, SimpleNamespace(conn_id="conn-1"))
    redis.srem.assert_awaited_once_with("presence:user:5", "conn-1")

    await registry.refresh(5)
    redis.expire.assert_awaited_once_with("presence:user:5", 30)


@pytest.mark.asyncio
async def test_redis_lookup_publishes_to_user_channel() -> None:
    redis = _redis()
    registry = RedisPresenceRegistry(redis)
    assert await registry.lookup(5) is None

    redis.scard.return_value = 2
    channel = await registry.lookup(5)
    assert isinstance(channel, RedisUserChannel)

    await channel.send("new_notification", {"id": 9})
    topic, body = redis.publish.await_args.args
    assert topic == "ws:user:5"
    assert json.loads(body) == {"event": "new_notification", "data": {"id": 9}}
