"""Presence registry: who is reachable right now, and through what.

The notification fanout asks ``lookup(user_id)`` and either pushes through the
returned channel or stops (the notification is already stored and will be
fetched later). Two backends:

* ``LocalPresenceRegistry`` keeps channels in process memory. Suitable for a
  single API instance and for tests.
* ``RedisPresenceRegistry`` records presence in Redis so any instance can see
  it. Lookups return a channel that publishes to ``ws:user:{id}``; the
  ``PubSubBridge`` on every instance forwards such messages to its local
  sockets.
"""

from __future__ import annotations

import abc
import json
import logging
from collections import defaultdict
from typing import Any, Protocol

from nbhd.config import get_settings
from nbhd.redis_client import get_redis

logger = logging.getLogger(__name__)

USER_CHANNEL_PREFIX = "ws:user:"
PRESENCE_KEY_PREFIX = "presence:user:"


class PushChannel(Protocol):
    """Something that can deliver an event to a connected user."""

    async def send(self, event: str, data: Any) -> None: ...  # noqa: ANN401


class PresenceRegistry(abc.ABC):
    @abc.abstractmethod
    async def register(self, user_id: int, channel: PushChannel) -> None: ...

    @abc.abstractmethod
    async def unregister(self, user_id: int, channel: PushChannel) -> None: ...

    @abc.abstractmethod
    async def lookup(self, user_id: int) -> PushChannel | None: ...

    async def refresh(self, user_id: int) -> None:  # noqa: B027
        """Extend the user's presence (called on client heartbeat)."""


class _Broadcast:
    """Fans one send out to all of a user's local channels."""

    def __init__(self, channels: list[PushChannel]) -> None:
        self.channels = channels

    async def send(self, event: str, data: Any) -> None:  # noqa: ANN401
        """Deliver to every channel. Raises only if none of them took it."""
        delivered = 0
        for channel in self.channels:
            try:
                await channel.send(event, data)
            except Exception:  # noqa: BLE001
                logger.warning("Failed to push %s to one local channel", event, exc_info=True)
            else:
                delivered += 1
        if self.channels and not delivered:
            raise ConnectionError(f"No local channel accepted {event}")


class LocalPresenceRegistry(PresenceRegistry):
    """In-process registry. A user may hold several connections at once."""

    def __init__(self) -> None:
        self._channels: dict[int, list[PushChannel]] = defaultdict(list)

    async def register(self, user_id: int, channel: PushChannel) -> None:
        if channel not in self._channels[user_id]:
            self._channels[user_id].append(channel)

    async def unregister(self, user_id: int, channel: PushChannel) -> None:
        channels = self._channels.get(user_id)
        if not channels:
            return
        if channel in channels:
            channels.remove(channel)
        if not channels:
            del self._channels[user_id]

    async def lookup(self, user_id: int) -> PushChannel | None:
        channels = self._channels.get(user_id)
        if not channels:
            return None
        if len(channels) == 1:
            return channels[0]
        return _Broadcast(list(channels))


class RedisUserChannel:
    """Publishes events to the user's pub/sub channel."""

    def __init__(self, redis: Any, user_id: int) -> None:  # noqa: ANN401
        self.redis = redis
        self.user_id = user_id

    async def send(self, event: str, data: Any) -> None:  # noqa: ANN401
        await self.redis.publish(
            f"{USER_CHANNEL_PREFIX}{self.user_id}",
            json.dumps({"event": event, "data": data}, default=str),
        )


class RedisPresenceRegistry(PresenceRegistry):
    """Cluster-wide presence.

    Each live connection is a member of the set ``presence:user:{id}``. The key
    expires after ``ttl_seconds`` unless refreshed, so a crashed instance does
    not leave users marked online forever.
    """

    def __init__(self, redis: Any, ttl_seconds: int = 90) -> None:  # noqa: ANN401
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(user_id: int) -> str:
        return f"{PRESENCE_KEY_PREFIX}{user_id}"

    @staticmethod
    def _member(channel: PushChannel) -> str:
        return str(getattr(channel, "conn_id", id(channel)))

    async def register(self, user_id: int, channel: PushChannel) -> None:
        key = self._key(user_id)
        pipe = self.redis.pipeline()
        pipe.sadd(key, self._member(channel))
        pipe.expire(key, self.ttl_seconds)
        await pipe.execute()

    async def unregister(self, user_id: int, channel: PushChannel) -> None:
        await self.redis.srem(self._key(user_id), self._member(channel))

    async def refresh(self, user_id: int) -> None:
        await self.redis.expire(self._key(user_id), self.ttl_seconds)

    async def lookup(self, user_id: int) -> PushChannel | None:
        if not await self.redis.scard(self._key(user_id)):
            return None
        return RedisUserChannel(self.redis, user_id)


_presence: PresenceRegistry | None = None


def set_presence(registry: PresenceRegistry | None) -> None:
    """Install the process-wide registry (``None`` resets to lazy default)."""
    global _presence  # noqa: PLW0603
    _presence = registry


def get_presence() -> PresenceRegistry:
    """Return the process-wide registry, building it from settings on first use."""
    global _presence  # noqa: PLW0603
    if _presence is None:
        settings = get_settings()
        if settings.presence_backend == "redis":
            _presence = RedisPresenceRegistry(get_redis(), settings.presence_ttl_seconds)
        else:
            _presence = LocalPresenceRegistry()
        logger.info("Presence backend: %s", type(_presence).__name__)
    return _presence
