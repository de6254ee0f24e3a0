"""Bridges Redis pub/sub to WebSocket clients.

Only used with the ``redis`` presence backend: notifications for a user are
published to ``ws:user:{id}`` by whichever instance created them, and every
instance forwards them to the sockets it holds for that user.
"""

import asyncio
import json

import redis.asyncio as aioredis
import structlog

from nbhd.ws.manager import ConnectionManager, manager
from nbhd.ws.presence import USER_CHANNEL_PREFIX

logger = structlog.get_logger()


class PubSubBridge:
    """Pattern-subscribes to per-user channels and pushes to local connections."""

    def __init__(self, redis_client: aioredis.Redis, connections: ConnectionManager = manager) -> None:
        self.redis = redis_client
        self.connections = connections
        self._running = False

    async def dispatch(self, message: dict) -> int:
        """Route one pub/sub message. Returns the number of sockets reached."""
        if message.get("type") != "pmessage":
            return 0

        redis_channel = message.get("channel", "")
        if isinstance(redis_channel, bytes):
            redis_channel = redis_channel.decode()
        if not redis_channel.startswith(USER_CHANNEL_PREFIX):
            return 0

        try:
            user_id = int(redis_channel[len(USER_CHANNEL_PREFIX) :])
        except ValueError:
            logger.warning("pubsub_invalid_user_id", channel=redis_channel)
            return 0

        try:
            data = message.get("data", b"")
            if isinstance(data, bytes):
                data = data.decode()
            payload = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("pubsub_invalid_message", channel=redis_channel)
            return 0

        sent = await self.connections.send_to_user(user_id, payload.get("event", "notification"), payload.get("data"))
        if sent > 0:
            logger.debug("user_event_sent", user_id=user_id, event_name=payload.get("event"), recipients=sent)
        return sent

    async def start(self) -> None:
        """Listen until stopped or cancelled."""
        self._running = True
        pubsub = self.redis.pubsub()
        await pubsub.psubscribe(f"{USER_CHANNEL_PREFIX}*")
        logger.info("pubsub_bridge_started", patterns=[f"{USER_CHANNEL_PREFIX}*"])

        try:
            while self._running:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None:
                    continue
                try:
                    await self.dispatch(message)
                except Exception:
                    logger.exception("pubsub_dispatch_failed", channel=message.get("channel"))
        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.punsubscribe()
            await pubsub.aclose()
            logger.info("pubsub_bridge_stopped")

    async def stop(self) -> None:
        """Signal the bridge to stop."""
        self._running = False
