"""In-process domain event bus.

Producers publish after their unit of work has committed. Subscribers run in
registration order; a failing subscriber is logged and does not affect the
producer or the other subscribers.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

POST_CREATED = "post_created"
EVENT_SIGNUP = "event_signup"
CONTACT_ACCEPTED = "contact_accepted"
MESSAGE_SENT = "message_sent"


@dataclass(frozen=True)
class DomainEvent:
    type: str
    user_id: int
    payload: dict[str, Any] = field(default_factory=dict)


Handler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: Handler) -> None:
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        if handler in self._handlers.get(event_type, []):
            self._handlers[event_type].remove(handler)

    def clear(self) -> None:
        self._handlers.clear()

    async def publish(self, event: DomainEvent) -> None:
        for handler in list(self._handlers.get(event.type, [])):
            try:
                await handler(event)
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Handler %s failed for %s (user %s)",
                    getattr(handler, "__name__", handler),
                    event.type,
                    event.user_id,
                    exc_info=True,
                )


bus = EventBus()


async def publish(event_type: str, *user_ids: int, **payload: Any) -> None:  # noqa: ANN401
    """Publish one event per user id."""
    for user_id in user_ids:
        await bus.publish(DomainEvent(event_type, user_id, payload))
