"""Notification creation and fanout.

A notification is always persisted first. Delivery then depends on presence:
if the recipient is reachable right now the full notification is pushed as a
``new_notification`` event, otherwise nothing more happens and the client
picks it up on its next fetch. Pushes are queued on the session and sent only
once the row is committed. Push failures are logged and never undo the
stored row.

Types: alert, message, event, badge, verification, system, group_invite, group
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.db.enums import NOTIFICATION_TYPES, PRIORITIES, RELATED_TYPES
from nbhd.db.helpers import utcnow
from nbhd.db.models import Event, Notification, Post, User, UserGroup
from nbhd.errors import Forbidden, NotFound
from nbhd.ws.presence import PresenceRegistry, get_presence

logger = logging.getLogger(__name__)

NEW_NOTIFICATION = "new_notification"
UNREAD_COUNT = "unread_count"

PENDING_PUSHES = "nbhd.pending_pushes"

# related_type -> (key column, column shown as related_name)
_RELATED_NAME_COLUMNS = {
    "user": (User.id, User.display_name),
    "post": (Post.id, Post.content),
    "event": (Event.id, Event.title),
    "group": (UserGroup.id, UserGroup.name),
}


def serialize_notification(notification: Notification, related_name: str | None = None) -> dict[str, Any]:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "type": notification.type,
        "title": notification.title,
        "content": notification.content,
        "related_id": notification.related_id,
        "related_type": notification.related_type,
        "related_name": related_name,
        "is_read": notification.is_read,
        "priority": notification.priority,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


async def resolve_related_names(db: AsyncSession, notifications: list[Notification]) -> dict[int, str | None]:
    """Map notification id to the name of the user, post, event or group it points at."""
    wanted: dict[str, set[int]] = defaultdict(set)
    for notification in notifications:
        if notification.related_type in _RELATED_NAME_COLUMNS and notification.related_id is not None:
            wanted[notification.related_type].add(notification.related_id)

    names: dict[str, dict[int, str]] = {}
    for related_type, ids in wanted.items():
        key_column, name_column = _RELATED_NAME_COLUMNS[related_type]
        result = await db.execute(select(key_column, name_column).where(key_column.in_(ids)))
        names[related_type] = {key: name for key, name in result.all()}

    return {
        n.id: names.get(n.related_type or "", {}).get(n.related_id) if n.related_id is not None else None
        for n in notifications
    }


async def serialize_notifications(db: AsyncSession, notifications: Iterable[Notification]) -> list[dict[str, Any]]:
    """Serialize with ``related_name`` filled in."""
    notifications = list(notifications)
    names = await resolve_related_names(db, notifications)
    return [serialize_notification(n, names[n.id]) for n in notifications]


async def push_to_user(
    user_id: int,
    event: str,
    data: Any,  # noqa: ANN401
    presence: PresenceRegistry | None = None,
) -> bool:
    """Push an event if the user is present. Returns True when a push was attempted and succeeded."""
    registry = presence or get_presence()
    try:
        channel = await registry.lookup(user_id)
        if channel is None:
            return False
        await channel.send(event, data)
    except Exception:  # noqa: BLE001
        logger.warning("Failed to push %s to user %s", event, user_id, exc_info=True)
        return False
    return True


def _queue_push(db: AsyncSession, user_id: int, payload: dict[str, Any], presence: PresenceRegistry | None) -> None:
    db.info.setdefault(PENDING_PUSHES, []).append((user_id, payload, presence))


def discard_pending_pushes(db: AsyncSession) -> None:
    db.info.pop(PENDING_PUSHES, None)


async def send_pending_pushes(db: AsyncSession) -> int:
    """Deliver the ``new_notification`` pushes queued on the session.

    Call after the notifications have been committed. Returns how many
    recipients were reached.
    """
    pending = db.info.pop(PENDING_PUSHES, [])
    sent = 0
    for user_id, payload, presence in pending:
        if await push_to_user(user_id, NEW_NOTIFICATION, payload, presence):
            sent += 1
    return sent


async def notify(
    db: AsyncSession,
    user_id: int,
    type_: str,
    title: str,
    content: str | None = None,
    *,
    related_type: str | None = None,
    related_id: int | None = None,
    priority: str = "normal",
    presence: PresenceRegistry | None = None,
) -> Notification | None:
    """Store a notification for ``user_id`` and queue a push for after the commit.

    Unknown type, related type or priority is logged and ignored: nothing is
    stored and ``None`` is returned. Run inside ``best_effort`` (or call
    ``send_pending_pushes`` after committing) so the push goes out.
    """
    if type_ not in NOTIFICATION_TYPES:
        logger.warning("Invalid notification type %r for user %s", type_, user_id)
        return None
    if related_type is not None and related_type not in RELATED_TYPES:
        logger.warning("Invalid related type %r for user %s", related_type, user_id)
        return None
    if priority not in PRIORITIES:
        logger.warning("Invalid notification priority %r for user %s", priority, user_id)
        return None

    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title,
        content=content,
        related_type=related_type,
        related_id=related_id,
        priority=priority,
        is_read=False,
        created_at=utcnow(),
    )
    db.add(notification)
    await db.flush()

    payload = (await serialize_notifications(db, [notification]))[0]
    _queue_push(db, user_id, payload, presence)
    return notification


async def notify_many(
    db: AsyncSession,
    user_ids: Iterable[int],
    type_: str,
    title: str,
    content: str | None = None,
    **kwargs: Any,  # noqa: ANN401
) -> list[Notification]:
    """Send the same notification to several users."""
    created: list[Notification] = []
    for uid in dict.fromkeys(user_ids):
        notification = await notify(db, uid, type_, title, content, **kwargs)
        if notification is not None:
            created.append(notification)
    return created


@asynccontextmanager
async def best_effort(db: AsyncSession, action: str) -> AsyncIterator[None]:
    """Run follow-up writes after the primary write has been committed.

    The block's writes are committed together and their pushes sent after
    that commit; a database failure inside it is logged and rolled back
    without reaching the caller, and its pushes are dropped.
    """
    try:
        yield
        await db.commit()
    except SQLAlchemyError:
        discard_pending_pushes(db)
        await db.rollback()
        logger.warning("Side effect %r failed", action, exc_info=True)
        return
    except Exception:
        discard_pending_pushes(db)
        raise
    await send_pending_pushes(db)


async def get_unread_count(db: AsyncSession, user_id: int) -> int:
    """Get count of unread notifications."""
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
    )
    return result.scalar_one()


async def emit_unread_count(db: AsyncSession, user_id: int, presence: PresenceRegistry | None = None) -> int:
    """Recompute the unread tally and push it if the user is online."""
    count = await get_unread_count(db, user_id)
    await push_to_user(user_id, UNREAD_COUNT, {"count": count}, presence)
    return count


async def get_notifications(
    db: AsyncSession,
    user_id: int,
    limit: int = 50,
    unread_only: bool = False,
) -> list[Notification]:
    """Most recent notifications first."""
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def _get_owned(db: AsyncSession, user_id: int, notification_id: int) -> Notification:
    notification = await db.get(Notification, notification_id)
    if notification is None:
        raise NotFound("Notification not found")
    if notification.user_id != user_id:
        raise Forbidden("Not your notification")
    return notification


async def mark_as_read(db: AsyncSession, user_id: int, notification_id: int) -> Notification:
    notification = await _get_owned(db, user_id, notification_id)
    notification.is_read = True
    await db.flush()
    return notification


async def mark_all_as_read(db: AsyncSession, user_id: int) -> int:
    """Mark all unread notifications as read. Returns count updated."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    await db.flush()
    return result.rowcount


async def delete_notification(db: AsyncSession, user_id: int, notification_id: int) -> None:
    notification = await _get_owned(db, user_id, notification_id)
    await db.delete(notification)
    await db.flush()


async def clear_read(db: AsyncSession, user_id: int) -> int:
    """Delete every read notification of the user. Returns count deleted."""
    result = await db.execute(
        delete(Notification).where(Notification.user_id == user_id, Notification.is_read.is_(True))
    )
    await db.flush()
    return result.rowcount
