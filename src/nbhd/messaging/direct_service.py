"""Direct (one-to-one) messaging."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.db.helpers import utcnow
from nbhd.db.models import DirectMessage, MessageReaction, User
from nbhd.errors import Forbidden, InvalidTarget, NotFound, ValidationFailed
from nbhd.gamification.events import MESSAGE_SENT, publish
from nbhd.messaging.rules import check_edit_window, clamp_limit, clean_content, preview
from nbhd.messaging.values import MediaAttachment, ReplySnapshot
from nbhd.notifications.service import best_effort, notify
from nbhd.ws.presence import PresenceRegistry

logger = logging.getLogger(__name__)


@dataclass
class ConversationSummary:
    peer: User
    last_message_time: datetime
    unread_count: int


def _between(a: int, b: int):  # noqa: ANN202
    return or_(
        and_(DirectMessage.sender_id == a, DirectMessage.receiver_id == b),
        and_(DirectMessage.sender_id == b, DirectMessage.receiver_id == a),
    )


async def send_direct(
    db: AsyncSession,
    sender_id: int,
    receiver_id: int,
    content: str | None,
    media: MediaAttachment | None = None,
    reply_to_id: int | None = None,
    presence: PresenceRegistry | None = None,
) -> DirectMessage:
    """Store a direct message, then notify the receiver."""
    if sender_id == receiver_id:
        raise InvalidTarget("Cannot send a message to yourself")
    text = clean_content(content)
    if await db.get(User, receiver_id) is None:
        raise NotFound("Receiver not found")

    message = DirectMessage(
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=text,
        is_read=False,
        is_edited=False,
        created_at=utcnow(),
        **(media.column_values() if media else {}),
    )
    if reply_to_id is not None:
        original = await db.get(DirectMessage, reply_to_id)
        if original is None or {original.sender_id, original.receiver_id} != {sender_id, receiver_id}:
            raise NotFound("Replied-to message not found in this conversation")
        message.attach_reply(ReplySnapshot(original.id, original.content, original.sender_id))

    db.add(message)
    await db.flush()
    await db.commit()
    logger.info("DM %s sent from %s to %s", message.id, sender_id, receiver_id)

    async with best_effort(db, "dm_notification"):
        await notify(
            db,
            receiver_id,
            "message",
            "New Message",
            preview(text),
            related_type="user",
            related_id=sender_id,
            presence=presence,
        )
    await publish(MESSAGE_SENT, sender_id, message_id=message.id, kind="dm")
    return message


async def list_direct_messages(
    db: AsyncSession,
    user_id: int,
    peer_id: int,
    before: int | None = None,
    limit: int | None = None,
) -> list[DirectMessage]:
    """A page of the conversation in chronological order.

    ``before`` is an exclusive message-id cursor. Everything the peer has sent
    to the caller is marked read.
    """
    if await db.get(User, peer_id) is None:
        raise NotFound("User not found")

    stmt = select(DirectMessage).where(_between(user_id, peer_id))
    if before is not None:
        cursor = await db.get(DirectMessage, before)
        if cursor is None:
            stmt = stmt.where(DirectMessage.id < before)
        else:
            stmt = stmt.where(
                or_(
                    DirectMessage.created_at < cursor.created_at,
                    and_(DirectMessage.created_at == cursor.created_at, DirectMessage.id < cursor.id),
                )
            )
    stmt = stmt.order_by(DirectMessage.created_at.desc(), DirectMessage.id.desc()).limit(clamp_limit(limit))
    result = await db.execute(stmt)
    messages = list(result.scalars().all())
    messages.reverse()

    await db.execute(
        update(DirectMessage)
        .where(
            DirectMessage.sender_id == peer_id,
            DirectMessage.receiver_id == user_id,
            DirectMessage.is_read.is_(False),
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return messages


async def list_conversations(db: AsyncSession, user_id: int) -> list[ConversationSummary]:
    """One row per peer, newest activity first."""
    peer = case((DirectMessage.sender_id == user_id, DirectMessage.receiver_id), else_=DirectMessage.sender_id)
    unread = func.sum(
        case(
            (and_(DirectMessage.receiver_id == user_id, DirectMessage.is_read.is_(False)), 1),
            else_=0,
        )
    )
    last_time = func.max(DirectMessage.created_at)
    result = await db.execute(
        select(peer.label("peer_id"), last_time.label("last_message_time"), unread.label("unread_count"))
        .where(or_(DirectMessage.sender_id == user_id, DirectMessage.receiver_id == user_id))
        .group_by(peer)
        .order_by(last_time.desc())
    )
    rows = result.all()
    if not rows:
        return []

    users_result = await db.execute(select(User).where(User.id.in_([r.peer_id for r in rows])))
    users = {u.id: u for u in users_result.scalars()}
    return [
        ConversationSummary(peer=users[r.peer_id], last_message_time=r.last_message_time, unread_count=int(r.unread_count or 0))
        for r in rows
        if r.peer_id in users
    ]


async def dm_unread_count(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(DirectMessage)
        .where(DirectMessage.receiver_id == user_id, DirectMessage.is_read.is_(False))
    )
    return result.scalar_one()


async def _get_own_message(db: AsyncSession, message_id: int, actor_id: int) -> DirectMessage:
    message = await db.get(DirectMessage, message_id)
    if message is None:
        raise NotFound("Message not found")
    if message.sender_id != actor_id:
        raise Forbidden("Only the sender can change this message")
    return message


async def edit_direct(db: AsyncSession, message_id: int, actor_id: int, content: str | None) -> DirectMessage:
    message = await _get_own_message(db, message_id, actor_id)
    if message.has_media:
        raise ValidationFailed("Messages with media cannot be edited")
    check_edit_window(message.created_at)
    message.content = clean_content(content)
    message.is_edited = True
    message.edited_at = utcnow()
    await db.flush()
    await db.commit()
    return message


async def delete_direct(db: AsyncSession, message_id: int, actor_id: int) -> None:
    """Delete a message and its reactions. Replies keep their snapshot."""
    message = await _get_own_message(db, message_id, actor_id)
    await db.execute(
        delete(MessageReaction).where(
            MessageReaction.message_id == message_id,
            MessageReaction.message_type == "dm",
        )
    )
    await db.delete(message)
    await db.flush()
    await db.commit()
