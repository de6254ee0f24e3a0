"""Group chat messages."""

from __future__ import annotations

import logging

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.db.enums import CHAT_MESSAGE_TYPES, MANAGER_ROLES
from nbhd.db.helpers import utcnow
from nbhd.db.models import ChatMessage, MessageReaction
from nbhd.errors import Forbidden, NotFound, ValidationFailed
from nbhd.gamification.events import MESSAGE_SENT, publish
from nbhd.groups.membership_service import (
    active_member_ids,
    get_active_membership,
    get_group,
    require_active_member,
)
from nbhd.messaging.rules import check_edit_window, clamp_limit, clean_content, preview
from nbhd.messaging.values import MediaAttachment, ReplySnapshot
from nbhd.notifications.service import best_effort, notify_many
from nbhd.ws.presence import PresenceRegistry

logger = logging.getLogger(__name__)


async def send_group(
    db: AsyncSession,
    group_id: int,
    user_id: int,
    content: str | None,
    message_type: str = "text",
    media: MediaAttachment | None = None,
    reply_to_id: int | None = None,
    presence: PresenceRegistry | None = None,
) -> ChatMessage:
    """Post to a group and notify every other active member."""
    group = await get_group(db, group_id)
    await require_active_member(db, group_id, user_id)
    if message_type not in CHAT_MESSAGE_TYPES:
        raise ValidationFailed(f"Invalid message type: {message_type}")
    text = clean_content(content)

    message = ChatMessage(
        group_id=group_id,
        user_id=user_id,
        message_type=message_type,
        content=text,
        is_read=False,
        is_edited=False,
        created_at=utcnow(),
        **(media.column_values() if media else {}),
    )
    if reply_to_id is not None:
        original = await db.get(ChatMessage, reply_to_id)
        if original is None or original.group_id != group_id:
            raise NotFound("Replied-to message not found in this group")
        message.attach_reply(ReplySnapshot(original.id, original.content, original.user_id))

    db.add(message)
    await db.flush()
    await db.commit()

    recipients = [uid for uid in await active_member_ids(db, group_id) if uid != user_id]
    async with best_effort(db, "group_message_notifications"):
        await notify_many(
            db,
            recipients,
            "message",
            f"New message in {group.name}",
            preview(text),
            related_type="group",
            related_id=group_id,
            presence=presence,
        )
    await publish(MESSAGE_SENT, user_id, message_id=message.id, kind="group")
    return message


async def list_group_messages(
    db: AsyncSession,
    group_id: int,
    user_id: int,
    before: int | None = None,
    limit: int | None = None,
) -> list[ChatMessage]:
    """A page of the group's history in chronological order (active members only).

    Messages written by others are marked read.
    """
    await get_group(db, group_id)
    await require_active_member(db, group_id, user_id)

    stmt = select(ChatMessage).where(ChatMessage.group_id == group_id)
    if before is not None:
        cursor = await db.get(ChatMessage, before)
        if cursor is None or cursor.group_id != group_id:
            stmt = stmt.where(ChatMessage.id < before)
        else:
            stmt = stmt.where(
                or_(
                    ChatMessage.created_at < cursor.created_at,
                    and_(ChatMessage.created_at == cursor.created_at, ChatMessage.id < cursor.id),
                )
            )
    stmt = stmt.order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).limit(clamp_limit(limit))
    result = await db.execute(stmt)
    messages = list(result.scalars().all())
    messages.reverse()

    await db.execute(
        update(ChatMessage)
        .where(
            ChatMessage.group_id == group_id,
            ChatMessage.user_id != user_id,
            ChatMessage.is_read.is_(False),
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return messages


async def _get_group_message(db: AsyncSession, group_id: int, message_id: int) -> ChatMessage:
    message = await db.get(ChatMessage, message_id)
    if message is None or message.group_id != group_id:
        raise NotFound("Message not found")
    return message


async def edit_group_message(
    db: AsyncSession, group_id: int, message_id: int, actor_id: int, content: str | None
) -> ChatMessage:
    message = await _get_group_message(db, group_id, message_id)
    if message.user_id != actor_id:
        raise Forbidden("Only the author can edit this message")
    if message.has_media:
        raise ValidationFailed("Messages with media cannot be edited")
    check_edit_window(message.created_at)
    message.content = clean_content(content)
    message.is_edited = True
    message.edited_at = utcnow()
    await db.flush()
    await db.commit()
    return message


async def delete_group_message(db: AsyncSession, group_id: int, message_id: int, actor_id: int) -> None:
    """Author or an active admin/moderator may delete."""
    message = await _get_group_message(db, group_id, message_id)
    if message.user_id != actor_id:
        membership = await get_active_membership(db, group_id, actor_id)
        if membership is None or membership.role not in MANAGER_ROLES:
            raise Forbidden("Only the author or a group moderator can delete this message")

    await db.execute(
        delete(MessageReaction).where(
            MessageReaction.message_id == message_id,
            MessageReaction.message_type == "group",
        )
    )
    await db.delete(message)
    await db.flush()
    await db.commit()
    logger.info("Group message %s deleted by %s", message_id, actor_id)
