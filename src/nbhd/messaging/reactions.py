"""Emoji reactions on direct and group messages.

Uniqueness is (message, kind, user, emoji). Reacting again with the same
emoji only refreshes ``created_at``; concurrent duplicates collapse in the
database through ``ON CONFLICT``.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.db.enums import MESSAGE_KINDS
from nbhd.db.helpers import conflict_insert, utcnow
from nbhd.db.models import ChatMessage, DirectMessage, GroupMembership, MessageReaction
from nbhd.errors import Forbidden, NotFound, ValidationFailed
from nbhd.messaging.rules import clean_emoji


async def get_accessible_message(
    db: AsyncSession,
    kind: str,
    message_id: int,
    user_id: int,
    group_id: int | None = None,
) -> DirectMessage | ChatMessage:
    """Load a message the user may see: a DM they take part in, or a group message of a group they are active in."""
    if kind not in MESSAGE_KINDS:
        raise ValidationFailed(f"Unknown message kind: {kind}")

    if kind == "dm":
        dm = await db.get(DirectMessage, message_id)
        if dm is None:
            raise NotFound("Message not found")
        if user_id not in (dm.sender_id, dm.receiver_id):
            raise Forbidden("Not a participant in this conversation")
        return dm

    chat = await db.get(ChatMessage, message_id)
    if chat is None or (group_id is not None and chat.group_id != group_id):
        raise NotFound("Message not found")
    result = await db.execute(
        select(GroupMembership.id).where(
            GroupMembership.group_id == chat.group_id,
            GroupMembership.user_id == user_id,
            GroupMembership.status == "active",
        )
    )
    if result.scalar_one_or_none() is None:
        raise Forbidden("Not a member of this group")
    return chat


async def react(
    db: AsyncSession,
    kind: str,
    message_id: int,
    user_id: int,
    emoji: str | None,
    group_id: int | None = None,
) -> MessageReaction:
    value = clean_emoji(emoji)
    await get_accessible_message(db, kind, message_id, user_id, group_id)

    now = utcnow()
    stmt = conflict_insert(db, MessageReaction).values(
        message_id=message_id,
        message_type=kind,
        user_id=user_id,
        emoji=value,
        created_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["message_id", "message_type", "user_id", "emoji"],
        set_={"created_at": now},
    ).returning(MessageReaction.id)
    reaction_id = (await db.execute(stmt)).scalar_one()
    await db.commit()

    result = await db.execute(
        select(MessageReaction)
        .where(MessageReaction.id == reaction_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def remove_reaction(
    db: AsyncSession,
    kind: str,
    message_id: int,
    user_id: int,
    emoji: str | None,
    group_id: int | None = None,
) -> None:
    value = clean_emoji(emoji)
    await get_accessible_message(db, kind, message_id, user_id, group_id)
    result = await db.execute(
        delete(MessageReaction).where(
            MessageReaction.message_id == message_id,
            MessageReaction.message_type == kind,
            MessageReaction.user_id == user_id,
            MessageReaction.emoji == value,
        )
    )
    if result.rowcount == 0:
        raise NotFound("Reaction not found")
    await db.commit()


async def list_reactions(
    db: AsyncSession,
    kind: str,
    message_id: int,
    user_id: int,
    group_id: int | None = None,
) -> tuple[list[MessageReaction], dict[str, dict[str, Any]]]:
    """All reactions on a message, plus a per-emoji summary (count and reacting users)."""
    await get_accessible_message(db, kind, message_id, user_id, group_id)
    result = await db.execute(
        select(MessageReaction)
        .where(MessageReaction.message_id == message_id, MessageReaction.message_type == kind)
        .order_by(MessageReaction.created_at, MessageReaction.id)
    )
    reactions = list(result.unique().scalars().all())

    grouped: dict[str, dict[str, Any]] = OrderedDict()
    for r in reactions:
        entry = grouped.setdefault(r.emoji, {"count": 0, "users": []})
        entry["count"] += 1
        entry["users"].append({"user_id": r.user_id, "username": r.user.username, "display_name": r.user.display_name})
    return reactions, grouped
