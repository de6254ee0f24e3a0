"""Follows and the mutual-follow trust linker.

A mutual follow (a follows b and b follows a) is projected into accepted
``TrustedContact`` rows in both directions. Breaking mutuality removes the
follow-sourced rows again; rows created through the request flow survive.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.db.helpers import utcnow
from nbhd.db.models import Follow, User
from nbhd.errors import Conflict, InvalidTarget, NotFound
from nbhd.gamification.events import CONTACT_ACCEPTED, publish
from nbhd.notifications.service import best_effort, notify
from nbhd.social.trust import link_from_follow, unlink_follow_edges
from nbhd.ws.presence import PresenceRegistry

logger = logging.getLogger(__name__)


async def is_following(db: AsyncSession, follower_id: int, followed_id: int) -> bool:
    result = await db.execute(
        select(Follow.id).where(Follow.follower_id == follower_id, Follow.followed_id == followed_id)
    )
    return result.scalar_one_or_none() is not None


async def follow(
    db: AsyncSession,
    follower_id: int,
    followed_id: int,
    presence: PresenceRegistry | None = None,
) -> bool:
    """Follow a user. Returns True when the follow made the pair mutual."""
    if follower_id == followed_id:
        raise InvalidTarget("Cannot follow yourself")
    follower = await db.get(User, follower_id)
    followed = await db.get(User, followed_id)
    if followed is None or follower is None:
        raise NotFound("User not found")
    if await is_following(db, follower_id, followed_id):
        raise Conflict("Already following this user")

    db.add(Follow(follower_id=follower_id, followed_id=followed_id, created_at=utcnow()))
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise Conflict("Already following this user") from e

    mutual = await is_following(db, followed_id, follower_id)
    linked = False
    if mutual:
        forward = await link_from_follow(db, follower_id, followed_id)
        backward = await link_from_follow(db, followed_id, follower_id)
        # a blocked edge keeps the pair apart even when they follow each other
        linked = forward and backward
    await db.commit()
    logger.info("User %s followed %s (mutual=%s, linked=%s)", follower_id, followed_id, mutual, linked)

    async with best_effort(db, "follow_notification"):
        if linked:
            await notify(
                db,
                followed_id,
                "system",
                "New Trusted Contact",
                f"You and {follower.display_name} now follow each other and are trusted contacts",
                related_type="user",
                related_id=follower_id,
                presence=presence,
            )
            await notify(
                db,
                follower_id,
                "system",
                "New Trusted Contact",
                f"You and {followed.display_name} now follow each other and are trusted contacts",
                related_type="user",
                related_id=followed_id,
                presence=presence,
            )
        else:
            await notify(
                db,
                followed_id,
                "system",
                "New Follower",
                f"{follower.display_name} started following you",
                related_type="user",
                related_id=follower_id,
                presence=presence,
            )
    if linked:
        await publish(CONTACT_ACCEPTED, follower_id, followed_id)
    return mutual


async def unfollow(db: AsyncSession, follower_id: int, followed_id: int) -> None:
    """Remove a follow. Mutuality is gone, so follow-sourced trust edges go too."""
    result = await db.execute(
        delete(Follow).where(Follow.follower_id == follower_id, Follow.followed_id == followed_id)
    )
    if result.rowcount == 0:
        raise NotFound("Not following this user")
    removed = await unlink_follow_edges(db, follower_id, followed_id)
    await db.commit()
    logger.info("User %s unfollowed %s (trust edges removed=%s)", follower_id, followed_id, removed)


async def follow_counts(db: AsyncSession, user_id: int) -> tuple[int, int]:
    """(followers, following)"""
    followers = await db.execute(select(func.count()).select_from(Follow).where(Follow.followed_id == user_id))
    following = await db.execute(select(func.count()).select_from(Follow).where(Follow.follower_id == user_id))
    return followers.scalar_one(), following.scalar_one()


async def list_followers(
    db: AsyncSession, user_id: int, page: int = 1, per_page: int = 20
) -> tuple[list[tuple[User, datetime | None]], int]:
    total = (await follow_counts(db, user_id))[0]
    result = await db.execute(
        select(User, Follow.created_at)
        .join(Follow, Follow.follower_id == User.id)
        .where(Follow.followed_id == user_id)
        .order_by(Follow.created_at.desc(), Follow.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return [(u, at) for u, at in result.all()], total


async def list_following(
    db: AsyncSession, user_id: int, page: int = 1, per_page: int = 20
) -> tuple[list[tuple[User, datetime | None]], int]:
    total = (await follow_counts(db, user_id))[1]
    result = await db.execute(
        select(User, Follow.created_at)
        .join(Follow, Follow.followed_id == User.id)
        .where(Follow.follower_id == user_id)
        .order_by(Follow.created_at.desc(), Follow.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return [(u, at) for u, at in result.all()], total
