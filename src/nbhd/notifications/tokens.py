"""Device push-token registry.

Tokens are unique across users: registering a token that is already known
moves it to the caller and reactivates it.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.db.enums import DEVICE_PLATFORMS
from nbhd.db.helpers import conflict_insert, utcnow
from nbhd.db.models import NotificationToken
from nbhd.errors import NotFound, ValidationFailed

logger = logging.getLogger(__name__)


async def register_token(
    db: AsyncSession,
    user_id: int,
    token: str,
    platform: str,
    device_id: str | None = None,
) -> NotificationToken:
    if platform not in DEVICE_PLATFORMS:
        raise ValidationFailed("Invalid platform. Must be ios, android, or web")

    now = utcnow()
    stmt = conflict_insert(db, NotificationToken).values(
        user_id=user_id,
        token=token,
        platform=platform,
        device_id=device_id,
        is_active=True,
        created_at=now,
        last_used_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["token"],
        set_={
            "user_id": stmt.excluded.user_id,
            "platform": stmt.excluded.platform,
            "device_id": stmt.excluded.device_id,
            "is_active": True,
            "last_used_at": now,
            "updated_at": now,
        },
    )
    await db.execute(stmt)
    await db.commit()

    result = await db.execute(
        select(NotificationToken).where(NotificationToken.token == token).execution_options(populate_existing=True)
    )
    logger.info("Registered %s push token for user %s", platform, user_id)
    return result.scalar_one()


async def list_tokens(db: AsyncSession, user_id: int) -> list[NotificationToken]:
    """Active tokens, most recently used first."""
    result = await db.execute(
        select(NotificationToken)
        .where(NotificationToken.user_id == user_id, NotificationToken.is_active.is_(True))
        .order_by(NotificationToken.last_used_at.desc(), NotificationToken.id.desc())
    )
    return list(result.scalars().all())


async def unregister_token(db: AsyncSession, user_id: int, token: str) -> None:
    result = await db.execute(
        delete(NotificationToken).where(NotificationToken.token == token, NotificationToken.user_id == user_id)
    )
    if result.rowcount == 0:
        raise NotFound("Token not found or does not belong to user")
    await db.commit()


async def deactivate_token(db: AsyncSession, user_id: int, token: str) -> None:
    """Soft delete: the token stays registered but is no longer listed."""
    result = await db.execute(
        update(NotificationToken)
        .where(NotificationToken.token == token, NotificationToken.user_id == user_id)
        .values(is_active=False, updated_at=utcnow())
    )
    if result.rowcount == 0:
        raise NotFound("Token not found or does not belong to user")
    await db.commit()
