"""Manual trusted-contact requests: request, accept, reject, block, remove.

This flow coexists with the follow linker (see ``nbhd.social.trust``). Rows it
accepts or blocks carry ``source='request'`` and are never removed by an unfollow.
"""

from __future__ import annotations

import logging

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.db.helpers import utcnow
from nbhd.db.models import TrustedContact, User
from nbhd.errors import Conflict, Forbidden, InvalidTarget, NotFound
from nbhd.gamification.events import CONTACT_ACCEPTED, publish
from nbhd.notifications.service import best_effort, notify
from nbhd.social.trust import get_edge, insert_edge_if_absent
from nbhd.ws.presence import PresenceRegistry

logger = logging.getLogger(__name__)


async def request_contact(
    db: AsyncSession,
    user_id: int,
    trusted_user_id: int,
    presence: PresenceRegistry | None = None,
) -> TrustedContact:
    if user_id == trusted_user_id:
        raise InvalidTarget("Cannot add yourself as a trusted contact")
    if await db.get(User, trusted_user_id) is None:
        raise NotFound("User not found")
    existing = await get_edge(db, user_id, trusted_user_id)
    if existing is not None:
        raise Conflict(f"Contact request already exists ({existing.status})")

    if not await insert_edge_if_absent(db, user_id, trusted_user_id, "pending", "request"):
        raise Conflict("Contact request already exists")
    edge = await get_edge(db, user_id, trusted_user_id)
    await db.commit()

    async with best_effort(db, "contact_request_notification"):
        await notify(
            db,
            trusted_user_id,
            "system",
            "Trusted Contact Request",
            "Someone wants to add you as a trusted contact",
            related_type="user",
            related_id=user_id,
            presence=presence,
        )
    return edge


async def list_contacts(db: AsyncSession, user_id: int) -> list[TrustedContact]:
    """Accepted contacts of the user."""
    result = await db.execute(
        select(TrustedContact)
        .where(TrustedContact.user_id == user_id, TrustedContact.status == "accepted")
        .order_by(TrustedContact.created_at.desc(), TrustedContact.id.desc())
    )
    return list(result.unique().scalars().all())


async def list_contact_requests(db: AsyncSession, user_id: int) -> list[TrustedContact]:
    """Pending requests addressed to the user."""
    result = await db.execute(
        select(TrustedContact)
        .where(TrustedContact.trusted_user_id == user_id, TrustedContact.status == "pending")
        .order_by(TrustedContact.created_at.desc(), TrustedContact.id.desc())
    )
    return list(result.unique().scalars().all())


async def _get_contact(db: AsyncSession, contact_id: int) -> TrustedContact:
    contact = await db.get(TrustedContact, contact_id, populate_existing=True)
    if contact is None:
        raise NotFound("Contact not found")
    return contact


async def accept_contact(
    db: AsyncSession,
    contact_id: int,
    user_id: int,
    presence: PresenceRegistry | None = None,
) -> TrustedContact:
    """Accept a pending request addressed to ``user_id`` and create the reciprocal edge."""
    contact = await _get_contact(db, contact_id)
    if contact.trusted_user_id != user_id:
        raise Forbidden("Not your contact request")
    if contact.status != "pending":
        raise Conflict("Request already processed")

    requester_id = contact.user_id
    contact.status = "accepted"
    await db.flush()

    reverse = await get_edge(db, user_id, requester_id, lock=True)
    if reverse is None:
        await insert_edge_if_absent(db, user_id, requester_id, "accepted", "request")
    elif reverse.status != "blocked":
        reverse.status = "accepted"
        reverse.source = "request"
        await db.flush()
    await db.commit()

    async with best_effort(db, "contact_accepted_notification"):
        await notify(
            db,
            requester_id,
            "system",
            "Contact Request Accepted",
            "Your trusted contact request was accepted",
            related_type="user",
            related_id=user_id,
            presence=presence,
        )
    await publish(CONTACT_ACCEPTED, user_id, requester_id)
    return contact


async def reject_contact(db: AsyncSession, contact_id: int, user_id: int) -> None:
    contact = await _get_contact(db, contact_id)
    if contact.trusted_user_id != user_id:
        raise Forbidden("Not your contact request")
    if contact.status != "pending":
        raise Conflict("Request already processed")
    await db.delete(contact)
    await db.flush()
    await db.commit()


async def block_contact(db: AsyncSession, contact_id: int, user_id: int) -> TrustedContact:
    """Block in both directions. Either side of the edge may block."""
    contact = await _get_contact(db, contact_id)
    if user_id not in (contact.user_id, contact.trusted_user_id):
        raise Forbidden("Not your contact")

    # blocked edges belong to the request flow; unfollow must not clear them
    contact.status = "blocked"
    contact.source = "request"
    await db.flush()
    reverse = await get_edge(db, contact.trusted_user_id, contact.user_id, lock=True)
    if reverse is None:
        await insert_edge_if_absent(db, contact.trusted_user_id, contact.user_id, "blocked", "request")
    else:
        reverse.status = "blocked"
        reverse.source = "request"
        await db.flush()
    await db.commit()
    logger.info("Trusted contact %s blocked by user %s", contact_id, user_id)
    return contact


async def remove_contact(db: AsyncSession, contact_id: int, user_id: int) -> None:
    """Remove an edge owned by the user and its reverse."""
    contact = await _get_contact(db, contact_id)
    if contact.user_id != user_id:
        raise Forbidden("Not your contact")
    a, b = contact.user_id, contact.trusted_user_id
    await db.execute(
        delete(TrustedContact)
        .where(
            or_(
                and_(TrustedContact.user_id == a, TrustedContact.trusted_user_id == b),
                and_(TrustedContact.user_id == b, TrustedContact.trusted_user_id == a),
            )
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
