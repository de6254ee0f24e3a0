"""Trusted-contact edge writes shared by the follow linker and the request flow.

Two producers write ``trusted_contacts``. Precedence for the follow linker:

    existing row          action
    none                  insert accepted, source=follow
    pending (request)     upgrade to accepted, source becomes follow
    accepted              untouched
    blocked               untouched, a manual block always wins
"""

from __future__ import annotations

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.db.helpers import conflict_insert, supports_row_locks, utcnow
from nbhd.db.models import TrustedContact


async def get_edge(db: AsyncSession, user_id: int, trusted_user_id: int, *, lock: bool = False) -> TrustedContact | None:
    stmt = (
        select(TrustedContact)
        .where(TrustedContact.user_id == user_id, TrustedContact.trusted_user_id == trusted_user_id)
        .execution_options(populate_existing=True)
    )
    if lock and supports_row_locks(db):
        stmt = stmt.with_for_update(of=TrustedContact)
    result = await db.execute(stmt)
    return result.unique().scalar_one_or_none()


async def insert_edge_if_absent(db: AsyncSession, user_id: int, trusted_user_id: int, status: str, source: str) -> bool:
    """Insert an edge unless one already exists. Returns True if this call created it."""
    stmt = (
        conflict_insert(db, TrustedContact)
        .values(
            user_id=user_id,
            trusted_user_id=trusted_user_id,
            status=status,
            source=source,
            created_at=utcnow(),
        )
        .on_conflict_do_nothing(index_elements=["user_id", "trusted_user_id"])
        .returning(TrustedContact.id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none() is not None


async def link_from_follow(db: AsyncSession, user_id: int, trusted_user_id: int) -> bool:
    """Apply the follow linker's precedence to one direction. Returns True if the edge is now accepted."""
    edge = await get_edge(db, user_id, trusted_user_id, lock=True)
    if edge is None:
        if await insert_edge_if_absent(db, user_id, trusted_user_id, "accepted", "follow"):
            return True
        # lost a race with another writer; re-read and apply the table to its row
        edge = await get_edge(db, user_id, trusted_user_id, lock=True)
        if edge is None:
            return False
    if edge.status == "pending":
        edge.status = "accepted"
        # accepted by the linker, so it is unlinked with the follow pair
        edge.source = "follow"
        await db.flush()
    return edge.status == "accepted"


async def unlink_follow_edges(db: AsyncSession, a: int, b: int) -> int:
    """Delete follow-sourced edges between a and b in both directions."""
    result = await db.execute(
        delete(TrustedContact)
        .where(
            or_(
                and_(TrustedContact.user_id == a, TrustedContact.trusted_user_id == b),
                and_(TrustedContact.user_id == b, TrustedContact.trusted_user_id == a),
            ),
            TrustedContact.source == "follow",
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
