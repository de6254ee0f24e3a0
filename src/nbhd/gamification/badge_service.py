"""Badge rule engine.

Every badge with a ``criteria_type`` is a threshold on one per-user counter.
Evaluation reads all counters in one statement, skips badges already earned
and awards the rest. The award insert is ``ON CONFLICT DO NOTHING``, so a
concurrent evaluation that already awarded the badge turns into a silent
no-op; only a real insert produces a notification.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select, union_all
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.database import get_session_factory
from nbhd.db.helpers import conflict_insert, utcnow
from nbhd.db.models import (
    Badge,
    ChatMessage,
    Comment,
    DirectMessage,
    Event,
    EventSignup,
    IncidentReport,
    Like,
    Post,
    TrustedContact,
    UserBadge,
)
from nbhd.errors import NotFound
from nbhd.gamification.events import (
    CONTACT_ACCEPTED,
    EVENT_SIGNUP,
    MESSAGE_SENT,
    POST_CREATED,
    DomainEvent,
    EventBus,
)
from nbhd.notifications.service import notify, send_pending_pushes
from nbhd.ws.presence import PresenceRegistry

logger = logging.getLogger(__name__)

COUNTERS = (
    "post_count",
    "comment_count",
    "likes_received",
    "events_attended",
    "events_created",
    "incidents_reported",
    "trusted_contacts",
    "messages_sent",
)

TRIGGER_EVENTS = (POST_CREATED, EVENT_SIGNUP, CONTACT_ACCEPTED, MESSAGE_SENT)


@dataclass
class BadgeProgress:
    badge: Badge
    earned: bool
    current: int
    target: int

    @property
    def percent(self) -> int:
        if not self.target:
            return 100 if self.earned else 0
        return min(100, self.current * 100 // self.target)


def _count(entity, *criteria):  # noqa: ANN001, ANN202
    return select(func.count()).select_from(entity).where(*criteria).scalar_subquery()


async def get_user_stats(db: AsyncSession, user_id: int) -> dict[str, int]:
    """All badge counters for a user, read in a single statement."""
    user_posts = select(Post.id).where(Post.user_id == user_id)
    messages = union_all(
        select(DirectMessage.id).where(DirectMessage.sender_id == user_id),
        select(ChatMessage.id).where(ChatMessage.user_id == user_id),
    ).subquery()

    stmt = select(
        _count(Post, Post.user_id == user_id, Post.status == "active").label("post_count"),
        _count(Comment, Comment.user_id == user_id).label("comment_count"),
        _count(Like, Like.post_id.in_(user_posts)).label("likes_received"),
        _count(EventSignup, EventSignup.user_id == user_id).label("events_attended"),
        _count(Event, Event.organizer_id == user_id).label("events_created"),
        _count(IncidentReport, IncidentReport.post_id.in_(user_posts)).label("incidents_reported"),
        _count(TrustedContact, TrustedContact.user_id == user_id, TrustedContact.status == "accepted").label(
            "trusted_contacts"
        ),
        select(func.count()).select_from(messages).scalar_subquery().label("messages_sent"),
    )
    row = (await db.execute(stmt)).one()
    return {name: int(getattr(row, name) or 0) for name in COUNTERS}


async def _earned_badge_ids(db: AsyncSession, user_id: int) -> set[int]:
    result = await db.execute(select(UserBadge.badge_id).where(UserBadge.user_id == user_id))
    return set(result.scalars().all())


async def _rule_badges(db: AsyncSession) -> list[Badge]:
    result = await db.execute(
        select(Badge).where(Badge.criteria_type.is_not(None), Badge.criteria_value.is_not(None)).order_by(Badge.id)
    )
    return list(result.scalars().all())


async def award_badge(
    db: AsyncSession,
    user_id: int,
    badge: Badge,
    presence: PresenceRegistry | None = None,
) -> bool:
    """Award a badge. Returns False if the user already had it."""
    stmt = (
        conflict_insert(db, UserBadge)
        .values(user_id=user_id, badge_id=badge.id, earned_at=utcnow(), is_displayed=True)
        .on_conflict_do_nothing(index_elements=["user_id", "badge_id"])
        .returning(UserBadge.id)
    )
    inserted = (await db.execute(stmt)).scalar_one_or_none()
    if inserted is None:
        logger.debug("Badge %s already awarded to user %s", badge.id, user_id)
        return False

    await notify(
        db,
        user_id,
        "badge",
        "New Badge Earned!",
        f'You\'ve earned the "{badge.name}" badge!',
        presence=presence,
    )
    logger.info("Awarded badge %s to user %s", badge.name, user_id)
    return True


async def evaluate(db: AsyncSession, user_id: int, presence: PresenceRegistry | None = None) -> list[Badge]:
    """Award every badge whose threshold the user now meets. Returns the newly awarded badges."""
    stats = await get_user_stats(db, user_id)
    earned = await _earned_badge_ids(db, user_id)

    awarded: list[Badge] = []
    for badge in await _rule_badges(db):
        if badge.id in earned:
            continue
        if badge.criteria_type not in stats:
            logger.warning("Badge %s has unknown criteria %r", badge.id, badge.criteria_type)
            continue
        if stats[badge.criteria_type] >= badge.criteria_value and await award_badge(db, user_id, badge, presence):
            awarded.append(badge)
    await db.flush()
    return awarded


async def get_badge_progress(db: AsyncSession, user_id: int) -> list[BadgeProgress]:
    stats = await get_user_stats(db, user_id)
    earned = await _earned_badge_ids(db, user_id)
    result = await db.execute(select(Badge).order_by(Badge.id))
    progress = []
    for badge in result.scalars():
        target = badge.criteria_value or 0
        current = stats.get(badge.criteria_type or "", 0)
        progress.append(
            BadgeProgress(
                badge=badge,
                earned=badge.id in earned,
                current=min(current, target) if target else current,
                target=target,
            )
        )
    return progress


async def list_badges(db: AsyncSession) -> list[Badge]:
    result = await db.execute(select(Badge).order_by(Badge.category, Badge.points_value, Badge.id))
    return list(result.scalars().all())


async def list_user_badges(db: AsyncSession, user_id: int, displayed_only: bool = False) -> list[UserBadge]:
    stmt = select(UserBadge).where(UserBadge.user_id == user_id)
    if displayed_only:
        stmt = stmt.where(UserBadge.is_displayed.is_(True))
    result = await db.execute(stmt.order_by(UserBadge.earned_at.desc(), UserBadge.id.desc()))
    return list(result.unique().scalars().all())


async def set_badge_display(db: AsyncSession, user_id: int, badge_id: int, is_displayed: bool) -> UserBadge:
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id, UserBadge.badge_id == badge_id)
        .execution_options(populate_existing=True)
    )
    user_badge = result.unique().scalar_one_or_none()
    if user_badge is None:
        raise NotFound("Badge not earned")
    user_badge.is_displayed = is_displayed
    await db.flush()
    await db.commit()
    return user_badge


async def on_domain_event(event: DomainEvent) -> None:
    """Re-evaluate the user's badges in a fresh unit of work."""
    async with get_session_factory()() as db:
        awarded = await evaluate(db, event.user_id)
        await db.commit()
        await send_pending_pushes(db)
    if awarded:
        logger.info("Event %s awarded %d badge(s) to user %s", event.type, len(awarded), event.user_id)


def register_badge_handlers(bus: EventBus) -> None:
    for event_type in TRIGGER_EVENTS:
        bus.subscribe(event_type, on_domain_event)
