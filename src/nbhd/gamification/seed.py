"""Default badge definitions."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.db.helpers import conflict_insert, utcnow
from nbhd.db.models import Badge

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict] = [
    # Participation
    {
        "name": "First Post",
        "description": "Created your first post",
        "icon": "\U0001f389",
        "category": "participation",
        "points_value": 10,
        "criteria_type": "post_count",
        "criteria_value": 1,
        "tier": "bronze",
    },
    {
        "name": "Chatty",
        "description": "Made 10 posts",
        "icon": "\U0001f4ac",
        "category": "participation",
        "points_value": 25,
        "criteria_type": "post_count",
        "criteria_value": 10,
        "tier": "bronze",
    },
    {
        "name": "First Comment",
        "description": "Left your first comment",
        "icon": "\U0001f4ad",
        "category": "participation",
        "points_value": 5,
        "criteria_type": "comment_count",
        "criteria_value": 1,
        "tier": "bronze",
    },
    {
        "name": "Trusted Neighbor",
        "description": "Added 10 trusted contacts",
        "icon": "\U0001f91d",
        "category": "participation",
        "points_value": 30,
        "criteria_type": "trusted_contacts",
        "criteria_value": 10,
        "tier": "bronze",
    },
    # Contribution
    {
        "name": "Prolific",
        "description": "Made 50 posts",
        "icon": "\U0001f4dd",
        "category": "contribution",
        "points_value": 100,
        "criteria_type": "post_count",
        "criteria_value": 50,
        "tier": "gold",
    },
    {
        "name": "Conversationalist",
        "description": "Made 25 comments",
        "icon": "\U0001f5e8",
        "category": "contribution",
        "points_value": 50,
        "criteria_type": "comment_count",
        "criteria_value": 25,
        "tier": "silver",
    },
    {
        "name": "Community Builder",
        "description": "Attended 5 events",
        "icon": "\U0001f3d8",
        "category": "contribution",
        "points_value": 100,
        "criteria_type": "events_attended",
        "criteria_value": 5,
        "tier": "silver",
    },
    {
        "name": "Chat Leader",
        "description": "Sent 100 messages",
        "icon": "\U0001f5e3",
        "category": "contribution",
        "points_value": 40,
        "criteria_type": "messages_sent",
        "criteria_value": 100,
        "tier": "silver",
    },
    # Leadership
    {
        "name": "Event Organizer",
        "description": "Created your first event",
        "icon": "\U0001f4c5",
        "category": "leadership",
        "points_value": 50,
        "criteria_type": "events_created",
        "criteria_value": 1,
        "tier": "bronze",
    },
    {
        "name": "Safety Champion",
        "description": "Reported 10 incidents",
        "icon": "\U0001f6e1",
        "category": "leadership",
        "points_value": 150,
        "criteria_type": "incidents_reported",
        "criteria_value": 10,
        "tier": "gold",
    },
    # Special
    {
        "name": "Popular",
        "description": "Received 50 likes",
        "icon": "\u2b50",
        "category": "special",
        "points_value": 75,
        "criteria_type": "likes_received",
        "criteria_value": 50,
        "tier": "silver",
    },
]


async def seed_badges(db: AsyncSession) -> int:
    """Upsert the default badge definitions by name. Returns number of badges seeded."""
    now = utcnow()
    seeded = 0
    for badge_data in BADGE_SEED_DATA:
        stmt = conflict_insert(db, Badge).values(**badge_data, created_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["name"],
            set_={
                "description": stmt.excluded.description,
                "icon": stmt.excluded.icon,
                "category": stmt.excluded.category,
                "points_value": stmt.excluded.points_value,
                "criteria_type": stmt.excluded.criteria_type,
                "criteria_value": stmt.excluded.criteria_value,
                "tier": stmt.excluded.tier,
            },
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d badge definitions", seeded)
    return seeded
