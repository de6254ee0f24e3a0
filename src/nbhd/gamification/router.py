"""Badge API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.auth.dependencies import get_current_user
from nbhd.database import get_session
from nbhd.db.models import User, UserBadge
from nbhd.gamification.badge_service import (
    get_badge_progress,
    list_badges,
    list_user_badges,
    set_badge_display,
)
from nbhd.gamification.schemas import (
    BadgeProgressResponse,
    BadgeResponse,
    DisplayRequest,
    UserBadgeResponse,
)

router = APIRouter(prefix="/api/v1/badges", tags=["Badges"])


def _user_badge(ub: UserBadge) -> UserBadgeResponse:
    return UserBadgeResponse(
        badge=BadgeResponse.model_validate(ub.badge),
        earned_at=ub.earned_at,
        is_displayed=ub.is_displayed,
    )


@router.get("", response_model=list[BadgeResponse])
async def all_badges(
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return [BadgeResponse.model_validate(b) for b in await list_badges(db)]


@router.get("/mine", response_model=list[UserBadgeResponse])
async def my_badges(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return [_user_badge(ub) for ub in await list_user_badges(db, user.id)]


@router.get("/user/{user_id}", response_model=list[UserBadgeResponse])
async def user_badges(
    user_id: int,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Badges another user has chosen to display."""
    return [_user_badge(ub) for ub in await list_user_badges(db, user_id, displayed_only=True)]


@router.get("/progress", response_model=list[BadgeProgressResponse])
async def progress(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return [
        BadgeProgressResponse(
            badge=BadgeResponse.model_validate(p.badge),
            earned=p.earned,
            current=p.current,
            target=p.target,
            percent=p.percent,
        )
        for p in await get_badge_progress(db, user.id)
    ]


@router.patch("/{badge_id}/display", response_model=UserBadgeResponse)
async def toggle_display(
    badge_id: int,
    body: DisplayRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return _user_badge(await set_badge_display(db, user.id, badge_id, body.is_displayed))
