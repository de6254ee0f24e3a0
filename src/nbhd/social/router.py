"""Follow and trusted-contact API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.auth.dependencies import get_current_user
from nbhd.database import get_session
from nbhd.db.models import User
from nbhd.dependencies import get_presence_dep
from nbhd.social import contact_service, follow_service
from nbhd.social.schemas import (
    ContactRequest,
    ContactResponse,
    FollowCountsResponse,
    FollowListResponse,
    FollowResult,
    IsFollowingResponse,
)
from nbhd.ws.presence import PresenceRegistry

router = APIRouter(prefix="/api/v1", tags=["Social"])


# --- Follows ---


@router.post("/follows/follow/{user_id}", response_model=FollowResult)
async def follow_user(
    user_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    presence: PresenceRegistry = Depends(get_presence_dep),
):
    mutual = await follow_service.follow(db, user.id, user_id, presence=presence)
    return FollowResult(detail="Successfully followed user", mutual=mutual)


@router.post("/follows/unfollow/{user_id}", response_model=FollowResult)
async def unfollow_user(
    user_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    await follow_service.unfollow(db, user.id, user_id)
    return FollowResult(detail="Successfully unfollowed user", mutual=False)


@router.get("/follows/is-following/{user_id}", response_model=IsFollowingResponse)
async def is_following(
    user_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return IsFollowingResponse(is_following=await follow_service.is_following(db, user.id, user_id))


@router.get("/follows/counts/{user_id}", response_model=FollowCountsResponse)
async def follow_counts(
    user_id: int,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    followers, following = await follow_service.follow_counts(db, user_id)
    return FollowCountsResponse(followers=followers, following=following)


@router.get("/follows/followers/{user_id}", response_model=FollowListResponse)
async def followers(
    user_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    rows, total = await follow_service.list_followers(db, user_id, page, per_page)
    return FollowListResponse.build(rows, total, page, per_page)


@router.get("/follows/following/{user_id}", response_model=FollowListResponse)
async def following(
    user_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    rows, total = await follow_service.list_following(db, user_id, page, per_page)
    return FollowListResponse.build(rows, total, page, per_page)


# --- Trusted contacts ---


@router.post("/contacts/request", response_model=ContactResponse, status_code=201)
async def request_contact(
    body: ContactRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    presence: PresenceRegistry = Depends(get_presence_dep),
):
    contact = await contact_service.request_contact(db, user.id, body.trusted_user_id, presence=presence)
    return ContactResponse.for_owner(contact)


@router.get("/contacts/mine", response_model=list[ContactResponse])
async def my_contacts(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return [ContactResponse.for_owner(c) for c in await contact_service.list_contacts(db, user.id)]


@router.get("/contacts/requests", response_model=list[ContactResponse])
async def contact_requests(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return [ContactResponse.for_recipient(c) for c in await contact_service.list_contact_requests(db, user.id)]


@router.patch("/contacts/{contact_id}/accept", response_model=ContactResponse)
async def accept_contact(
    contact_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    presence: PresenceRegistry = Depends(get_presence_dep),
):
    contact = await contact_service.accept_contact(db, contact_id, user.id, presence=presence)
    return ContactResponse.for_recipient(contact)


@router.patch("/contacts/{contact_id}/reject", status_code=204)
async def reject_contact(
    contact_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    await contact_service.reject_contact(db, contact_id, user.id)


@router.patch("/contacts/{contact_id}/block", response_model=ContactResponse)
async def block_contact(
    contact_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    contact = await contact_service.block_contact(db, contact_id, user.id)
    return ContactResponse.for_owner(contact)


@router.delete("/contacts/{contact_id}", status_code=204)
async def remove_contact(
    contact_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    await contact_service.remove_contact(db, contact_id, user.id)
