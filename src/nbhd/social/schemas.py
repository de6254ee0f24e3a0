"""Pydantic schemas for follow and trusted-contact endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from nbhd.db.models import TrustedContact, User


class UserSummary(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    username: str
    display_name: str
    profile_image_url: str | None = None
    verification_status: str


# --- Follows ---


class FollowResult(BaseModel):
    detail: str
    mutual: bool


class IsFollowingResponse(BaseModel):
    is_following: bool


class FollowCountsResponse(BaseModel):
    followers: int
    following: int


class FollowEntry(UserSummary):
    followed_at: datetime | None = None


class FollowListResponse(BaseModel):
    users: list[FollowEntry]
    total: int
    page: int
    per_page: int

    @classmethod
    def build(cls, rows: list[tuple[User, datetime | None]], total: int, page: int, per_page: int) -> FollowListResponse:
        return cls(
            users=[
                FollowEntry(**UserSummary.model_validate(u).model_dump(), followed_at=at)
                for u, at in rows
            ],
            total=total,
            page=page,
            per_page=per_page,
        )


# --- Trusted contacts ---


class ContactRequest(BaseModel):
    trusted_user_id: int


class ContactResponse(BaseModel):
    id: int
    user_id: int
    trusted_user_id: int
    status: str
    source: str
    created_at: datetime | None = None
    user: UserSummary

    @classmethod
    def for_owner(cls, contact: TrustedContact) -> ContactResponse:
        """Row as seen by its owner: ``user`` is the trusted party."""
        return cls._build(contact, contact.trusted_user)

    @classmethod
    def for_recipient(cls, contact: TrustedContact) -> ContactResponse:
        """Incoming request: ``user`` is the requester."""
        return cls._build(contact, contact.requester)

    @classmethod
    def _build(cls, contact: TrustedContact, other: User) -> ContactResponse:
        return cls(
            id=contact.id,
            user_id=contact.user_id,
            trusted_user_id=contact.trusted_user_id,
            status=contact.status,
            source=contact.source,
            created_at=contact.created_at,
            user=UserSummary.model_validate(other),
        )
