"""Pydantic schemas for badge endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class BadgeResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    name: str
    description: str | None = None
    icon: str | None = None
    category: str
    points_value: int
    criteria_type: str | None = None
    criteria_value: int | None = None
    tier: str


class UserBadgeResponse(BaseModel):
    badge: BadgeResponse
    earned_at: datetime
    is_displayed: bool


class BadgeProgressResponse(BaseModel):
    badge: BadgeResponse
    earned: bool
    current: int
    target: int
    percent: int


class DisplayRequest(BaseModel):
    is_displayed: bool
