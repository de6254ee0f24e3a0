"""Pydantic schemas for group endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CreateGroupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    group_type: str = "street"
    street_name: str | None = Field(None, max_length=100)
    is_private: bool = True


class MemberRequest(BaseModel):
    user_id: int


class ChangeRoleRequest(BaseModel):
    role: str


class GroupResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    name: str
    description: str | None = None
    group_type: str
    street_name: str | None = None
    is_private: bool
    created_by: int
    member_count: int
    created_at: datetime | None = None


class MyGroupResponse(GroupResponse):
    my_role: str


class MemberResponse(BaseModel):
    user_id: int
    username: str
    display_name: str
    role: str
    status: str
    joined_at: datetime | None = None


class GroupDetailResponse(GroupResponse):
    my_role: str
    members: list[MemberResponse] = []


class MembershipResponse(BaseModel):
    model_config = {"from_attributes": True}

    group_id: int
    user_id: int
    role: str
    status: str
    joined_at: datetime | None = None


class InviteResponse(BaseModel):
    group_id: int
    user_id: int
    invite_id: str
    status: str


class PendingInviteResponse(BaseModel):
    group_id: int
    group_name: str
    invite_id: str
    invited_by: int | None = None
    inviter_name: str | None = None
    invite_created_at: datetime | None = None
