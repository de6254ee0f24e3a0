"""Group API endpoints: membership lifecycle and group chat."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.auth.dependencies import get_current_user
from nbhd.database import get_session
from nbhd.db.models import GroupMembership, User
from nbhd.dependencies import get_presence_dep
from nbhd.groups.membership_service import (
    accept_invite,
    add_member,
    change_role,
    create_group,
    get_group,
    get_group_detail,
    invite,
    leave,
    list_invites,
    list_my_groups,
    reject_invite,
    remove_member,
)
from nbhd.groups.schemas import (
    ChangeRoleRequest,
    CreateGroupRequest,
    GroupDetailResponse,
    GroupResponse,
    InviteResponse,
    MemberRequest,
    MemberResponse,
    MembershipResponse,
    MyGroupResponse,
    PendingInviteResponse,
)
from nbhd.messaging.group_service import (
    delete_group_message,
    edit_group_message,
    list_group_messages,
    send_group,
)
from nbhd.messaging.reactions import list_reactions, react, remove_reaction
from nbhd.messaging.rules import clamp_limit
from nbhd.messaging.schemas import (
    EditMessageRequest,
    MessageListResponse,
    MessageResponse,
    ReactionListResponse,
    ReactionResponse,
    ReactRequest,
    SendGroupMessageRequest,
)
from nbhd.ws.presence import PresenceRegistry

router = APIRouter(prefix="/api/v1/groups", tags=["Groups"])


def _member_response(m: GroupMembership) -> MemberResponse:
    return MemberResponse(
        user_id=m.user_id,
        username=m.user.username,
        display_name=m.user.display_name,
        role=m.role,
        status=m.status,
        joined_at=m.joined_at,
    )


# --- Groups ---


@router.post("", response_model=GroupResponse, status_code=201)
async def create(
    body: CreateGroupRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    group = await create_group(
        db,
        user.id,
        body.name,
        description=body.description,
        group_type=body.group_type,
        street_name=body.street_name,
        is_private=body.is_private,
    )
    return GroupResponse.model_validate(group)


@router.get("/mine", response_model=list[MyGroupResponse])
async def my_groups(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return [
        MyGroupResponse(**GroupResponse.model_validate(group).model_dump(), my_role=role)
        for group, role in await list_my_groups(db, user.id)
    ]


@router.get("/invites", response_model=list[PendingInviteResponse])
async def my_invites(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Invitations waiting for the caller's answer."""
    return [
        PendingInviteResponse(
            group_id=i.group.id,
            group_name=i.group.name,
            invite_id=i.membership.invite_id,
            invited_by=i.membership.invited_by,
            inviter_name=i.inviter.display_name if i.inviter else None,
            invite_created_at=i.membership.invite_created_at,
        )
        for i in await list_invites(db, user.id)
    ]


@router.get("/{group_id}", response_model=GroupDetailResponse)
async def group_detail(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    detail = await get_group_detail(db, group_id, user.id)
    return GroupDetailResponse(
        **GroupResponse.model_validate(detail.group).model_dump(),
        my_role=detail.my_role,
        members=[_member_response(m) for m in detail.members],
    )


# --- Membership ---


@router.post("/{group_id}/members", response_model=MembershipResponse, status_code=201)
async def add_group_member(
    group_id: int,
    body: MemberRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    presence: PresenceRegistry = Depends(get_presence_dep),
):
    membership = await add_member(db, group_id, user.id, body.user_id, presence=presence)
    return MembershipResponse.model_validate(membership)


@router.delete("/{group_id}/members/{member_id}", status_code=204)
async def remove_group_member(
    group_id: int,
    member_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    await remove_member(db, group_id, user.id, member_id)


@router.post("/{group_id}/invite", response_model=InviteResponse)
async def invite_member(
    group_id: int,
    body: MemberRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    presence: PresenceRegistry = Depends(get_presence_dep),
):
    membership = await invite(db, group_id, user.id, body.user_id, presence=presence)
    return InviteResponse(
        group_id=group_id,
        user_id=membership.user_id,
        invite_id=membership.invite_id,
        status=membership.status,
    )


@router.post("/{group_id}/invites/{invite_id}/accept", response_model=MembershipResponse)
async def accept(
    group_id: int,
    invite_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    presence: PresenceRegistry = Depends(get_presence_dep),
):
    membership = await accept_invite(db, group_id, invite_id, user.id, presence=presence)
    return MembershipResponse.model_validate(membership)


@router.post("/{group_id}/invites/{invite_id}/reject", response_model=MembershipResponse)
async def reject(
    group_id: int,
    invite_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    membership = await reject_invite(db, group_id, invite_id, user.id)
    return MembershipResponse.model_validate(membership)


@router.post("/{group_id}/leave", response_model=GroupResponse)
async def leave_group(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    await leave(db, group_id, user.id)
    return GroupResponse.model_validate(await get_group(db, group_id))


@router.patch("/{group_id}/members/{member_id}/role", response_model=MembershipResponse)
async def update_role(
    group_id: int,
    member_id: int,
    body: ChangeRoleRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    membership = await change_role(db, group_id, user.id, member_id, body.role)
    return MembershipResponse.model_validate(membership)


# --- Messages ---


@router.post("/{group_id}/messages", response_model=MessageResponse, status_code=201)
async def post_message(
    group_id: int,
    body: SendGroupMessageRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    presence: PresenceRegistry = Depends(get_presence_dep),
):
    message = await send_group(
        db,
        group_id,
        user.id,
        body.content,
        message_type=body.message_type,
        media=body.media.to_attachment() if body.media else None,
        reply_to_id=body.reply_to_message_id,
        presence=presence,
    )
    return MessageResponse.from_message(message)


@router.get("/{group_id}/messages", response_model=MessageListResponse)
async def get_messages(
    group_id: int,
    limit: int | None = Query(None, ge=1),
    before: int | None = Query(None, ge=1),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    page_size = clamp_limit(limit)
    messages = await list_group_messages(db, group_id, user.id, before=before, limit=page_size)
    return MessageListResponse(
        messages=[MessageResponse.from_message(m) for m in messages],
        has_more=len(messages) == page_size,
    )


@router.patch("/{group_id}/messages/{message_id}", response_model=MessageResponse)
async def edit_message(
    group_id: int,
    message_id: int,
    body: EditMessageRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    message = await edit_group_message(db, group_id, message_id, user.id, body.content)
    return MessageResponse.from_message(message)


@router.delete("/{group_id}/messages/{message_id}", status_code=204)
async def delete_message(
    group_id: int,
    message_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    await delete_group_message(db, group_id, message_id, user.id)


@router.post("/{group_id}/messages/{message_id}/react", response_model=ReactionResponse)
async def react_to_message(
    group_id: int,
    message_id: int,
    body: ReactRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    reaction = await react(db, "group", message_id, user.id, body.emoji, group_id=group_id)
    return ReactionResponse.from_reaction(reaction)


@router.delete("/{group_id}/messages/{message_id}/react/{emoji}", status_code=204)
async def remove_message_reaction(
    group_id: int,
    message_id: int,
    emoji: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    await remove_reaction(db, "group", message_id, user.id, emoji, group_id=group_id)


@router.get("/{group_id}/messages/{message_id}/reactions", response_model=ReactionListResponse)
async def get_message_reactions(
    group_id: int,
    message_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    reactions, grouped = await list_reactions(db, "group", message_id, user.id, group_id=group_id)
    return ReactionListResponse(
        reactions=[ReactionResponse.from_reaction(r) for r in reactions],
        by_emoji=grouped,
    )
