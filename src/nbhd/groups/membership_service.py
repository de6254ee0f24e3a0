"""Group membership state machine.

Statuses: active, pending, invited, removed, rejected. Roles: admin,
moderator, member. Permissions are always read from the current membership
rows, never from anything cached on the caller.

``UserGroup.member_count`` is only ever written by ``recompute_member_count``,
which counts active rows in the same statement that stores the result.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass

from sqlalchemy import exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from nbhd.db.enums import GROUP_TYPES, MANAGER_ROLES, ROLES
from nbhd.db.helpers import supports_row_locks, utcnow
from nbhd.db.models import GroupMembership, User, UserGroup
from nbhd.errors import AlreadyMember, Forbidden, InvalidTarget, LastAdminGuard, NotFound, ValidationFailed
from nbhd.notifications.service import best_effort, notify
from nbhd.ws.presence import PresenceRegistry

logger = logging.getLogger(__name__)

INVITE_TOKEN_BYTES = 10


@dataclass
class PendingInvite:
    membership: GroupMembership
    group: UserGroup
    inviter: User | None


@dataclass
class GroupDetail:
    group: UserGroup
    members: list[GroupMembership]
    my_role: str


# --- Lookups & guards ---


async def get_group(db: AsyncSession, group_id: int) -> UserGroup:
    result = await db.execute(
        select(UserGroup).where(UserGroup.id == group_id).execution_options(populate_existing=True)
    )
    group = result.scalar_one_or_none()
    if group is None:
        raise NotFound("Group not found")
    return group


async def get_membership(
    db: AsyncSession, group_id: int, user_id: int, *, lock: bool = False
) -> GroupMembership | None:
    stmt = (
        select(GroupMembership)
        .where(GroupMembership.group_id == group_id, GroupMembership.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    if lock and supports_row_locks(db):
        stmt = stmt.with_for_update(of=GroupMembership)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_active_membership(db: AsyncSession, group_id: int, user_id: int) -> GroupMembership | None:
    membership = await get_membership(db, group_id, user_id)
    if membership is None or membership.status != "active":
        return None
    return membership


async def require_active_member(db: AsyncSession, group_id: int, user_id: int) -> GroupMembership:
    membership = await get_active_membership(db, group_id, user_id)
    if membership is None:
        raise Forbidden("Not a member of this group")
    return membership


async def require_role(db: AsyncSession, group_id: int, user_id: int, roles: frozenset[str]) -> GroupMembership:
    membership = await require_active_member(db, group_id, user_id)
    if membership.role not in roles:
        raise Forbidden("Insufficient group role")
    return membership


async def _require_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


async def recompute_member_count(db: AsyncSession, group_id: int) -> int:
    """Set member_count to the number of active memberships, in one statement."""
    active = (
        select(func.count(GroupMembership.id))
        .where(GroupMembership.group_id == group_id, GroupMembership.status == "active")
        .scalar_subquery()
    )
    result = await db.execute(
        update(UserGroup)
        .where(UserGroup.id == group_id)
        .values(member_count=active)
        .returning(UserGroup.member_count)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one()


async def _other_active_admins(db: AsyncSession, group_id: int, user_id: int) -> int:
    stmt = select(GroupMembership.id).where(
        GroupMembership.group_id == group_id,
        GroupMembership.role == "admin",
        GroupMembership.status == "active",
        GroupMembership.user_id != user_id,
    )
    if supports_row_locks(db):
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return len(result.scalars().all())


# --- Transitions ---


async def create_group(
    db: AsyncSession,
    creator_id: int,
    name: str,
    description: str | None = None,
    group_type: str = "street",
    street_name: str | None = None,
    is_private: bool = True,
) -> UserGroup:
    """Create a group with the creator as its active admin."""
    if group_type not in GROUP_TYPES:
        raise ValidationFailed(f"Invalid group type: {group_type}")
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Group name is required")

    now = utcnow()
    group = UserGroup(
        name=name,
        description=description,
        group_type=group_type,
        street_name=street_name,
        is_private=is_private,
        created_by=creator_id,
        member_count=0,
        created_at=now,
    )
    db.add(group)
    await db.flush()
    db.add(GroupMembership(group_id=group.id, user_id=creator_id, role="admin", status="active", joined_at=now))
    await db.flush()
    await recompute_member_count(db, group.id)
    await db.commit()
    logger.info("Group %s created by user %s", group.id, creator_id)
    return await get_group(db, group.id)


async def add_member(
    db: AsyncSession,
    group_id: int,
    actor_id: int,
    user_id: int,
    presence: PresenceRegistry | None = None,
) -> GroupMembership:
    """Directly add (or reactivate) a member. Admins and moderators only."""
    group = await get_group(db, group_id)
    await require_role(db, group_id, actor_id, MANAGER_ROLES)
    await _require_user(db, user_id)

    membership = await get_membership(db, group_id, user_id, lock=True)
    now = utcnow()
    if membership is None:
        membership = GroupMembership(group_id=group_id, user_id=user_id, role="member", status="active", joined_at=now)
        db.add(membership)
    elif membership.status == "active":
        raise AlreadyMember()
    else:
        membership.role = "member"
        membership.status = "active"
        membership.joined_at = now
        membership.clear_invite()
    await db.flush()
    await recompute_member_count(db, group_id)
    await db.commit()

    async with best_effort(db, "group_added_notification"):
        await notify(
            db,
            user_id,
            "group",
            "Added to Group",
            f"You have been added to {group.name}",
            related_type="group",
            related_id=group_id,
            presence=presence,
        )
    return membership


async def invite(
    db: AsyncSession,
    group_id: int,
    actor_id: int,
    user_id: int,
    presence: PresenceRegistry | None = None,
) -> GroupMembership:
    """Invite a user. Re-inviting a pending invitee returns the same token."""
    group = await get_group(db, group_id)
    await require_role(db, group_id, actor_id, MANAGER_ROLES)
    if actor_id == user_id:
        raise InvalidTarget("Cannot invite yourself")
    await _require_user(db, user_id)

    membership = await get_membership(db, group_id, user_id, lock=True)
    if membership is not None:
        if membership.status == "active":
            raise AlreadyMember()
        if membership.status == "invited" and membership.invite_id:
            return membership

    now = utcnow()
    token = secrets.token_hex(INVITE_TOKEN_BYTES)
    if membership is None:
        membership = GroupMembership(group_id=group_id, user_id=user_id)
        db.add(membership)
    membership.role = "member"
    membership.status = "invited"
    membership.invited_by = actor_id
    membership.invite_id = token
    membership.invite_created_at = now
    await db.flush()
    await db.commit()

    inviter = await db.get(User, actor_id)
    async with best_effort(db, "group_invite_notification"):
        await notify(
            db,
            user_id,
            "group_invite",
            "Group Invitation",
            f"{inviter.display_name if inviter else 'Someone'} invited you to join {group.name}",
            related_type="group",
            related_id=group_id,
            presence=presence,
        )
    return membership


async def list_invites(db: AsyncSession, user_id: int) -> list[PendingInvite]:
    inviter = aliased(User)
    result = await db.execute(
        select(GroupMembership, UserGroup, inviter)
        .join(UserGroup, UserGroup.id == GroupMembership.group_id)
        .outerjoin(inviter, inviter.id == GroupMembership.invited_by)
        .where(GroupMembership.user_id == user_id, GroupMembership.status == "invited")
        .order_by(GroupMembership.invite_created_at.desc())
    )
    return [PendingInvite(m, g, u) for m, g, u in result.unique().all()]


async def _get_invite(db: AsyncSession, group_id: int, invite_id: str, user_id: int) -> GroupMembership:
    result = await db.execute(
        select(GroupMembership)
        .where(
            GroupMembership.group_id == group_id,
            GroupMembership.invite_id == invite_id,
            GroupMembership.status == "invited",
        )
        .execution_options(populate_existing=True)
    )
    membership = result.scalar_one_or_none()
    if membership is None or membership.user_id != user_id:
        raise NotFound("Invitation not found")
    return membership


async def accept_invite(
    db: AsyncSession,
    group_id: int,
    invite_id: str,
    user_id: int,
    presence: PresenceRegistry | None = None,
) -> GroupMembership:
    group = await get_group(db, group_id)
    membership = await _get_invite(db, group_id, invite_id, user_id)
    inviter_id = membership.invited_by

    membership.status = "active"
    membership.joined_at = utcnow()
    membership.clear_invite()
    await db.flush()
    await recompute_member_count(db, group_id)
    await db.commit()

    if inviter_id is not None:
        user = await db.get(User, user_id)
        async with best_effort(db, "invite_accepted_notification"):
            await notify(
                db,
                inviter_id,
                "group",
                "Invite Accepted",
                f"{user.display_name if user else 'A user'} joined {group.name}",
                related_type="group",
                related_id=group_id,
                presence=presence,
            )
    return membership


async def reject_invite(db: AsyncSession, group_id: int, invite_id: str, user_id: int) -> GroupMembership:
    await get_group(db, group_id)
    membership = await _get_invite(db, group_id, invite_id, user_id)
    membership.status = "rejected"
    membership.clear_invite()
    await db.flush()
    await db.commit()
    return membership


async def leave(db: AsyncSession, group_id: int, user_id: int) -> None:
    """Leave a group. The only active admin must promote someone first."""
    await get_group(db, group_id)
    membership = await get_membership(db, group_id, user_id, lock=True)
    if membership is None or membership.status != "active":
        raise NotFound("Not an active member of this group")

    if membership.role == "admin" and await _other_active_admins(db, group_id, user_id) == 0:
        raise LastAdminGuard()

    # Conditional on another admin still existing, so two admins leaving at
    # once cannot both succeed.
    other = aliased(GroupMembership)
    another_admin = exists().where(
        other.group_id == group_id,
        other.role == "admin",
        other.status == "active",
        other.user_id != user_id,
    )
    result = await db.execute(
        update(GroupMembership)
        .where(
            GroupMembership.id == membership.id,
            GroupMembership.status == "active",
            or_(GroupMembership.role != "admin", another_admin),
        )
        .values(status="removed")
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise LastAdminGuard()

    await recompute_member_count(db, group_id)
    await db.commit()
    logger.info("User %s left group %s", user_id, group_id)


async def remove_member(db: AsyncSession, group_id: int, actor_id: int, target_id: int) -> None:
    """Admin removal of another member. Removing yourself is a leave."""
    if actor_id == target_id:
        await leave(db, group_id, actor_id)
        return

    await get_group(db, group_id)
    await require_role(db, group_id, actor_id, frozenset({"admin"}))
    membership = await get_membership(db, group_id, target_id, lock=True)
    if membership is None or membership.status != "active":
        raise NotFound("Member not found")

    membership.status = "removed"
    await db.flush()
    await recompute_member_count(db, group_id)
    await db.commit()
    logger.info("User %s removed from group %s by %s", target_id, group_id, actor_id)


async def change_role(db: AsyncSession, group_id: int, actor_id: int, target_id: int, role: str) -> GroupMembership:
    await get_group(db, group_id)
    await require_role(db, group_id, actor_id, frozenset({"admin"}))
    if role not in ROLES:
        raise ValidationFailed(f"Invalid role: {role}")

    membership = await get_membership(db, group_id, target_id, lock=True)
    if membership is None or membership.status != "active":
        raise NotFound("Member not found")
    if (
        target_id == actor_id
        and role != "admin"
        and await _other_active_admins(db, group_id, actor_id) == 0
    ):
        raise LastAdminGuard("Cannot step down: you are the only admin. Promote another member first.")

    membership.role = role
    await db.flush()
    await db.commit()
    return membership


# --- Queries ---


async def get_group_detail(db: AsyncSession, group_id: int, user_id: int) -> GroupDetail:
    """Group with its active members. Visible to active members only."""
    group = await get_group(db, group_id)
    me = await require_active_member(db, group_id, user_id)
    result = await db.execute(
        select(GroupMembership)
        .where(GroupMembership.group_id == group_id, GroupMembership.status == "active")
        .order_by(GroupMembership.joined_at, GroupMembership.id)
    )
    return GroupDetail(group=group, members=list(result.scalars().all()), my_role=me.role)


async def list_my_groups(db: AsyncSession, user_id: int) -> list[tuple[UserGroup, str]]:
    result = await db.execute(
        select(UserGroup, GroupMembership.role)
        .join(GroupMembership, GroupMembership.group_id == UserGroup.id)
        .where(GroupMembership.user_id == user_id, GroupMembership.status == "active")
        .order_by(UserGroup.name)
        .execution_options(populate_existing=True)
    )
    return [(group, role) for group, role in result.unique().all()]


async def active_member_ids(db: AsyncSession, group_id: int) -> list[int]:
    result = await db.execute(
        select(GroupMembership.user_id).where(
            GroupMembership.group_id == group_id,
            GroupMembership.status == "active",
        )
    )
    return list(result.scalars().all())
