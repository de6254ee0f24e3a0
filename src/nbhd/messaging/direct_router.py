"""Direct message API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.auth.dependencies import get_current_user
from nbhd.database import get_session
from nbhd.db.models import User
from nbhd.dependencies import get_presence_dep
from nbhd.messaging.direct_service import (
    delete_direct,
    dm_unread_count,
    edit_direct,
    list_conversations,
    list_direct_messages,
    send_direct,
)
from nbhd.messaging.reactions import list_reactions, react, remove_reaction
from nbhd.messaging.rules import clamp_limit
from nbhd.messaging.schemas import (
    ConversationResponse,
    EditMessageRequest,
    MessageListResponse,
    MessageResponse,
    ReactionListResponse,
    ReactionResponse,
    ReactRequest,
    SendDirectRequest,
    UnreadCountResponse,
)
from nbhd.ws.presence import PresenceRegistry

router = APIRouter(prefix="/api/v1/direct", tags=["Direct Messages"])


@router.post("/send", response_model=MessageResponse, status_code=201)
async def send_message(
    body: SendDirectRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    presence: PresenceRegistry = Depends(get_presence_dep),
):
    message = await send_direct(
        db,
        user.id,
        body.receiver_id,
        body.content,
        media=body.media.to_attachment() if body.media else None,
        reply_to_id=body.reply_to_message_id,
        presence=presence,
    )
    return MessageResponse.from_message(message)


@router.get("/conversations", response_model=list[ConversationResponse])
async def get_conversations(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Everyone the caller has exchanged messages with, most recent first."""
    conversations = await list_conversations(db, user.id)
    return [
        ConversationResponse(
            user_id=c.peer.id,
            username=c.peer.username,
            display_name=c.peer.display_name,
            profile_image_url=c.peer.profile_image_url,
            last_message_time=c.last_message_time,
            unread_count=c.unread_count,
        )
        for c in conversations
    ]


@router.get("/unread/count", response_model=UnreadCountResponse)
async def get_unread_count(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return UnreadCountResponse(count=await dm_unread_count(db, user.id))


@router.patch("/messages/{message_id}", response_model=MessageResponse)
async def edit_message(
    message_id: int,
    body: EditMessageRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    message = await edit_direct(db, message_id, user.id, body.content)
    return MessageResponse.from_message(message)


@router.delete("/messages/{message_id}", status_code=204)
async def delete_message(
    message_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    await delete_direct(db, message_id, user.id)


@router.post("/messages/{message_id}/react", response_model=ReactionResponse)
async def react_to_message(
    message_id: int,
    body: ReactRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    reaction = await react(db, "dm", message_id, user.id, body.emoji)
    return ReactionResponse.from_reaction(reaction)


@router.delete("/messages/{message_id}/react/{emoji}", status_code=204)
async def remove_message_reaction(
    message_id: int,
    emoji: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    await remove_reaction(db, "dm", message_id, user.id, emoji)


@router.get("/messages/{message_id}/reactions", response_model=ReactionListResponse)
async def get_message_reactions(
    message_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    reactions, grouped = await list_reactions(db, "dm", message_id, user.id)
    return ReactionListResponse(
        reactions=[ReactionResponse.from_reaction(r) for r in reactions],
        by_emoji=grouped,
    )


@router.get("/{user_id}/messages", response_model=MessageListResponse)
async def get_messages(
    user_id: int,
    limit: int | None = Query(None, ge=1),
    before: int | None = Query(None, ge=1),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Conversation with ``user_id``, oldest first. Pass the first id as ``before`` to page back."""
    page_size = clamp_limit(limit)
    messages = await list_direct_messages(db, user.id, user_id, before=before, limit=page_size)
    return MessageListResponse(
        messages=[MessageResponse.from_message(m) for m in messages],
        has_more=len(messages) == page_size,
    )
