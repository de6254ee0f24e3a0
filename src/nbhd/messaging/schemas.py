"""Pydantic schemas for messaging endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from nbhd.db.models import ChatMessage, DirectMessage, MessageReaction
from nbhd.messaging.values import MediaAttachment


# --- Requests ---


class MediaIn(BaseModel):
    url: str = Field(..., min_length=1, max_length=500)
    type: str | None = Field(None, max_length=50)
    size: int | None = Field(None, ge=0)
    thumbnail_url: str | None = Field(None, max_length=500)
    duration: int | None = Field(None, ge=0)
    caption: str | None = None

    def to_attachment(self) -> MediaAttachment:
        return MediaAttachment(**self.model_dump())


class SendDirectRequest(BaseModel):
    receiver_id: int
    content: str | None = None
    media: MediaIn | None = None
    reply_to_message_id: int | None = None


class SendGroupMessageRequest(BaseModel):
    content: str | None = None
    message_type: str = "text"
    media: MediaIn | None = None
    reply_to_message_id: int | None = None


class EditMessageRequest(BaseModel):
    content: str | None = None


class ReactRequest(BaseModel):
    emoji: str | None = None


# --- Responses ---


class MediaOut(BaseModel):
    url: str
    type: str | None = None
    size: int | None = None
    thumbnail_url: str | None = None
    duration: int | None = None
    caption: str | None = None


class ReplyOut(BaseModel):
    message_id: int | None = None
    content: str
    author_id: int


class MessageResponse(BaseModel):
    id: int
    message_id: int
    kind: str
    author_id: int
    receiver_id: int | None = None
    group_id: int | None = None
    message_type: str | None = None
    content: str
    media: MediaOut | None = None
    reply_to: ReplyOut | None = None
    is_read: bool
    is_edited: bool
    edited_at: datetime | None = None
    created_at: datetime

    @classmethod
    def from_message(cls, message: DirectMessage | ChatMessage) -> MessageResponse:
        media = None
        if message.has_media:
            media = MediaOut(
                url=message.media_url,
                type=message.media_type,
                size=message.media_size,
                thumbnail_url=message.thumbnail_url,
                duration=message.duration,
                caption=message.caption,
            )
        snapshot = message.reply_snapshot
        is_dm = isinstance(message, DirectMessage)
        return cls(
            id=message.id,
            message_id=message.id,
            kind="dm" if is_dm else "group",
            author_id=message.author_id,
            receiver_id=message.receiver_id if is_dm else None,
            group_id=None if is_dm else message.group_id,
            message_type=None if is_dm else message.message_type,
            content=message.content,
            media=media,
            reply_to=ReplyOut(**snapshot.as_dict()) if snapshot else None,
            is_read=message.is_read,
            is_edited=message.is_edited,
            edited_at=message.edited_at,
            created_at=message.created_at,
        )


class MessageListResponse(BaseModel):
    messages: list[MessageResponse]
    has_more: bool


class ConversationResponse(BaseModel):
    user_id: int
    username: str
    display_name: str
    profile_image_url: str | None = None
    last_message_time: datetime
    unread_count: int


class UnreadCountResponse(BaseModel):
    count: int


class ReactionResponse(BaseModel):
    id: int
    user_id: int
    username: str
    emoji: str
    created_at: datetime

    @classmethod
    def from_reaction(cls, reaction: MessageReaction) -> ReactionResponse:
        return cls(
            id=reaction.id,
            user_id=reaction.user_id,
            username=reaction.user.username,
            emoji=reaction.emoji,
            created_at=reaction.created_at,
        )


class ReactionUser(BaseModel):
    user_id: int
    username: str
    display_name: str


class EmojiSummary(BaseModel):
    count: int
    users: list[ReactionUser]


class ReactionListResponse(BaseModel):
    reactions: list[ReactionResponse]
    by_emoji: dict[str, EmojiSummary]
