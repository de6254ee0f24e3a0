"""Validation rules shared by direct and group messaging."""

from __future__ import annotations

from datetime import datetime, timedelta

from nbhd.config import get_settings
from nbhd.db.helpers import as_utc, utcnow
from nbhd.errors import EditWindowExpired, ValidationFailed

MAX_EMOJI_LENGTH = 10


def clean_content(content: str | None) -> str:
    """Strip and bound message text. Media messages still need a text body."""
    text = (content or "").strip()
    if not text:
        raise ValidationFailed("Message content is required")
    limit = get_settings().message_max_length
    if len(text) > limit:
        raise ValidationFailed(f"Message content exceeds {limit} characters")
    return text


def clamp_limit(limit: int | None) -> int:
    """Default page size when missing, hard cap when too large."""
    settings = get_settings()
    if limit is None or limit < 1:
        return settings.message_page_size
    return min(limit, settings.message_page_size_max)


def edit_deadline(created_at: datetime) -> datetime:
    return as_utc(created_at) + timedelta(minutes=get_settings().message_edit_window_minutes)


def check_edit_window(created_at: datetime, now: datetime | None = None) -> None:
    """Raise ``EditWindowExpired`` once the window has passed (the deadline itself is still allowed)."""
    now = now or utcnow()
    if as_utc(now) > edit_deadline(created_at):
        raise EditWindowExpired()


def clean_emoji(emoji: str | None) -> str:
    value = (emoji or "").strip()
    if not value:
        raise ValidationFailed("Emoji is required")
    if len(value) > MAX_EMOJI_LENGTH:
        raise ValidationFailed(f"Emoji must be at most {MAX_EMOJI_LENGTH} characters")
    return value


def preview(content: str) -> str:
    """Truncated message text for notification bodies."""
    length = get_settings().notification_preview_length
    if len(content) <= length:
        return content
    return content[:length] + "..."
