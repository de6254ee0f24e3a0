"""Value objects carried by messages."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ReplySnapshot:
    """The quoted message as it read when the reply was written.

    Captured once at send time and stored alongside the reply. It is not a
    live view of the original: editing or deleting the original leaves the
    snapshot unchanged. ``message_id`` is kept only so clients can jump to
    the original while it still exists.
    """

    message_id: int | None
    content: str
    author_id: int

    def as_dict(self) -> dict[str, object]:
        return {
            "message_id": self.message_id,
            "content": self.content,
            "author_id": self.author_id,
        }


@dataclass(frozen=True)
class MediaAttachment:
    """Already-uploaded media referenced by a message. Uploads live elsewhere."""

    url: str
    type: str | None = None
    size: int | None = None
    thumbnail_url: str | None = None
    duration: int | None = None
    caption: str | None = None

    def column_values(self) -> dict[str, object]:
        return {
            "media_url": self.url,
            "media_type": self.type,
            "media_size": self.size,
            "thumbnail_url": self.thumbnail_url,
            "duration": self.duration,
            "caption": self.caption,
        }
