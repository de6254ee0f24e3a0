"""Closed value sets stored as strings in the database."""

NOTIFICATION_TYPES = frozenset(
    {"alert", "message", "event", "badge", "verification", "system", "group_invite", "group"}
)
RELATED_TYPES = frozenset({"post", "event", "message", "user", "group"})
PRIORITIES = frozenset({"low", "normal", "high", "urgent"})

MEMBERSHIP_STATUSES = frozenset({"active", "pending", "invited", "removed", "rejected"})
ROLES = frozenset({"admin", "moderator", "member"})
MANAGER_ROLES = frozenset({"admin", "moderator"})
GROUP_TYPES = frozenset({"street", "block", "neighborhood", "interest"})

CHAT_MESSAGE_TYPES = frozenset({"text", "image", "alert", "system"})
MESSAGE_KINDS = frozenset({"dm", "group"})

CONTACT_STATUSES = frozenset({"pending", "accepted", "blocked"})
CONTACT_SOURCES = frozenset({"follow", "request"})

DEVICE_PLATFORMS = frozenset({"ios", "android", "web"})
