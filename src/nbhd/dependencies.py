"""Shared FastAPI dependencies."""

from nbhd.ws.presence import PresenceRegistry, get_presence


def get_presence_dep() -> PresenceRegistry:
    """Return the process-wide presence registry (overridable in tests)."""
    return get_presence()
