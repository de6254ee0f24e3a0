"""Domain error taxonomy.

Services raise these; ``nbhd.middleware.error_handler`` turns them into JSON
responses carrying the HTTP status and a machine-readable ``code`` so callers
can tell "not allowed" from "doesn't exist" from "too late to edit".
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for errors that are reported to the caller as-is."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.__class__.__doc__ or self.code
        super().__init__(self.detail)


class Unauthorized(DomainError):
    """Missing or invalid caller identity."""

    status_code = 401
    code = "unauthorized"


class Forbidden(DomainError):
    """Caller lacks the role or membership required for this action."""

    status_code = 403
    code = "forbidden"


class NotFound(DomainError):
    """Entity not found."""

    status_code = 404
    code = "not_found"


class Conflict(DomainError):
    """Request conflicts with existing state."""

    status_code = 409
    code = "conflict"


class AlreadyMember(Conflict):
    """User is already an active member of this group."""

    code = "already_member"


class ValidationFailed(DomainError):
    """Invalid input."""

    status_code = 400
    code = "validation"


class InvalidTarget(ValidationFailed):
    """Operation cannot target yourself."""

    code = "invalid_target"


class EditWindowExpired(DomainError):
    """Messages can only be edited shortly after they are sent."""

    status_code = 403
    code = "edit_window_expired"


class LastAdminGuard(DomainError):
    """Cannot leave: you are the only admin. Promote another member first."""

    status_code = 409
    code = "last_admin"
