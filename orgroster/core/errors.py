"""Typed errors raised by membership services.

Services raise these; `MembershipManager` converts them into
`ActionResult` failures carrying an `ErrorResponse`.
"""

from __future__ import annotations

from typing import Any


class MembershipError(Exception):
    """Base class for recoverable membership operation failures."""

    code = "membership_error"
    # Changes flushed before the error should still be committed
    persist_changes = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotAuthenticatedError(MembershipError):
    """Raised when no verified actor identity is available."""

    code = "not_authenticated"


class NotAuthorizedError(MembershipError):
    """Raised when the permission evaluator denies an action."""

    code = "not_authorized"


class NotFoundError(MembershipError):
    """Raised when an organization, member or invitation does not exist."""

    code = "not_found"


class ConflictError(MembershipError):
    """Raised for duplicate invitations, existing members and state conflicts."""

    code = "conflict"


class ExpiredError(MembershipError):
    """Raised when an invitation is past its expiry.

    The invitation has been flipped to `expired` by then, and that change
    is committed even though the operation fails.
    """

    code = "expired"
    persist_changes = True


class ValidationFailedError(MembershipError):
    """Raised for malformed emails, roles, names or lengths."""

    code = "validation_error"


class CriticalError(MembershipError):
    """Raised when a post-condition is violated and state may be partial.

    Callers should show a "contact support" message rather than suggest a
    retry.
    """

    code = "critical"
