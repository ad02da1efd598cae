"""Invitation status workflow state machine."""

import hashlib
import secrets
from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlencode, urlsplit

from orgroster.models.base import as_utc
from orgroster.models.enums import InvitationStatus

# Valid status transitions for the invitation lifecycle
# Key: current status, Value: list of allowed next statuses
VALID_TRANSITIONS: dict[InvitationStatus, list[InvitationStatus]] = {
    InvitationStatus.PENDING: [InvitationStatus.ACCEPTED, InvitationStatus.EXPIRED],
    InvitationStatus.ACCEPTED: [],  # Terminal state - never reverts
    InvitationStatus.EXPIRED: [],  # Terminal state - lapse, decline or cancel
}

TOKEN_BYTES = 32  # 256-bit entropy


def is_valid_transition(from_status: InvitationStatus, to_status: InvitationStatus) -> bool:
    """Check if a status transition is valid.

    Args:
        from_status: Current invitation status
        to_status: Target invitation status

    Returns:
        True if the transition is allowed, False otherwise

    Examples:
        >>> is_valid_transition(InvitationStatus.PENDING, InvitationStatus.ACCEPTED)
        True
        >>> is_valid_transition(InvitationStatus.ACCEPTED, InvitationStatus.PENDING)
        False
        >>> is_valid_transition(InvitationStatus.EXPIRED, InvitationStatus.ACCEPTED)
        False
    """
    return to_status in VALID_TRANSITIONS.get(from_status, [])


def get_allowed_transitions(from_status: InvitationStatus) -> list[InvitationStatus]:
    """Get list of allowed transitions from a given status.

    Examples:
        >>> get_allowed_transitions(InvitationStatus.PENDING)
        [<InvitationStatus.ACCEPTED: 'accepted'>, <InvitationStatus.EXPIRED: 'expired'>]
        >>> get_allowed_transitions(InvitationStatus.ACCEPTED)
        []
    """
    return VALID_TRANSITIONS.get(from_status, [])


def is_terminal(status: InvitationStatus) -> bool:
    return not VALID_TRANSITIONS.get(status)


def has_lapsed(expires_at: datetime, now: datetime) -> bool:
    """True once `now` has reached the expiry instant."""
    return as_utc(expires_at) <= as_utc(now)


def compute_expiry(created_at: datetime, expiry_days: int) -> datetime:
    return as_utc(created_at) + timedelta(days=expiry_days)


def generate_token() -> str:
    """Generate an unguessable, URL-safe invitation token."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str) -> str:
    """Hash a plaintext token for storage and lookup."""
    return hashlib.sha256(token.encode()).hexdigest()


def build_accept_url(site_url: str, accept_path: str, token: str) -> str:
    """Build the acceptance link carrying the opaque token.

    Examples:
        >>> build_accept_url("https://app.example.com", "/invitations/accept", "abc")
        'https://app.example.com/invitations/accept?token=abc'
    """
    return f"{site_url.rstrip('/')}{accept_path}?{urlencode({'token': token})}"


def parse_accept_url(url: str) -> str | None:
    """Extract the token from an acceptance link, or None if it carries none."""
    values = parse_qs(urlsplit(url).query).get("token")
    if not values or not values[0]:
        return None
    return values[0]
