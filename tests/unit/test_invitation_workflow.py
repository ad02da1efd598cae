"""Unit tests for the invitation state table and token helpers."""

from datetime import UTC, datetime, timedelta

import pytest

from orgroster.core.invitation_workflow import (
    build_accept_url,
    compute_expiry,
    generate_token,
    get_allowed_transitions,
    has_lapsed,
    hash_token,
    is_terminal,
    is_valid_transition,
    parse_accept_url,
)
from orgroster.models.enums import InvitationStatus

PENDING = InvitationStatus.PENDING
ACCEPTED = InvitationStatus.ACCEPTED
EXPIRED = InvitationStatus.EXPIRED


class TestTransitions:
    """Unit tests for status transitions."""

    def test_pending_moves_to_accepted_or_expired(self):
        assert is_valid_transition(PENDING, ACCEPTED)
        assert is_valid_transition(PENDING, EXPIRED)
        assert get_allowed_transitions(PENDING) == [ACCEPTED, EXPIRED]

    @pytest.mark.parametrize("target", list(InvitationStatus))
    def test_accepted_never_reverts(self, target):
        assert not is_valid_transition(ACCEPTED, target)

    @pytest.mark.parametrize("target", list(InvitationStatus))
    def test_expired_is_terminal(self, target):
        assert not is_valid_transition(EXPIRED, target)

    def test_terminal_states(self):
        assert not is_terminal(PENDING)
        assert is_terminal(ACCEPTED)
        assert is_terminal(EXPIRED)


class TestExpiry:
    """Unit tests for expiry arithmetic."""

    def test_compute_expiry_adds_days(self):
        created = datetime(2026, 10, 18, 9, 0, tzinfo=UTC)
        assert compute_expiry(created, 7) == datetime(2026, 10, 25, 9, 0, tzinfo=UTC)

    def test_lapsed_at_the_expiry_instant(self):
        expires_at = datetime(2026, 10, 25, 9, 0, tzinfo=UTC)
        assert has_lapsed(expires_at, expires_at)
        assert has_lapsed(expires_at, expires_at + timedelta(seconds=1))
        assert not has_lapsed(expires_at, expires_at - timedelta(seconds=1))

    def test_naive_values_are_treated_as_utc(self):
        """SQLite hands datetimes back without tzinfo."""
        naive = datetime(2026, 10, 25, 9, 0)
        aware = datetime(2026, 10, 25, 9, 0, 1, tzinfo=UTC)
        assert has_lapsed(naive, aware)


class TestTokens:
    """Unit tests for token generation and hashing."""

    def test_tokens_are_url_safe_and_unique(self):
        tokens = {generate_token() for _ in range(50)}
        assert len(tokens) == 50
        for token in tokens:
            assert len(token) >= 43
            assert all(c.isalnum() or c in "-_" for c in token)

    def test_hash_is_stable_sha256(self):
        token = "abc"
        assert hash_token(token) == hash_token(token)
        assert len(hash_token(token)) == 64
        assert hash_token(token) != token


class TestAcceptUrl:
    """Unit tests for accept link building and parsing."""

    def test_build_accept_url(self):
        url = build_accept_url("https://app.acme.com/", "/invitations/accept", "tok-123")
        assert url == "https://app.acme.com/invitations/accept?token=tok-123"

    def test_parse_returns_token(self):
        token = generate_token()
        url = build_accept_url("https://app.acme.com", "/invitations/accept", token)
        assert parse_accept_url(url) == token

    @pytest.mark.parametrize(
        "url",
        [
            "https://app.acme.com/invitations/accept",
            "https://app.acme.com/invitations/accept?token=",
            "https://app.acme.com/invitations/accept?other=1",
        ],
    )
    def test_parse_without_token(self, url):
        assert parse_accept_url(url) is None
