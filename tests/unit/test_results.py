"""Unit tests for typed errors and action results."""

import pytest

from orgroster.core.errors import (
    ConflictError,
    CriticalError,
    ExpiredError,
    MembershipError,
    NotAuthenticatedError,
    NotAuthorizedError,
    NotFoundError,
    ValidationFailedError,
)
from orgroster.schemas.errors import ActionResult, ErrorResponse


@pytest.mark.parametrize(
    "error_cls,code",
    [
        (NotAuthenticatedError, "not_authenticated"),
        (NotAuthorizedError, "not_authorized"),
        (NotFoundError, "not_found"),
        (ConflictError, "conflict"),
        (ExpiredError, "expired"),
        (ValidationFailedError, "validation_error"),
        (CriticalError, "critical"),
    ],
)
def test_error_codes(error_cls, code):
    error = error_cls("boom", {"id": "1"})
    assert isinstance(error, MembershipError)
    assert error.code == code
    assert error.message == "boom"
    assert error.details == {"id": "1"}
    assert str(error) == "boom"


def test_only_expired_persists_changes():
    assert ExpiredError.persist_changes
    for error_cls in (NotAuthorizedError, NotFoundError, ConflictError, CriticalError):
        assert not error_cls.persist_changes


def test_ok_result():
    result = ActionResult.ok({"id": 1})
    assert result.success
    assert result.data == {"id": 1}
    assert result.error is None
    assert not result.requires_support


def test_fail_result():
    result = ActionResult.fail("not_found", "Organization not found")
    assert not result.success
    assert result.data is None
    assert result.error == ErrorResponse(error="not_found", message="Organization not found")
    assert not result.requires_support


def test_critical_requires_support():
    result = ActionResult.fail("critical", "Please contact support.", {"invitation_id": "x"})
    assert result.requires_support
    assert result.error.details == {"invitation_id": "x"}
