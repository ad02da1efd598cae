"""Correlation context utilities.

Used for propagating a correlation ID into logs across a caller's request,
the membership operation it triggers and the Celery tasks it enqueues.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from uuid import uuid4

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Get the current correlation ID (if any)."""

    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str | None) -> Token[str | None]:
    """Set the current correlation ID and return the reset token."""

    return _correlation_id_var.set(correlation_id)


def reset_correlation_id(token: Token[str | None]) -> None:
    """Reset the correlation ID to the previous value using the token."""

    _correlation_id_var.reset(token)


def new_correlation_id() -> str:
    """Generate a new correlation ID."""

    return str(uuid4())


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Iterator[str]:
    """Bind a correlation ID for the duration, reusing an outer one if present."""

    current = correlation_id or get_correlation_id() or new_correlation_id()
    token = set_correlation_id(current)
    try:
        yield current
    finally:
        reset_correlation_id(token)
