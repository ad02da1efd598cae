"""Celery worker for invitation email delivery and the nightly expiry sweep.

Tasks enqueued from a membership operation carry that operation's
correlation ID in the `correlation_id` message header, so worker log lines
join up with the operation that caused them.
"""

from __future__ import annotations

import logging
import os
from contextvars import Token
from typing import Any

from celery import Celery
from celery.schedules import crontab
from celery.signals import task_postrun, task_prerun

from orgroster.core.request_context import (
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "correlation_id"

_task_tokens: dict[str, Token[str | None]] = {}

celery_app = Celery(
    "orgroster",
    broker=os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0"),
    backend=os.getenv("CELERY_RESULT_BACKEND", os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")),
    include=[
        "orgroster.tasks.notification_task",
        "orgroster.tasks.invitation_expiry_task",
    ],
)

celery_app.conf.update(
    timezone="UTC",
    enable_utc=True,
    task_serializer="json",
    accept_content=["json"],
    beat_schedule={
        # Pending invitations past their expiry become `expired`
        "invitation-expiry-daily": {
            "task": "orgroster.tasks.invitation_expiry_task.expire_stale_invitations",
            "schedule": crontab(hour=3, minute=0),
        }
    },
)


def correlation_headers() -> dict[str, str]:
    """Message headers propagating the current correlation ID, if any."""
    correlation_id = get_correlation_id()
    return {CORRELATION_HEADER: correlation_id} if correlation_id else {}


def _incoming_correlation_id(task: Any) -> str | None:
    request = getattr(task, "request", None)
    if request is None:
        return None
    value = getattr(request, CORRELATION_HEADER, None)
    if value:
        return value
    headers = getattr(request, "headers", None) or {}
    return headers.get(CORRELATION_HEADER)


@task_prerun.connect
def _bind_correlation_id(task_id: str | None = None, task: Any = None, **_: object) -> None:
    if not task_id:
        return
    correlation_id = _incoming_correlation_id(task) or task_id
    _task_tokens[task_id] = set_correlation_id(correlation_id)


@task_postrun.connect
def _unbind_correlation_id(task_id: str | None = None, **_: object) -> None:
    token = _task_tokens.pop(task_id, None) if task_id else None
    if token is None:
        return
    try:
        reset_correlation_id(token)
    except ValueError:
        # Token created in another context (eager execution); nothing to restore
        logger.debug("Correlation ID for task %s was bound in another context", task_id)
