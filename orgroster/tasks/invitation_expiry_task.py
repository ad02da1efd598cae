"""Celery task expiring invitations past their expiry date."""

import asyncio
import logging
import time

from orgroster.core.database import AsyncSessionLocal
from orgroster.core.structured_logging import log_json
from orgroster.services.invitation_service import InvitationService
from orgroster.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


async def run_expiry(session_factory=AsyncSessionLocal) -> int:
    """Expire stale pending invitations in one transaction."""
    async with session_factory() as session:
        try:
            expired = await InvitationService(session).expire_stale()
            await session.commit()
            return expired
        except Exception:
            await session.rollback()
            raise


@celery_app.task(name="orgroster.tasks.invitation_expiry_task.expire_stale_invitations")
def expire_stale_invitations() -> int:
    """Flip pending invitations past `expires_at` to `expired`.

    Runs daily via Celery Beat (see `orgroster.tasks.celery_app`).
    """

    started = time.perf_counter()
    log_json(logger, logging.INFO, "invitation_expiry_start")

    try:
        expired = asyncio.run(run_expiry())
    except Exception as exc:
        duration_ms = (time.perf_counter() - started) * 1000
        log_json(
            logger,
            logging.ERROR,
            "invitation_expiry_error",
            duration_ms=round(duration_ms, 2),
            error=str(exc),
            exception=exc.__class__.__name__,
        )
        raise

    duration_ms = (time.perf_counter() - started) * 1000
    log_json(
        logger,
        logging.INFO,
        "invitation_expiry_done",
        expired=expired,
        duration_ms=round(duration_ms, 2),
    )
    return expired
