"""Celery task delivering invitation emails over SMTP."""

import logging

from orgroster.core.config import get_settings
from orgroster.core.metrics import observe_notification
from orgroster.core.structured_logging import log_json
from orgroster.schemas.invitation import InvitationEmail
from orgroster.services.notification_service import SmtpNotifier
from orgroster.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="orgroster.tasks.notification_task.send_invitation_email")
def send_invitation_email(payload: dict) -> bool:
    """Send one invitation email; failures are logged, not retried by Celery."""

    email = InvitationEmail.model_validate(payload)
    notifier = SmtpNotifier.from_settings(get_settings())
    delivered = notifier.send_sync(email)
    observe_notification(delivered=delivered)
    log_json(
        logger,
        logging.INFO if delivered else logging.WARNING,
        "invitation_email_sent" if delivered else "invitation_email_failed",
        to=email.to,
        organization_name=email.organization_name,
    )
    return delivered
