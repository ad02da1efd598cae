"""Invitation email notifiers and the fire-and-forget dispatcher.

Delivery is best-effort: a failed or raising notifier is logged and
counted, never surfaced to the operation that triggered it.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import time
from contextlib import contextmanager
from email.mime.text import MIMEText
from typing import Protocol

from orgroster.core.config import Settings, get_settings
from orgroster.core.metrics import observe_notification
from orgroster.core.structured_logging import log_json
from orgroster.models.base import as_utc
from orgroster.schemas.invitation import InvitationEmail

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(self, email: InvitationEmail) -> bool:
        """Deliver one invitation email; return False on failure."""


def render_invitation_text(email: InvitationEmail) -> tuple[str, str]:
    """Return (subject, plain-text body) for an invitation email."""
    subject = f"You have been invited to join {email.organization_name}"
    inviter = f"{email.inviter_email} has invited you" if email.inviter_email else "You have been invited"
    body = (
        f"{inviter} to join {email.organization_name} as {email.role.value}.\n\n"
        f"Accept the invitation: {email.accept_url}"
    )
    if email.expires_at is not None:
        expires = as_utc(email.expires_at).strftime("%Y-%m-%d %H:%M UTC")
        body += f"\n\nThis link expires on {expires}."
    return subject, body


class LoggingNotifier:
    """Writes the invitation to the log instead of sending it (development)."""

    async def send(self, email: InvitationEmail) -> bool:
        log_json(
            logger,
            logging.INFO,
            "invitation_email",
            to=email.to,
            organization_name=email.organization_name,
            role=email.role.value,
            accept_url=email.accept_url,
        )
        return True


class SmtpNotifier:
    """SMTP delivery with bounded retries, run in a worker thread."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        username: str,
        password: str,
        sender: str,
        use_ssl: bool = False,
        max_retries: int = 3,
        retry_delay: float = 3,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_ssl = use_ssl
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    @classmethod
    def from_settings(cls, settings: Settings) -> SmtpNotifier:
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.smtp_from,
            use_ssl=settings.smtp_use_ssl,
            max_retries=settings.smtp_max_retries,
        )

    @contextmanager
    def _connection(self):
        """Context-managed SMTP connection."""
        if self.use_ssl:
            server = smtplib.SMTP_SSL(self.smtp_host, self.smtp_port)
        else:
            server = smtplib.SMTP(self.smtp_host, self.smtp_port)
        try:
            if not self.use_ssl and self.username:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            yield server
        finally:
            try:
                server.quit()
            except smtplib.SMTPException as exc:
                logger.warning("Error closing SMTP connection: %s", exc)

    def _build_message(self, email: InvitationEmail) -> MIMEText:
        subject, body = render_invitation_text(email)
        msg = MIMEText(body, "plain")
        msg["From"] = self.sender
        msg["To"] = email.to
        msg["Subject"] = subject
        return msg

    def send_sync(self, email: InvitationEmail) -> bool:
        """Send with retries; authentication failures are not retried."""
        msg = self._build_message(email)

        for attempt in range(1, self.max_retries + 1):
            try:
                with self._connection() as server:
                    server.sendmail(self.sender, [email.to], msg.as_string())
                return True
            except smtplib.SMTPAuthenticationError as exc:
                log_json(logger, logging.ERROR, "smtp_auth_failed", exc_info=exc, to=email.to)
                return False
            except (smtplib.SMTPException, OSError) as exc:
                log_json(
                    logger,
                    logging.WARNING,
                    "smtp_attempt_failed",
                    attempt=attempt,
                    to=email.to,
                    error=str(exc),
                )
                if attempt < self.max_retries:
                    time.sleep(self.retry_delay)

        return False

    async def send(self, email: InvitationEmail) -> bool:
        return await asyncio.to_thread(self.send_sync, email)


class CeleryNotifier:
    """Hands delivery to the `send_invitation_email` Celery task."""

    async def send(self, email: InvitationEmail) -> bool:
        # Imported lazily: the task module builds an SmtpNotifier from this module
        from orgroster.tasks.celery_app import correlation_headers
        from orgroster.tasks.notification_task import send_invitation_email

        send_invitation_email.apply_async(
            args=[email.model_dump(mode="json")], headers=correlation_headers()
        )
        return True


def get_notifier(settings: Settings | None = None) -> Notifier:
    """Build the notifier selected by NOTIFICATION_BACKEND."""
    settings = settings or get_settings()
    if settings.notification_backend == "smtp":
        return SmtpNotifier.from_settings(settings)
    if settings.notification_backend == "celery":
        return CeleryNotifier()
    return LoggingNotifier()


class NotificationDispatcher:
    """Schedules notifier calls as background tasks.

    Holds strong references to in-flight tasks until they finish so they
    are not garbage collected mid-send.
    """

    def __init__(self, notifier: Notifier):
        self.notifier = notifier
        self._pending: set[asyncio.Task[bool]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, email: InvitationEmail) -> asyncio.Task[bool]:
        """Start delivering `email` without waiting for it."""
        task = asyncio.create_task(self._deliver(email))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every in-flight delivery (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _deliver(self, email: InvitationEmail) -> bool:
        try:
            delivered = await self.notifier.send(email)
        except Exception as exc:  # noqa: BLE001 - delivery must never fail the caller
            log_json(
                logger,
                logging.WARNING,
                "notification_failed",
                exc_info=exc,
                to=email.to,
                organization_name=email.organization_name,
            )
            delivered = False
        else:
            if not delivered:
                log_json(
                    logger,
                    logging.WARNING,
                    "notification_failed",
                    to=email.to,
                    organization_name=email.organization_name,
                )

        observe_notification(delivered=delivered)
        return delivered
