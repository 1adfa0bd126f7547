"""Email delivery for queued notification jobs."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Iterable, List, Optional, Sequence, Union

from app.core.config import Settings

logger = logging.getLogger(__name__)


class EmailNotificationService:
    """Lightweight SMTP helper for system notifications."""

    def __init__(self, settings: Settings):
        self._settings = settings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def send_email(
        self,
        to: Union[str, Sequence[str], None],
        subject: str,
        body: str,
        body_html: Optional[str] = None,
    ) -> bool:
        """Send a plain-text (optionally multipart) email.

        Args:
            to: One address, a list of addresses, or None for NOTIFICATION_EMAILS.
            subject: Subject line.
            body: Plain-text body.
            body_html: Optional HTML alternative.

        Returns:
            False when SMTP is not configured or there is nobody to send to.

        Raises:
            smtplib.SMTPException / OSError: Delivery failed; the job runner retries.
        """
        if not self._ready():
            logger.warning("SMTP configuration incomplete; email '%s' skipped", subject)
            return False

        recipients = [to] if isinstance(to, str) else to
        to_addresses = self._resolve_recipients(recipients)
        if not to_addresses:
            logger.warning("No recipients configured for email '%s'; skipping", subject)
            return False

        message = self._build_message(subject, to_addresses, body, body_html)
        await self._dispatch(message)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _ready(self) -> bool:
        settings = self._settings
        return bool(settings.SMTP_HOST and settings.SMTP_USERNAME and settings.SMTP_PASSWORD)

    def _resolve_recipients(self, override: Optional[Sequence[str]]) -> List[str]:
        recipients: Iterable[str] = override if override else self._settings.NOTIFICATION_EMAILS
        return [email.strip() for email in recipients if email]

    def _build_message(
        self,
        subject: str,
        to_addresses: Sequence[str],
        body_text: str,
        body_html: Optional[str] = None,
    ) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self._formatted_from_address
        message["To"] = ", ".join(sorted(set(to_addresses)))
        message.set_content(body_text)
        if body_html:
            message.add_alternative(body_html, subtype="html")
        return message

    @property
    def _formatted_from_address(self) -> str:
        from_email = self._settings.SMTP_FROM_EMAIL or self._settings.SMTP_USERNAME
        from_name = self._settings.SMTP_FROM_NAME or "Storefront Sync"
        return formataddr((from_name, from_email))

    async def _dispatch(self, message: EmailMessage) -> None:
        await asyncio.to_thread(self._send_sync, message)
        logger.info("Email '%s' sent to %s", message["Subject"], message["To"])

    def _send_sync(self, message: EmailMessage) -> None:
        settings = self._settings
        host = settings.SMTP_HOST
        port = settings.SMTP_PORT or (465 if settings.SMTP_USE_SSL else 587)
        timeout = settings.SMTP_TIMEOUT

        if settings.SMTP_USE_SSL:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=timeout)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=timeout)
        try:
            if settings.SMTP_USE_TLS and not settings.SMTP_USE_SSL:
                smtp.starttls()

            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            smtp.send_message(message)
        finally:
            try:
                smtp.quit()
            except smtplib.SMTPException:
                smtp.close()
