"""Email sender interface and implementations.

Senders never raise: provider failures come back as EmailResult(sent=False, error=...)
so callers can apply the in-app fallback.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Content, Email, Mail, To

from notifyhub.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class EmailResult:
    """Outcome of one send."""
    sent: bool
    error: Optional[str] = None


class EmailSender(ABC):
    """Email sender interface."""

    @abstractmethod
    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> EmailResult:
        """Send one email."""
        pass


class ConsoleEmailSender(EmailSender):
    """Console email sender (logs instead of sending; local development)."""

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> EmailResult:
        logger.info("[EMAIL] To: %s | Subject: %s", to_email, subject)
        if text_content:
            logger.debug("[EMAIL] Body:\n%s", text_content)
        return EmailResult(sent=True)


class SendGridEmailSender(EmailSender):
    """SendGrid email sender for production email sending."""

    def __init__(self, api_key: str, from_email: str, from_name: str):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self._client = SendGridAPIClient(api_key)

    def _send_sync(self, message: Mail):
        return self._client.send(message)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> EmailResult:
        message = Mail(
            from_email=Email(self.from_email, self.from_name),
            to_emails=To(to_email),
            subject=subject,
            html_content=Content("text/html", html_content),
        )
        if text_content:
            message.add_content(Content("text/plain", text_content))
        try:
            # The SendGrid client is blocking; keep it off the event loop.
            response = await asyncio.to_thread(self._send_sync, message)
        except Exception as e:
            logger.error("[EMAIL] Error sending %r to %s: %s", subject, to_email, e)
            return EmailResult(sent=False, error=str(e))

        if response.status_code in (200, 201, 202):
            logger.info("[EMAIL] Sent %r to %s (status: %s)", subject, to_email, response.status_code)
            return EmailResult(sent=True)
        error = f"SendGrid API returned status {response.status_code}"
        logger.error("[EMAIL] Failed to send %r to %s: %s", subject, to_email, error)
        return EmailResult(sent=False, error=error)


def get_email_sender(settings: Settings) -> EmailSender:
    """Get the email sender selected by configuration."""
    if settings.use_sendgrid:
        return SendGridEmailSender(
            api_key=settings.sendgrid_api_key,
            from_email=settings.email_from_address,
            from_name=settings.email_from_name,
        )
    if settings.email_provider == "sendgrid":
        logger.warning("[EMAIL] SendGrid selected but SENDGRID_API_KEY is empty; using console email sender")
    return ConsoleEmailSender()
