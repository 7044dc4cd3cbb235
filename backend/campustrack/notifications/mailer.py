"""HTTP mail relay client.

Posts rendered emails as JSON ({from, to, subject, html}) to the relay at
MAILSERVER_URL. Implements EmailSenderPort for the retention engine.
"""

import logging
from typing import Optional

import httpx

from ..domain.retention.ports import EmailSenderPort

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when an email could not be handed to the relay."""
    pass


class HttpMailer(EmailSenderPort):
    """EmailSenderPort adapter posting to an HTTP mail relay.

    Example:
        mailer = HttpMailer(
            url=settings.MAILSERVER_URL,
            sender=settings.EMAIL_FROM,
            timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
        )
        mailer.send_email("owner@campus.edu", "Subject", "<p>Hi</p>")
    """

    def __init__(
        self,
        url: Optional[str],
        sender: str,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize mailer.

        Args:
            url: Relay endpoint; None leaves the mailer unconfigured and every
                send raises EmailDeliveryError
            sender: From header value
            timeout: Seconds to wait for the relay
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.url = url
        self.sender = sender
        self.timeout = timeout
        self._transport = transport

    def send_email(self, to: str, subject: str, html: str) -> None:
        if not self.url:
            raise EmailDeliveryError("MAILSERVER_URL is not configured")

        payload = {
            "from": self.sender,
            "to": to,
            "subject": subject,
            "html": html,
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.url, json=payload)
        except httpx.TimeoutException as e:
            raise EmailDeliveryError(f"Mail relay timed out after {self.timeout}s: {e}")
        except httpx.RequestError as e:
            raise EmailDeliveryError(f"Mail relay unavailable: {e}")

        if not response.is_success:
            raise EmailDeliveryError(
                f"Failed to send email, status code: {response.status_code}"
            )

        logger.info(f"Email sent to {to}")
