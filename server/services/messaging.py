"""Outbound SMS (Twilio) and email (SMTP) delivery.

Both senders fall back to a log-only backend when their provider is not
configured, which keeps local development free of external accounts.
Provider failures surface as DeliveryFailed.
"""

import asyncio
import re
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage as MimeMessage
from typing import Optional

from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

from core.config import Settings
from core.exceptions import DeliveryFailed
from core.logging import get_logger, mask_phone

logger = get_logger(__name__)

LOG_BACKEND_ID = "log"


def _mask_codes(text: str) -> str:
    return re.sub(r"\b\d{4,8}\b", lambda m: "*" * len(m.group(0)), text)


class SmsSender:
    """Sends SMS through Twilio's REST API."""

    def __init__(self, settings: Settings, client: Optional[TwilioClient] = None):
        self.settings = settings
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client is not None or self.settings.twilio_enabled

    @property
    def client(self) -> TwilioClient:
        if self._client is None:
            self._client = TwilioClient(
                self.settings.twilio_account_sid,
                self.settings.twilio_auth_token
            )
        return self._client

    async def send(self, to: str, body: str) -> str:
        """Send a message and return the provider's delivery id."""
        if not self.enabled:
            logger.info("SMS log backend", to=mask_phone(to), body=_mask_codes(body))
            return LOG_BACKEND_ID

        try:
            message = await asyncio.to_thread(
                self.client.messages.create,
                from_=self.settings.twilio_phone_number,
                to=to,
                body=body
            )
        except (TwilioException, OSError) as e:
            logger.error("SMS delivery failed", to=mask_phone(to), error=str(e))
            raise DeliveryFailed("sms", str(e)) from e

        logger.info("SMS sent", to=mask_phone(to), sid=message.sid)
        return message.sid


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    text: str
    html: Optional[str] = None


class EmailSender:
    """Sends email over SMTP in a worker thread."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return bool(self.settings.smtp_host)

    def _build(self, message: EmailMessage) -> MimeMessage:
        mime = MimeMessage()
        mime["From"] = self.settings.email_from
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime.set_content(message.text)
        if message.html:
            mime.add_alternative(message.html, subtype="html")
        return mime

    def _deliver(self, mime: MimeMessage) -> None:
        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=10) as smtp:
            if self.settings.smtp_use_tls:
                smtp.starttls()
            if self.settings.smtp_username:
                smtp.login(self.settings.smtp_username, self.settings.smtp_password or "")
            smtp.send_message(mime)

    async def send(self, message: EmailMessage) -> None:
        if not self.enabled:
            logger.info("Email log backend", to=message.to, subject=message.subject)
            return

        try:
            await asyncio.to_thread(self._deliver, self._build(message))
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email delivery failed", to=message.to, error=str(e))
            raise DeliveryFailed("email", str(e)) from e

        logger.info("Email sent", to=message.to, subject=message.subject)
