"""Email delivery via SMTP or the Resend API."""

import asyncio
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any

import httpx

from smart_cart_recovery.core.config import Settings, settings
from smart_cart_recovery.schemas.recovery import RecoverySettings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
SMTP_TIMEOUT_SECONDS = 30


class EmailService:
    """Sends HTML emails.

    Uses the SMTP server from the recovery settings when SMTP is enabled,
    otherwise the Resend API.
    """

    def __init__(self, recovery_settings: RecoverySettings, site: Settings = settings) -> None:
        self.recovery_settings = recovery_settings
        self.site = site

    @property
    def from_address(self) -> str:
        """Configured sender, falling back to the site name and admin email."""
        name = self.recovery_settings.from_name or self.site.site_name
        email = self.recovery_settings.from_email or self.site.admin_email
        return formataddr((name, email))

    async def send(self, to_email: str, subject: str, html_content: str) -> bool:
        """Send an HTML email. Returns True if the transport accepted it."""
        if self.recovery_settings.smtp_enabled:
            return await self._send_smtp(to_email, subject, html_content)
        return await self._send_resend(to_email, subject, html_content)

    async def _send_resend(self, to_email: str, subject: str, html_content: str) -> bool:
        payload: dict[str, Any] = {
            "from": self.from_address,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        if not self.site.resend_api_key:
            logger.warning("Resend API key not configured, email not sent to %s", to_email)
            return False

        try:
            async with httpx.AsyncClient(timeout=15.0) as client:
                response = await client.post(
                    RESEND_API_URL,
                    headers={
                        "Authorization": f"Bearer {self.site.resend_api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
                if response.is_success:
                    email_id = response.json().get("id")
                    logger.info("Email sent via Resend: to=%s id=%s", to_email, email_id)
                    return True
                logger.error(
                    "Failed to send email: to=%s status=%s body=%s",
                    to_email,
                    response.status_code,
                    response.text[:500],
                )
                return False
        except httpx.HTTPError:
            logger.exception("Error sending email to %s", to_email)
            return False

    async def _send_smtp(self, to_email: str, subject: str, html_content: str) -> bool:
        if not self.recovery_settings.smtp_host:
            logger.warning("SMTP enabled without a host, email not sent to %s", to_email)
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_address
        msg["To"] = to_email
        msg.attach(MIMEText(html_content, "html", "utf-8"))

        try:
            await asyncio.to_thread(self._deliver_smtp, msg)
        except (smtplib.SMTPException, OSError):
            logger.exception(
                "SMTP delivery failed: host=%s to=%s", self.recovery_settings.smtp_host, to_email
            )
            return False

        logger.info("Email sent via SMTP: to=%s", to_email)
        return True

    def _deliver_smtp(self, msg: MIMEMultipart) -> None:
        config = self.recovery_settings
        context = ssl.create_default_context()

        server: smtplib.SMTP
        if config.smtp_encryption == "ssl":
            server = smtplib.SMTP_SSL(
                config.smtp_host, config.smtp_port, timeout=SMTP_TIMEOUT_SECONDS, context=context
            )
        else:
            server = smtplib.SMTP(config.smtp_host, config.smtp_port, timeout=SMTP_TIMEOUT_SECONDS)

        with server:
            if config.smtp_encryption == "tls":
                server.starttls(context=context)
            if config.smtp_username:
                server.login(config.smtp_username, config.smtp_password)
            server.send_message(msg)
