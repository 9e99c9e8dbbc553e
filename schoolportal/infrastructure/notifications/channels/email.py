# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Email notification channel using async SMTP.

Sends multipart (plain text + HTML) emails with aiosmtplib. The channel is
disabled, every send returning SKIPPED, when no SMTP host is configured.
"""

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid

import aiosmtplib

from schoolportal.core.config.settings import SMTPSettings
from schoolportal.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    NotificationPayload,
)

logger = logging.getLogger(__name__)


class EmailChannel(BaseChannel):
    """Email notification channel using async SMTP."""

    def __init__(self, settings: SMTPSettings) -> None:
        """Initialize the email channel.

        Args:
            settings: SMTP settings.
        """
        super().__init__()
        self._settings = settings
        if not settings.is_configured:
            self.logger.warning("Email notifications disabled: SMTP_HOST not set")

    @property
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        return ChannelType.EMAIL

    async def send(self, payload: NotificationPayload) -> ChannelResult:
        """Send an email via SMTP.

        Args:
            payload: The notification payload (title is the subject).

        Returns:
            ChannelResult with delivery status.
        """
        if not self._settings.is_configured:
            return self.skipped("Email channel not configured")

        if not payload.recipient_email:
            return self.skipped("No recipient email address")

        message = self._build_email_message(payload)
        try:
            await aiosmtplib.send(
                message,
                hostname=self._settings.host,
                port=self._settings.port,
                username=self._settings.username or None,
                password=self._settings.password.get_secret_value() or None,
                start_tls=self._settings.use_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            self.logger.error(
                "Failed to send email to %s: %s",
                payload.recipient_email,
                str(e),
                exc_info=True,
            )
            return self.failed(f"SMTP error: {e}")

        self.logger.info("Email sent to %s: %s", payload.recipient_email, payload.title)
        return self.sent(message_id=message["Message-ID"])

    async def send_email(
        self,
        to: str,
        subject: str,
        text: str,
        html: str | None = None,
    ) -> ChannelResult:
        """Send a single email."""
        return await self.send(
            NotificationPayload(title=subject, body=text, html=html, recipient_email=to)
        )

    def _build_email_message(self, payload: NotificationPayload) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["From"] = formataddr((self._settings.from_name, self._settings.from_email))
        message["To"] = payload.recipient_email or ""
        message["Subject"] = payload.title
        message["Message-ID"] = make_msgid()
        message.attach(MIMEText(payload.body, "plain", "utf-8"))
        if payload.html:
            message.attach(MIMEText(payload.html, "html", "utf-8"))
        return message
