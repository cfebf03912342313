"""Email service — delivers verification codes and transactional emails."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from email.message import EmailMessage
from email.utils import formataddr

import aiosmtplib

from otp_verify.config import Settings, settings
from otp_verify.errors import EmailConfigurationError, EmailDeliveryError

logger = logging.getLogger(__name__)


def build_otp_text(code: str, expires_at: datetime) -> str:
    """Plain-text body of the verification email."""
    expires = expires_at.astimezone(UTC)
    return (
        f"Your verification code is {code}. "
        f"It expires at {expires:%H:%M} UTC on {expires:%Y-%m-%d}."
    )


def build_otp_html(code: str, expires_at: datetime) -> str:
    """HTML body of the verification email."""
    expires = expires_at.astimezone(UTC)
    return (
        '<div style="font-family:Arial,sans-serif;font-size:16px;line-height:1.5">'
        "<p>Your verification code is:</p>"
        f'<p style="font-size:28px;font-weight:bold;letter-spacing:4px">{code}</p>'
        f"<p>This code expires at {expires:%H:%M} UTC on {expires:%Y-%m-%d}. "
        "If you did not request this code, you can safely ignore this email.</p>"
        "</div>"
    )


class BaseEmailSender(ABC):
    """Delivery contract used by the OTP engine and the welcome-email route.

    Implementations raise :class:`EmailConfigurationError` before touching
    the network when credentials or the sender address are missing, and
    :class:`EmailDeliveryError` when the transport fails.
    """

    def __init__(self, config: Settings | None = None) -> None:
        self._settings = config or settings

    async def send_otp(self, to_email: str, code: str, expires_at: datetime) -> None:
        """Send a verification code to *to_email*."""
        await self.send_email(
            to_email,
            self._settings.otp_email_subject,
            text_body=build_otp_text(code, expires_at),
            html_body=build_otp_html(code, expires_at),
        )

    @abstractmethod
    async def send_email(
        self,
        to_email: str,
        subject: str,
        text_body: str | None = None,
        html_body: str | None = None,
    ) -> None:
        """Send an arbitrary transactional email."""


class SmtpEmailSender(BaseEmailSender):
    """Sends emails using the configured SMTP server."""

    def _ensure_configured(self) -> None:
        if not self._settings.email_from:
            raise EmailConfigurationError("EMAIL_FROM is not configured.")
        if not self._settings.smtp_host:
            raise EmailConfigurationError("SMTP_HOST is not configured.")

    async def send_email(
        self,
        to_email: str,
        subject: str,
        text_body: str | None = None,
        html_body: str | None = None,
    ) -> None:
        """Send a message over SMTP.

        Parameters
        ----------
        to_email:
            Recipient email address.
        subject:
            Subject line.
        text_body, html_body:
            Message parts; the HTML part is attached as an alternative
            when both are given.
        """
        self._ensure_configured()

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((self._settings.email_from_name, self._settings.email_from))
        msg["To"] = to_email
        if text_body:
            msg.set_content(text_body)
            if html_body:
                msg.add_alternative(html_body, subtype="html")
        elif html_body:
            msg.set_content(html_body, subtype="html")

        logger.info("Sending email %r to %s", subject, to_email)

        try:
            await aiosmtplib.send(
                msg,
                hostname=self._settings.smtp_host,
                port=self._settings.smtp_port,
                username=self._settings.smtp_username or None,
                password=self._settings.smtp_password or None,
                start_tls=self._settings.smtp_start_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("SMTP delivery to %s failed: %s", to_email, exc)
            raise EmailDeliveryError(f"SMTP delivery failed: {exc}") from exc

        logger.info("Email sent to %s", to_email)


def build_email_sender(config: Settings | None = None) -> BaseEmailSender:
    """Create the sender selected by ``EMAIL_BACKEND``."""
    config = config or settings
    backend = config.email_backend.lower()
    if backend == "smtp":
        return SmtpEmailSender(config)
    if backend == "mailjet":
        from otp_verify.services.mailjet import MailjetEmailSender

        return MailjetEmailSender(config)
    raise EmailConfigurationError(f"Unknown email backend: {config.email_backend!r}")
