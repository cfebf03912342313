"""Mailjet sender — delivers emails through the Mailjet v3.1 send API.

Selected with ``EMAIL_BACKEND=mailjet``.  Authentication uses the API key
and secret as HTTP basic credentials.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from otp_verify.config import Settings
from otp_verify.errors import EmailConfigurationError, EmailDeliveryError
from otp_verify.services.email_service import BaseEmailSender

logger = logging.getLogger(__name__)


class MailjetEmailSender(BaseEmailSender):
    """Async HTTP wrapper around ``POST /v3.1/send``."""

    def __init__(
        self,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(config)
        self._base_url = self._settings.mailjet_base_url.rstrip("/")
        self._transport = transport

    def _ensure_configured(self) -> None:
        if not self._settings.mailjet_api_key or not self._settings.mailjet_api_secret:
            raise EmailConfigurationError("Mailjet credentials are not configured.")
        if not self._settings.email_from:
            raise EmailConfigurationError("Mailjet sender address (EMAIL_FROM) is not configured.")

    def _build_message(
        self,
        to_email: str,
        subject: str,
        text_body: str | None,
        html_body: str | None,
    ) -> dict[str, Any]:
        message: dict[str, Any] = {
            "From": {
                "Email": self._settings.email_from,
                "Name": self._settings.email_from_name,
            },
            "To": [{"Email": to_email}],
            "Subject": subject,
            "CustomID": self._settings.mailjet_custom_id,
        }
        if text_body and text_body.strip():
            message["TextPart"] = text_body
        if html_body and html_body.strip():
            message["HTMLPart"] = html_body
        return message

    async def send_email(
        self,
        to_email: str,
        subject: str,
        text_body: str | None = None,
        html_body: str | None = None,
    ) -> None:
        self._ensure_configured()

        payload = {"Messages": [self._build_message(to_email, subject, text_body, html_body)]}
        url = f"{self._base_url}/v3.1/send"
        auth = (self._settings.mailjet_api_key, self._settings.mailjet_api_secret)

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=15.0) as client:
                resp = await client.post(
                    url,
                    json=payload,
                    auth=auth,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            logger.exception("Mailjet request error while sending %r to %s", subject, to_email)
            raise EmailDeliveryError(f"Mailjet request failed: {exc}") from exc

        if resp.is_success:
            logger.info("Mailjet accepted %r for %s", subject, to_email)
            return

        logger.error(
            "Mailjet responded with %s for %r to %s: %s",
            resp.status_code,
            subject,
            to_email,
            resp.text,
        )
        raise EmailDeliveryError(f"Mailjet rejected the request ({resp.status_code}).")
