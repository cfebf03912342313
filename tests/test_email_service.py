"""Tests for the SMTP and Mailjet email senders."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import aiosmtplib
import httpx
import pytest

from otp_verify.config import Settings
from otp_verify.errors import EmailConfigurationError, EmailDeliveryError
from otp_verify.services.email_service import (
    SmtpEmailSender,
    build_email_sender,
    build_otp_text,
)
from otp_verify.services.mailjet import MailjetEmailSender

EXPIRES = datetime(2026, 10, 18, 12, 5, tzinfo=UTC)


def make_settings(**overrides) -> Settings:
    values = {
        "email_from": "noreply@example.com",
        "mailjet_api_key": "key",
        "mailjet_api_secret": "secret",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_otp_text_mentions_code_and_expiry():
    text = build_otp_text("042042", EXPIRES)
    assert "042042" in text
    assert "12:05 UTC on 2026-10-18" in text


def test_build_email_sender_selects_backend():
    assert isinstance(build_email_sender(make_settings(email_backend="smtp")), SmtpEmailSender)
    assert isinstance(build_email_sender(make_settings(email_backend="mailjet")), MailjetEmailSender)
    with pytest.raises(EmailConfigurationError):
        build_email_sender(make_settings(email_backend="pigeon"))


# ── SMTP ─────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_smtp_sends_multipart_message():
    sender = SmtpEmailSender(make_settings())
    with patch("otp_verify.services.email_service.aiosmtplib.send", AsyncMock()) as send:
        await sender.send_otp("alice@example.com", "042042", EXPIRES)

    msg = send.call_args.args[0]
    assert msg["To"] == "alice@example.com"
    assert msg["Subject"] == "Your verification code"
    assert "noreply@example.com" in msg["From"]
    assert msg.is_multipart()
    assert "042042" in msg.get_body(("plain",)).get_content()


@pytest.mark.asyncio
async def test_smtp_failure_becomes_delivery_error():
    sender = SmtpEmailSender(make_settings())
    failing = AsyncMock(side_effect=aiosmtplib.SMTPException("relay refused"))
    with patch("otp_verify.services.email_service.aiosmtplib.send", failing):
        with pytest.raises(EmailDeliveryError):
            await sender.send_email("alice@example.com", "Hi", text_body="Hello")


@pytest.mark.asyncio
async def test_smtp_requires_sender_address():
    sender = SmtpEmailSender(make_settings(email_from=""))
    with patch("otp_verify.services.email_service.aiosmtplib.send", AsyncMock()) as send:
        with pytest.raises(EmailConfigurationError):
            await sender.send_email("alice@example.com", "Hi", text_body="Hello")
    send.assert_not_called()


# ── Mailjet ──────────────────────────────────────────────

@pytest.mark.asyncio
async def test_mailjet_posts_send_payload():
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"Messages": [{"Status": "success"}]})

    sender = MailjetEmailSender(make_settings(), transport=httpx.MockTransport(handler))
    await sender.send_otp("alice@example.com", "042042", EXPIRES)

    request = captured[0]
    assert request.url == "https://api.mailjet.com/v3.1/send"
    assert request.headers["authorization"].startswith("Basic ")
    message = json.loads(request.content)["Messages"][0]
    assert message["To"] == [{"Email": "alice@example.com"}]
    assert message["From"]["Email"] == "noreply@example.com"
    assert message["CustomID"] == "OtpVerification"
    assert "042042" in message["TextPart"]
    assert "042042" in message["HTMLPart"]


@pytest.mark.asyncio
async def test_mailjet_omits_empty_parts():
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200)

    sender = MailjetEmailSender(make_settings(), transport=httpx.MockTransport(handler))
    await sender.send_email("alice@example.com", "Welcome", text_body="Hello", html_body="  ")

    message = json.loads(captured[0].content)["Messages"][0]
    assert message["TextPart"] == "Hello"
    assert "HTMLPart" not in message


@pytest.mark.asyncio
async def test_mailjet_rejection_becomes_delivery_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(401, text="unauthorized"))
    sender = MailjetEmailSender(make_settings(), transport=transport)
    with pytest.raises(EmailDeliveryError):
        await sender.send_email("alice@example.com", "Hi", text_body="Hello")


@pytest.mark.asyncio
async def test_mailjet_transport_error_becomes_delivery_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    sender = MailjetEmailSender(make_settings(), transport=httpx.MockTransport(handler))
    with pytest.raises(EmailDeliveryError):
        await sender.send_email("alice@example.com", "Hi", text_body="Hello")


@pytest.mark.asyncio
async def test_mailjet_requires_credentials():
    sender = MailjetEmailSender(make_settings(mailjet_api_secret=""))
    with pytest.raises(EmailConfigurationError):
        await sender.send_email("alice@example.com", "Hi", text_body="Hello")
