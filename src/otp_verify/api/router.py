"""HTTP routes for OTP issuance, verification and transactional email.

Endpoints
---------
POST /otp/send        → email a new code (202, 429 on quota, 502 on delivery)
POST /otp/verify      → check a code (200 valid, 400 invalid)
POST /email/welcome   → send a transactional email (202, 502 on delivery)
"""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from otp_verify.api.schemas import (
    OtpSendResponse,
    OtpVerifyResponse,
    SendOtpRequest,
    VerifyOtpRequest,
    WelcomeEmailRequest,
)
from otp_verify.config import settings
from otp_verify.database.engine import get_session
from otp_verify.database.repository import OtpRepository
from otp_verify.errors import (
    EmailConfigurationError,
    EmailDeliveryError,
    OtpRateLimitExceededError,
)
from otp_verify.services.email_service import BaseEmailSender, build_email_sender
from otp_verify.services.otp_service import OtpService
from otp_verify.services.quota import BaseQuotaTracker, InMemoryQuotaTracker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["otp"])

# Shared quota tracker (process-wide, in-memory)
_quota_tracker = InMemoryQuotaTracker(daily_limit=settings.otp_daily_limit)


# ── Dependencies ─────────────────────────────────────────

def get_quota_tracker() -> BaseQuotaTracker:
    return _quota_tracker


def get_email_sender() -> BaseEmailSender:
    return build_email_sender(settings)


async def get_otp_service(
    session: AsyncSession = Depends(get_session),
    email_sender: BaseEmailSender = Depends(get_email_sender),
    quota_tracker: BaseQuotaTracker = Depends(get_quota_tracker),
) -> OtpService:
    return OtpService(
        repository=OtpRepository(session),
        email_sender=email_sender,
        quota_tracker=quota_tracker,
        lifetime=timedelta(minutes=settings.otp_lifetime_minutes),
        otp_type=settings.otp_type,
        code_length=settings.otp_length,
    )


def client_ip(request: Request) -> str | None:
    """Origin of the request, honouring ``X-Forwarded-For`` when trusted."""
    if settings.trust_forwarded_headers:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else None


# ── Endpoints ────────────────────────────────────────────

@router.post(
    "/otp/send",
    response_model=OtpSendResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def send_otp(
    body: SendOtpRequest,
    request: Request,
    service: OtpService = Depends(get_otp_service),
):
    """Generate a code for the email address and deliver it."""
    try:
        expires_at = await service.send_otp(
            body.email,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except OtpRateLimitExceededError as exc:
        logger.warning("OTP daily quota exceeded for %s (%s)", body.email, exc.scope)
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc))
    except (EmailDeliveryError, EmailConfigurationError) as exc:
        logger.warning("Unable to send OTP email for %s: %s", body.email, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to send OTP email."
        )
    except Exception:
        logger.exception("Unexpected failure while sending OTP email for %s", body.email)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unexpected error while sending OTP.",
        )

    return OtpSendResponse(email=body.email, expires_at=expires_at)


@router.post("/otp/verify", response_model=OtpVerifyResponse)
async def verify_otp(
    body: VerifyOtpRequest,
    service: OtpService = Depends(get_otp_service),
):
    """Validate a code for the email address."""
    result = await service.verify_otp(body.email, body.code)
    if result.is_valid:
        return OtpVerifyResponse(email=body.email, verified=True)

    payload = OtpVerifyResponse(email=body.email, verified=False, error=result.message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content=payload.model_dump(mode="json")
    )


@router.post("/email/welcome", status_code=status.HTTP_202_ACCEPTED)
async def send_welcome_email(
    body: WelcomeEmailRequest,
    email_sender: BaseEmailSender = Depends(get_email_sender),
) -> Response:
    """Send a transactional (non-OTP) email."""
    try:
        await email_sender.send_email(
            body.email, body.subject, text_body=body.text_body, html_body=body.html_body
        )
    except (EmailDeliveryError, EmailConfigurationError) as exc:
        logger.warning("Unable to send welcome email for %s: %s", body.email, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to send welcome email."
        )
    except Exception:
        logger.exception("Unexpected failure while sending welcome email for %s", body.email)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unexpected error while sending welcome email.",
        )

    return Response(status_code=status.HTTP_202_ACCEPTED)
