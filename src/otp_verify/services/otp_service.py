"""OTP service — issues verification codes by email and checks them."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractContextManager, nullcontext
from datetime import UTC, datetime, timedelta

from otp_verify.database.repository import BaseOtpRepository
from otp_verify.errors import OtpStorageError
from otp_verify.models.verification import InvalidReason, VerificationResult
from otp_verify.services.codes import (
    OTP_LENGTH,
    codes_match,
    device_signature,
    generate_code,
    hash_code,
)
from otp_verify.services.email_service import BaseEmailSender
from otp_verify.services.quota import BaseQuotaTracker, QuotaScope, Reservation

logger = logging.getLogger(__name__)

OTP_LIFETIME = timedelta(minutes=5)
# Single OTP kind; the record store knows it as the "register" bucket.
OTP_TYPE = "register"


def utc_now() -> datetime:
    return datetime.now(UTC)


def _raise_if_cancelled() -> None:
    task = asyncio.current_task()
    if task is not None and task.cancelling():
        raise asyncio.CancelledError()


def _is_own_cancellation() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


class OtpService:
    """Issues and verifies email OTPs.

    Flow
    ----
    ``send_otp``
        Reserve today's quota for the email (and the device, when the
        request carries an origin or an agent), persist the hashed code,
        email the plaintext code, then commit the reservations.  Any
        failure after the insert deletes the record again; uncommitted
        reservations are always given back.
    ``verify_otp``
        Load the newest unused record, finalize it if it expired, compare
        digests in constant time, and on a match delete every record for
        the email.
    """

    def __init__(
        self,
        repository: BaseOtpRepository,
        email_sender: BaseEmailSender,
        quota_tracker: BaseQuotaTracker,
        clock: Callable[[], datetime] = utc_now,
        lifetime: timedelta = OTP_LIFETIME,
        otp_type: str = OTP_TYPE,
        code_length: int = OTP_LENGTH,
    ) -> None:
        self._repository = repository
        self._email_sender = email_sender
        self._quota = quota_tracker
        self._clock = clock
        self._lifetime = lifetime
        self._otp_type = otp_type
        self._code_length = code_length

    # ── Issuance ─────────────────────────────────────────

    async def send_otp(
        self,
        email: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> datetime:
        """Generate and email a new code; return its expiry instant.

        Raises
        ------
        OtpRateLimitExceededError
            Today's quota for the email or the device is used up.
        EmailDeliveryError, EmailConfigurationError
            The code could not be sent.
        OtpStorageError
            The record could not be persisted.
        """
        _raise_if_cancelled()

        now = self._clock()
        email = email.strip()

        try:
            await self._repository.remove_expired(now)
        except OtpStorageError:
            logger.warning("Housekeeping of expired OTP records failed", exc_info=True)

        with (
            self._quota.reserve(QuotaScope.EMAIL, email, now) as email_quota,
            self._reserve_device(ip_address, user_agent, now) as device_quota,
        ):
            code = generate_code(self._code_length)
            expires_at = now + self._lifetime
            record_id: int | None = None
            insert = asyncio.create_task(
                self._repository.insert(
                    email,
                    hash_code(code),
                    self._otp_type,
                    expires_at,
                    ip_address,
                    user_agent,
                )
            )

            try:
                # A cancelled caller must not orphan a committed row
                record_id = await asyncio.shield(insert)
                await self._email_sender.send_otp(email, code, expires_at)
            except BaseException:
                if record_id is None:
                    record_id = await self._settle_insert(insert)
                if record_id is not None:
                    await self._discard_record(record_id)
                raise

            email_quota.commit()
            if device_quota is not None:
                device_quota.commit()

        logger.info("OTP generated for %s, expires at %s", email, expires_at.isoformat())
        return expires_at

    def _reserve_device(
        self, ip_address: str | None, user_agent: str | None, now: datetime
    ) -> AbstractContextManager[Reservation | None]:
        signature = device_signature(ip_address, user_agent)
        if signature is None:
            return nullcontext()
        return self._quota.reserve(QuotaScope.DEVICE, signature, now)

    @staticmethod
    async def _settle_insert(insert: asyncio.Task[int]) -> int | None:
        """Id of the row *insert* wrote, waiting for it if still in flight."""
        try:
            return await insert
        except Exception:
            return None

    async def _discard_record(self, record_id: int) -> None:
        try:
            await self._repository.delete(record_id)
        except Exception:
            logger.warning(
                "Failed to clean up OTP record %s after send failure", record_id, exc_info=True
            )

    # ── Verification ─────────────────────────────────────

    async def verify_otp(self, email: str, code: str) -> VerificationResult:
        """Check *code* against the newest active record for *email*."""
        _raise_if_cancelled()

        email = email.strip()
        code = code.strip()

        record = await self._repository.get_latest_active(email, self._otp_type)
        if record is None:
            return VerificationResult.invalid(InvalidReason.NOT_FOUND)

        now = self._clock()
        if record.expires_at <= now:
            await self._repository.mark_used(record.id, now)
            logger.info("OTP for %s expired at %s", email, record.expires_at.isoformat())
            return VerificationResult.invalid(InvalidReason.EXPIRED)

        if not codes_match(record.otp_hash, hash_code(code)):
            await self._repository.increment_attempt_count(record.id)
            logger.warning("OTP mismatch for %s", email)
            return VerificationResult.invalid(InvalidReason.INCORRECT)

        await self._repository.delete(record.id)
        await self._remove_leftovers(email)
        logger.info("OTP for %s verified successfully", email)
        return VerificationResult.valid()

    async def _remove_leftovers(self, email: str) -> None:
        try:
            await self._repository.delete_all_for_email(email, self._otp_type)
        except asyncio.CancelledError:
            if _is_own_cancellation():
                raise
            logger.warning("Cleanup of OTP records for %s was cancelled", email)
        except Exception:
            logger.warning(
                "Failed to remove OTP records for %s after successful verification",
                email,
                exc_info=True,
            )
