"""Verification outcome value object."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class InvalidReason(StrEnum):
    EXPIRED = "expired"
    INCORRECT = "incorrect"
    NOT_FOUND = "not-found"


_MESSAGES = {
    InvalidReason.EXPIRED: "OTP has expired.",
    InvalidReason.INCORRECT: "OTP is incorrect.",
    InvalidReason.NOT_FOUND: "OTP has expired or was not requested.",
}


@dataclass(frozen=True)
class VerificationResult:
    """Returned by :meth:`OtpService.verify_otp`.

    Invalid outcomes are values, not exceptions; ``reason`` tells them apart
    and ``message`` is suitable for showing to the user.
    """

    is_valid: bool
    reason: InvalidReason | None = None

    @classmethod
    def valid(cls) -> VerificationResult:
        return cls(is_valid=True)

    @classmethod
    def invalid(cls, reason: InvalidReason) -> VerificationResult:
        return cls(is_valid=False, reason=reason)

    @property
    def message(self) -> str | None:
        if self.reason is None:
            return None
        return _MESSAGES[self.reason]
