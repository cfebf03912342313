"""Exception types raised by the OTP engine and its collaborators."""

from __future__ import annotations


class OtpError(Exception):
    """Base class for every error raised by this package."""


class OtpRateLimitExceededError(OtpError):
    """The daily OTP quota for an email or a device has been used up.

    Callers should tell the user to come back tomorrow rather than to retry.
    """

    def __init__(self, scope: str, message: str | None = None) -> None:
        self.scope = scope
        super().__init__(
            message or f"Daily OTP limit reached for this {scope}. Please try again tomorrow."
        )


class EmailDeliveryError(OtpError):
    """The email transport failed or the provider rejected the message."""


class EmailConfigurationError(OtpError):
    """Credentials or the sender identity for the email transport are missing."""


class OtpStorageError(OtpError):
    """The OTP record store is unavailable or a statement failed."""
