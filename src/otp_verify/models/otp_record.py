"""SQLAlchemy OTP record model."""

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamp, also on backends that drop the offset (SQLite)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


class OtpRecord(Base):
    """One issued verification code for an email address.

    Only the SHA-256 digest of the code is stored.  A record is *active*
    while ``used`` is false and ``expires_at`` lies in the future; it is
    consumed by a successful verification (deleted), by a verification
    attempt after expiry (marked used) or by the cleanup sweep (deleted).
    """

    __tablename__ = "email_verification"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(256), nullable=False)
    otp_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(UTC), nullable=False
    )
    used_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    ip_request: Mapped[str | None] = mapped_column(
        String(64), nullable=True, doc="Network origin of the send request"
    )
    user_agent: Mapped[str | None] = mapped_column(
        String(512), nullable=True, doc="Client agent of the send request"
    )

    __table_args__ = (
        Index("ix_email_verification_email_type", "email", "type"),
        Index("ix_email_verification_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<OtpRecord id={self.id} email={self.email!r} "
            f"used={self.used} expires_at={self.expires_at!s}>"
        )
