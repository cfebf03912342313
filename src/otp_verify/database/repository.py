"""OTP repository — data access layer for verification records."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from otp_verify.errors import OtpStorageError
from otp_verify.models.otp_record import OtpRecord

logger = logging.getLogger(__name__)


class BaseOtpRepository(ABC):
    """Storage contract consumed by the OTP engine and the cleanup sweep.

    Every operation is atomic on its own.  Operations addressing a record
    id that no longer exists are no-ops.  Failures surface as
    :class:`~otp_verify.errors.OtpStorageError`.
    """

    @abstractmethod
    async def insert(
        self,
        email: str,
        otp_hash: str,
        otp_type: str,
        expires_at: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> int:
        """Persist a new unused record and return its id."""

    @abstractmethod
    async def get_latest_active(self, email: str, otp_type: str) -> OtpRecord | None:
        """Return the newest unused record for *email*, or ``None``."""

    @abstractmethod
    async def mark_used(self, record_id: int, used_at: datetime) -> None:
        """Flag a record as consumed."""

    @abstractmethod
    async def increment_attempt_count(self, record_id: int) -> None:
        """Bump the failed-attempt counter of a record."""

    @abstractmethod
    async def delete(self, record_id: int) -> None:
        """Remove a single record."""

    @abstractmethod
    async def delete_all_for_email(self, email: str, otp_type: str) -> None:
        """Remove every record of *otp_type* for *email*."""

    @abstractmethod
    async def remove_expired(self, now: datetime) -> int:
        """Remove unused records that expired at or before *now*.

        Returns the number of records removed.
        """


class OtpRepository(BaseOtpRepository):
    """SQLAlchemy implementation of the OTP record store.

    Each mutating call commits immediately so that a compensating delete
    survives even when the caller goes on to raise.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @asynccontextmanager
    async def _guard(self, action: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.error("OTP store failed to %s: %s", action, exc)
            await self._session.rollback()
            raise OtpStorageError(f"Failed to {action}.") from exc

    async def insert(
        self,
        email: str,
        otp_hash: str,
        otp_type: str,
        expires_at: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> int:
        record = OtpRecord(
            email=email,
            otp_hash=otp_hash,
            type=otp_type,
            expires_at=expires_at,
            ip_request=ip_address,
            user_agent=user_agent,
        )
        async with self._guard("insert OTP record"):
            self._session.add(record)
            await self._session.commit()
        return record.id

    async def get_latest_active(self, email: str, otp_type: str) -> OtpRecord | None:
        """Look up the authoritative record for *email*.

        The email comparison is case-insensitive; newer records win, with
        the id breaking ties between records created in the same instant.
        """
        stmt = (
            select(OtpRecord)
            .where(
                func.lower(OtpRecord.email) == email.lower(),
                OtpRecord.type == otp_type,
                OtpRecord.used.is_(False),
            )
            .order_by(OtpRecord.created_at.desc(), OtpRecord.id.desc())
            .limit(1)
        )
        async with self._guard("load OTP record"):
            result = await self._session.execute(stmt)
            return result.scalar_one_or_none()

    async def mark_used(self, record_id: int, used_at: datetime) -> None:
        stmt = (
            update(OtpRecord)
            .where(OtpRecord.id == record_id)
            .values(used=True, used_at=used_at)
        )
        async with self._guard("mark OTP record used"):
            await self._session.execute(stmt)
            await self._session.commit()

    async def increment_attempt_count(self, record_id: int) -> None:
        stmt = (
            update(OtpRecord)
            .where(OtpRecord.id == record_id)
            .values(attempt_count=OtpRecord.attempt_count + 1)
        )
        async with self._guard("increment OTP attempt count"):
            await self._session.execute(stmt)
            await self._session.commit()

    async def delete(self, record_id: int) -> None:
        stmt = delete(OtpRecord).where(OtpRecord.id == record_id)
        async with self._guard("delete OTP record"):
            await self._session.execute(stmt)
            await self._session.commit()

    async def delete_all_for_email(self, email: str, otp_type: str) -> None:
        stmt = delete(OtpRecord).where(
            func.lower(OtpRecord.email) == email.lower(),
            OtpRecord.type == otp_type,
        ).execution_options(synchronize_session=False)
        async with self._guard("delete OTP records for email"):
            await self._session.execute(stmt)
            await self._session.commit()

    async def remove_expired(self, now: datetime) -> int:
        stmt = delete(OtpRecord).where(
            OtpRecord.used.is_(False),
            OtpRecord.expires_at <= now,
        ).execution_options(synchronize_session=False)
        async with self._guard("remove expired OTP records"):
            result = await self._session.execute(stmt)
            await self._session.commit()
        return result.rowcount or 0
