"""Background sweep that removes expired, unused OTP records."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from otp_verify.database.repository import OtpRepository

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 3600.0


class OtpCleanupService:
    """Runs one sweep at startup, then one per interval until stopped.

    A failed sweep is logged and the schedule carries on.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        interval_seconds: float = CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._session_factory = session_factory
        self._interval = interval_seconds
        self._clock = clock
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """Execute a single sweep; returns the number of records removed."""
        now = self._clock()
        try:
            async with self._session_factory() as session:
                removed = await OtpRepository(session).remove_expired(now)
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            logger.warning("OTP cleanup sweep at %s was cancelled", now.isoformat())
            return 0
        except Exception:
            logger.exception("Failed to clean up expired OTP records")
            return 0

        logger.debug("OTP cleanup executed at %s, removed %d record(s)", now.isoformat(), removed)
        return removed

    async def run_forever(self) -> None:
        await self.run_once()
        while True:
            await asyncio.sleep(self._interval)
            await self.run_once()

    def start(self) -> None:
        """Spawn the sweep loop on the running event loop (no-op if running)."""
        if self.running:
            return
        self._task = asyncio.create_task(self.run_forever(), name="otp-cleanup")
        logger.info("OTP cleanup scheduled every %s seconds", self._interval)

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to unwind."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("OTP cleanup stopped")
