"""Tests for the background cleanup sweep."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from otp_verify.database.repository import OtpRepository
from otp_verify.errors import OtpStorageError
from otp_verify.models.otp_record import OtpRecord
from otp_verify.services.cleanup import OtpCleanupService


async def _remaining_emails(session_factory) -> set[str]:
    async with session_factory() as session:
        result = await session.execute(select(OtpRecord.email))
        return set(result.scalars())


@pytest.mark.asyncio
async def test_sweep_removes_only_due_records(session_factory, clock):
    async with session_factory() as session:
        repo = OtpRepository(session)
        await repo.insert("due@x.com", "AA" * 32, "register", clock.now)
        await repo.insert("later@x.com", "BB" * 32, "register", clock.now + timedelta(minutes=1))

    cleanup = OtpCleanupService(session_factory, clock=clock)
    removed = await cleanup.run_once()

    assert removed == 1
    assert await _remaining_emails(session_factory) == {"later@x.com"}

    # Nothing due any more: a second sweep is a no-op
    assert await cleanup.run_once() == 0


@pytest.mark.asyncio
async def test_failed_sweep_is_swallowed(session_factory, clock):
    cleanup = OtpCleanupService(session_factory, clock=clock)
    with patch.object(
        OtpRepository, "remove_expired", AsyncMock(side_effect=OtpStorageError("db down"))
    ):
        assert await cleanup.run_once() == 0


@pytest.mark.asyncio
async def test_loop_runs_immediately_and_keeps_going_after_failures(session_factory, clock):
    sweep = AsyncMock(side_effect=[OtpStorageError("db down"), 0, 0, 0, 0, 0])
    cleanup = OtpCleanupService(session_factory, interval_seconds=0.01, clock=clock)

    with patch.object(OtpRepository, "remove_expired", sweep):
        cleanup.start()
        assert cleanup.running
        await asyncio.sleep(0.05)
        await cleanup.stop()

    assert not cleanup.running
    assert sweep.await_count >= 2


@pytest.mark.asyncio
async def test_stop_before_start_is_noop(session_factory):
    await OtpCleanupService(session_factory).stop()


@pytest.mark.asyncio
async def test_nested_cancel_of_sweep_is_swallowed(session_factory, clock):
    cleanup = OtpCleanupService(session_factory, clock=clock)
    with patch.object(
        OtpRepository, "remove_expired", AsyncMock(side_effect=asyncio.CancelledError())
    ):
        assert await cleanup.run_once() == 0


@pytest.mark.asyncio
async def test_stop_interrupts_a_sweep_in_progress(session_factory, clock):
    started = asyncio.Event()

    async def hang(now):
        started.set()
        await asyncio.Event().wait()

    cleanup = OtpCleanupService(session_factory, clock=clock)
    with patch.object(OtpRepository, "remove_expired", AsyncMock(side_effect=hang)):
        cleanup.start()
        await started.wait()
        task = cleanup._task
        await asyncio.wait_for(cleanup.stop(), timeout=1)

    assert task.cancelled()
    assert not cleanup.running
