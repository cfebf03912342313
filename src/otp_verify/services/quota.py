"""Quota tracker — bounds how many OTPs an email or device may request per UTC day."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta
from enum import StrEnum

from otp_verify.errors import OtpRateLimitExceededError

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 5


class QuotaScope(StrEnum):
    EMAIL = "email"
    DEVICE = "device"


def next_utc_midnight(now: datetime) -> datetime:
    """Start of the UTC calendar day following *now*."""
    day = now.astimezone(UTC).date() + timedelta(days=1)
    return datetime.combine(day, time.min, tzinfo=UTC)


@dataclass
class QuotaEntry:
    """Attempts reserved so far for one scope/key on one UTC day."""

    reset_at: datetime
    count: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class Reservation:
    """A provisional quota increment.

    Either :meth:`commit` it once the OTP has gone out, or let it be
    released: leaving the ``with`` block without a commit gives the
    attempt back.  :meth:`release` is idempotent.
    """

    def __init__(self, entry: QuotaEntry) -> None:
        self._entry = entry
        self._committed = False
        self._released = False

    def commit(self) -> None:
        self._committed = True

    def release(self) -> None:
        if self._committed or self._released:
            return
        self._released = True
        with self._entry.lock:
            if self._entry.count > 0:
                self._entry.count -= 1

    def __enter__(self) -> Reservation:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class BaseQuotaTracker(ABC):
    """Reserve/commit/release contract for daily OTP quotas.

    The in-memory implementation is process local.  Multi-instance
    deployments need a subclass backed by a shared atomic counter.
    """

    @abstractmethod
    def reserve(self, scope: QuotaScope, key: str, now: datetime) -> Reservation:
        """Take one attempt from today's quota for *key*.

        Raises :class:`OtpRateLimitExceededError` when the quota is used up.
        """


class InMemoryQuotaTracker(BaseQuotaTracker):
    """Process-wide quota counters kept in a dict.

    Entries are keyed by scope, key and UTC date, and are dropped lazily
    once their ``reset_at`` has passed.
    """

    def __init__(self, daily_limit: int = DEFAULT_DAILY_LIMIT) -> None:
        self.daily_limit = daily_limit
        self._entries: dict[str, QuotaEntry] = {}
        self._lock = threading.Lock()
        self._next_sweep_at: datetime | None = None

    @staticmethod
    def _cache_key(scope: QuotaScope, key: str, now: datetime) -> str:
        if scope is QuotaScope.EMAIL:
            key = key.lower()
        date_stamp = now.astimezone(UTC).strftime("%Y%m%d")
        return f"otp-quota:{scope.value}:{key}:{date_stamp}"

    def _get_entry(self, scope: QuotaScope, key: str, now: datetime) -> QuotaEntry:
        cache_key = self._cache_key(scope, key, now)
        with self._lock:
            self._evict_expired(now)
            entry = self._entries.get(cache_key)
            if entry is None:
                entry = QuotaEntry(reset_at=next_utc_midnight(now))
                self._entries[cache_key] = entry
            return entry

    def _evict_expired(self, now: datetime) -> None:
        # At most one full scan per UTC day
        if self._next_sweep_at is not None and now < self._next_sweep_at:
            return
        self._next_sweep_at = next_utc_midnight(now)
        stale = [k for k, entry in self._entries.items() if now >= entry.reset_at]
        for k in stale:
            del self._entries[k]

    def reserve(self, scope: QuotaScope, key: str, now: datetime) -> Reservation:
        entry = self._get_entry(scope, key, now)
        with entry.lock:
            if entry.count >= self.daily_limit:
                logger.info("Daily OTP quota exhausted for %s scope", scope.value)
                raise OtpRateLimitExceededError(scope.value)
            entry.count += 1
        return Reservation(entry)

    def count(self, scope: QuotaScope, key: str, now: datetime) -> int:
        """Attempts currently held against *key* today (0 if untracked)."""
        cache_key = self._cache_key(scope, key, now)
        with self._lock:
            entry = self._entries.get(cache_key)
        if entry is None or now >= entry.reset_at:
            return 0
        return entry.count

    @property
    def active_count(self) -> int:
        """Number of tracked quota entries (useful for monitoring)."""
        return len(self._entries)
