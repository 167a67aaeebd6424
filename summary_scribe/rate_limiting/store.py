"""
Counter stores backing the rate limiter.

A store exposes one atomic primitive, ``hit``: reset the window if it has
expired, otherwise increment the counter unless it already reached the
ceiling. The compare and the increment happen in one step so two concurrent
callers can never both be admitted at the boundary.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Dict, Tuple

from ..data.base import DatabaseConnection
from ..models.rate_limit import RateLimitRecord

logger = logging.getLogger(__name__)


class CounterStore(ABC):
    """Atomic per-key window counter."""

    @abstractmethod
    async def hit(self, key: str, ceiling: int, window: timedelta,
                  now: datetime) -> Tuple[RateLimitRecord, bool]:
        """Count one request against ``key``.

        Returns:
            The counter state after the call and whether the request was admitted
        """
        pass

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Forget the counter for ``key``."""
        pass


class InMemoryCounterStore(CounterStore):
    """Process-local store. Does not survive restarts or span instances."""

    def __init__(self, prune_every: int = 1000):
        self._records: Dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()
        self._prune_every = prune_every
        self._hits_since_prune = 0

    async def hit(self, key: str, ceiling: int, window: timedelta,
                  now: datetime) -> Tuple[RateLimitRecord, bool]:
        with self._lock:
            self._maybe_prune(now)
            record = self._records.get(key)

            if record is None or now > record.window_reset_at:
                record = RateLimitRecord(key=key, count=1, window_reset_at=now + window)
                self._records[key] = record
                return RateLimitRecord(key, record.count, record.window_reset_at), True

            if record.count >= ceiling:
                return RateLimitRecord(key, record.count, record.window_reset_at), False

            record.count += 1
            return RateLimitRecord(key, record.count, record.window_reset_at), True

    async def reset(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    def _maybe_prune(self, now: datetime) -> None:
        # Caller holds the lock
        self._hits_since_prune += 1
        if self._hits_since_prune < self._prune_every:
            return
        self._hits_since_prune = 0
        expired = [key for key, record in self._records.items() if now > record.window_reset_at]
        for key in expired:
            del self._records[key]
        if expired:
            logger.debug(f"Pruned {len(expired)} expired rate limit counters")


class SQLiteCounterStore(CounterStore):
    """Shared store: one UPSERT per hit, safe across processes on one database file."""

    _HIT_QUERY = """
    INSERT INTO rate_limits (key, count, window_reset_at, admitted)
    VALUES (?, 1, ?, 1)
    ON CONFLICT(key) DO UPDATE SET
        admitted = CASE
            WHEN ? > rate_limits.window_reset_at THEN 1
            WHEN rate_limits.count >= ? THEN 0
            ELSE 1
        END,
        count = CASE
            WHEN ? > rate_limits.window_reset_at THEN 1
            WHEN rate_limits.count >= ? THEN rate_limits.count
            ELSE rate_limits.count + 1
        END,
        window_reset_at = CASE
            WHEN ? > rate_limits.window_reset_at THEN excluded.window_reset_at
            ELSE rate_limits.window_reset_at
        END
    RETURNING count, window_reset_at, admitted
    """

    def __init__(self, connection: DatabaseConnection):
        self.connection = connection

    async def hit(self, key: str, ceiling: int, window: timedelta,
                  now: datetime) -> Tuple[RateLimitRecord, bool]:
        now_ts = now.timestamp()
        new_reset_ts = (now + window).timestamp()
        rows = await self.connection.execute_returning(
            self._HIT_QUERY,
            (key, new_reset_ts, now_ts, ceiling, now_ts, ceiling, now_ts)
        )
        row = rows[0]
        record = RateLimitRecord(
            key=key,
            count=row['count'],
            window_reset_at=datetime.fromtimestamp(row['window_reset_at'], tz=timezone.utc),
        )
        return record, bool(row['admitted'])

    async def reset(self, key: str) -> None:
        await self.connection.execute("DELETE FROM rate_limits WHERE key = ?", (key,))
