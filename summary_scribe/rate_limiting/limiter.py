"""
Per-identity fixed-window rate limiter for summarization requests.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from .store import CounterStore, InMemoryCounterStore
from ..config.constants import (
    DEFAULT_RATE_LIMIT_CEILING, DEFAULT_RATE_LIMIT_WINDOW_SECONDS, RATE_LIMIT_SCOPE
)
from ..exceptions import RateLimitedError
from ..models.base import ensure_utc, utc_now
from ..models.rate_limit import RateLimitDecision

logger = logging.getLogger(__name__)


class RateLimiter:
    """Admits at most ``ceiling`` requests per identity per window.

    The first request of a window (or any request after ``reset_at``)
    starts a new window with ``count=1``. A missing counter is never a
    rejection.
    """

    def __init__(self,
                 store: Optional[CounterStore] = None,
                 ceiling: int = DEFAULT_RATE_LIMIT_CEILING,
                 window_seconds: int = DEFAULT_RATE_LIMIT_WINDOW_SECONDS,
                 clock: Callable[[], datetime] = utc_now):
        if ceiling < 1:
            raise ValueError("ceiling must be at least 1")
        self.store = store or InMemoryCounterStore()
        self.ceiling = ceiling
        self.window = timedelta(seconds=window_seconds)
        self._clock = clock

    @staticmethod
    def identity_for(owner_id: str, scope: str) -> str:
        """Build the counter identity for a user within an organization or channel."""
        return f"{RATE_LIMIT_SCOPE}:{owner_id}:{scope}"

    async def check(self, identity: str) -> RateLimitDecision:
        """Count a request and report whether it is admitted."""
        now = ensure_utc(self._clock())
        record, admitted = await self.store.hit(identity, self.ceiling, self.window, now)

        remaining = max(0, self.ceiling - record.count) if admitted else 0
        decision = RateLimitDecision(
            allowed=admitted,
            remaining=remaining,
            reset_at=record.window_reset_at,
            limit=self.ceiling,
            now=now,
        )

        if not admitted:
            logger.warning(
                f"Rate limit hit for {identity}: {record.count}/{self.ceiling}, "
                f"resets at {record.window_reset_at.isoformat()}"
            )
        return decision

    async def require(self, identity: str) -> RateLimitDecision:
        """Like ``check`` but raise when the request is rejected.

        Raises:
            RateLimitedError: With the reset time and retry-after seconds
        """
        decision = await self.check(identity)
        if not decision.allowed:
            raise RateLimitedError(
                identity=identity,
                reset_at=decision.reset_at,
                retry_after_seconds=decision.retry_after_seconds,
                limit=self.ceiling,
            )
        return decision

    async def reset(self, identity: str) -> None:
        await self.store.reset(identity)
