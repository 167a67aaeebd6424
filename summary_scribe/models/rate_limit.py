"""
Rate limit records and decisions.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .base import BaseModel


@dataclass
class RateLimitRecord(BaseModel):
    """Counter state for one key within its current window."""
    key: str
    count: int
    window_reset_at: datetime


@dataclass(frozen=True)
class RateLimitDecision(BaseModel):
    allowed: bool
    remaining: int
    reset_at: datetime
    limit: int
    now: Optional[datetime] = None

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds until the window resets (0 if admitted)."""
        if self.allowed or self.now is None:
            return 0
        delta = (self.reset_at - self.now).total_seconds()
        return max(1, int(delta + 0.999))
