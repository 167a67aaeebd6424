"""
Transcript model: the normalized text handed to the summarizer.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from .base import BaseModel


@dataclass(frozen=True)
class Transcript(BaseModel):
    """One normalized document for a channel and time window.

    ``text`` is the header line followed by one line per message.
    """
    text: str
    channel_id: str
    channel_name: str
    message_count: int
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    header: str = ""
    lines: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.message_count == 0

    def estimate_tokens(self, chars_per_token: int = 4) -> int:
        """Rough token estimate used for logging and prompt sizing."""
        return len(self.text) // chars_per_token
