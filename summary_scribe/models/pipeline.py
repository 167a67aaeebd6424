"""
Pipeline request and result models.
"""

from dataclasses import dataclass
from typing import Optional

from .base import BaseModel
from .delivery import DeliveryAttempt, DeliveryPreferences
from .message import TimeWindow
from .rate_limit import RateLimitDecision
from .summary import SourceType, Summary, SummaryOptions


@dataclass
class PipelineRequest(BaseModel):
    """Everything one summarization run needs from the caller."""
    owner_id: str
    channel_id: str
    token: str
    organization_id: Optional[str] = None
    window: Optional[TimeWindow] = None
    options: Optional[SummaryOptions] = None
    delivery: Optional[DeliveryPreferences] = None
    include_threads: bool = True
    timeout_seconds: Optional[float] = None
    source_type: SourceType = SourceType.SLACK
    keep_transcript: bool = True

    @property
    def rate_limit_scope(self) -> str:
        return self.organization_id or self.channel_id


@dataclass
class PipelineResult(BaseModel):
    summary: Summary
    rate_limit: RateLimitDecision
    message_count: int
    delivery: Optional[DeliveryAttempt] = None

    @property
    def delivered(self) -> bool:
        return self.delivery is not None and self.delivery.status.value == "posted"
