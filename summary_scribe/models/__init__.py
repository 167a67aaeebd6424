"""
Data models for Slack Summary Scribe.
"""

from .base import BaseModel, generate_id, utc_now, ensure_utc
from .message import (
    ChannelMessage, Reaction, Attachment, UserDirectoryEntry, Channel, TimeWindow,
    ts_to_datetime, datetime_to_ts,
)
from .transcript import Transcript
from .rate_limit import RateLimitRecord, RateLimitDecision
from .summary import (
    Sentiment, SourceType, SummaryOptions, StructuredDraft, PlainTextDraft,
    SummaryDraft, Summary, SummaryPatch, SummaryFilter, normalize_tags,
)
from .delivery import (
    DeliveryStatus, ChannelPreference, Destination, DeliveryPreferences, DeliveryAttempt,
)
from .pipeline import PipelineRequest, PipelineResult

__all__ = [
    'BaseModel', 'generate_id', 'utc_now', 'ensure_utc',
    'ChannelMessage', 'Reaction', 'Attachment', 'UserDirectoryEntry', 'Channel', 'TimeWindow',
    'ts_to_datetime', 'datetime_to_ts',
    'Transcript',
    'RateLimitRecord', 'RateLimitDecision',
    'Sentiment', 'SourceType', 'SummaryOptions', 'StructuredDraft', 'PlainTextDraft',
    'SummaryDraft', 'Summary', 'SummaryPatch', 'SummaryFilter', 'normalize_tags',
    'DeliveryStatus', 'ChannelPreference', 'Destination', 'DeliveryPreferences', 'DeliveryAttempt',
    'PipelineRequest', 'PipelineResult',
]
