"""
Delivery models: where a summary is posted and what happened when it was.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from .base import BaseModel, generate_id, utc_now
from ..config.constants import DM_TARGET_PREFIX


class DeliveryStatus(Enum):
    PENDING = "pending"
    POSTED = "posted"
    FAILED = "failed"


class ChannelPreference(Enum):
    SAME_CHANNEL = "same_channel"
    DM_USER = "dm_user"


@dataclass(frozen=True)
class Destination(BaseModel):
    """A Slack channel, or a DM to a Slack user."""
    kind: ChannelPreference
    channel_id: Optional[str] = None
    user_id: Optional[str] = None

    def __post_init__(self):
        if self.kind == ChannelPreference.SAME_CHANNEL and not self.channel_id:
            raise ValueError("Channel destination requires channel_id")
        if self.kind == ChannelPreference.DM_USER and not self.user_id:
            raise ValueError("DM destination requires user_id")

    @classmethod
    def channel(cls, channel_id: str) -> 'Destination':
        return cls(kind=ChannelPreference.SAME_CHANNEL, channel_id=channel_id)

    @classmethod
    def direct_message(cls, user_id: str) -> 'Destination':
        return cls(kind=ChannelPreference.DM_USER, user_id=user_id)

    @property
    def is_dm(self) -> bool:
        return self.kind == ChannelPreference.DM_USER

    @property
    def target(self) -> str:
        """Stored form: a channel id, or ``dm:<user id>``."""
        if self.is_dm:
            return f"{DM_TARGET_PREFIX}{self.user_id}"
        return self.channel_id

    @classmethod
    def from_target(cls, target: str) -> 'Destination':
        if target.startswith(DM_TARGET_PREFIX):
            return cls.direct_message(target[len(DM_TARGET_PREFIX):])
        return cls.channel(target)


@dataclass
class DeliveryPreferences(BaseModel):
    """Per-user auto-post settings."""
    auto_post: bool = False
    channel_preference: ChannelPreference = ChannelPreference.SAME_CHANNEL
    slack_user_id: Optional[str] = None

    def destination_for(self, source_channel_id: str) -> Destination:
        """Resolve the destination, falling back to the source channel when no DM user is known."""
        if self.channel_preference == ChannelPreference.DM_USER and self.slack_user_id:
            return Destination.direct_message(self.slack_user_id)
        return Destination.channel(source_channel_id)


@dataclass
class DeliveryAttempt(BaseModel):
    """One record of posting a summary to Slack."""
    summary_id: str
    target: str
    owner_id: str = ""
    organization_id: Optional[str] = None
    id: str = field(default_factory=generate_id)
    status: DeliveryStatus = DeliveryStatus.PENDING
    error_message: Optional[str] = None
    posted_at: Optional[datetime] = None
    platform_message_ts: Optional[str] = None
    platform_channel_id: Optional[str] = None
    retry_count: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def destination(self) -> Destination:
        return Destination.from_target(self.target)
