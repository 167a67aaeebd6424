"""
Chat platform data models: messages, users, channels and time windows.

These are produced by the fetcher for a single pipeline run and are never
persisted as-is.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from .base import BaseModel, ensure_utc, utc_now

DEFAULT_WINDOW_HOURS = 24


def ts_to_datetime(ts: str) -> datetime:
    """Convert a Slack ``ts`` ("1700000000.000100") to an aware UTC datetime."""
    return datetime.fromtimestamp(float(ts), tz=timezone.utc)


def datetime_to_ts(value: datetime) -> str:
    """Convert a datetime to a Slack ``ts`` string."""
    return f"{ensure_utc(value).timestamp():.6f}"


@dataclass(frozen=True)
class Reaction(BaseModel):
    name: str
    count: int = 0
    users: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Attachment(BaseModel):
    id: str
    name: str
    mimetype: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class ChannelMessage(BaseModel):
    """A single message fetched from a channel. Immutable once fetched."""
    id: str  # Slack ts, unique within the channel
    author_id: str
    text: str
    posted_at: datetime
    thread_root_id: Optional[str] = None
    reactions: Tuple[Reaction, ...] = ()
    attachments: Tuple[Attachment, ...] = ()
    reply_count: int = 0
    subtype: Optional[str] = None
    bot_id: Optional[str] = None

    @property
    def is_thread_root(self) -> bool:
        return self.reply_count > 0 and (self.thread_root_id in (None, self.id))

    @classmethod
    def from_slack(cls, data: Dict[str, Any]) -> 'ChannelMessage':
        """Build from a Slack ``conversations.history`` message object."""
        ts = data["ts"]
        reactions = tuple(
            Reaction(
                name=r.get("name", ""),
                count=int(r.get("count", 0)),
                users=tuple(r.get("users", [])),
            )
            for r in data.get("reactions", [])
        )
        attachments = tuple(
            Attachment(
                id=f.get("id", ""),
                name=f.get("name") or f.get("title") or f.get("id", "file"),
                mimetype=f.get("mimetype"),
                url=f.get("url_private") or f.get("permalink"),
            )
            for f in data.get("files", [])
        )
        return cls(
            id=ts,
            author_id=data.get("user") or data.get("bot_id") or "",
            text=data.get("text") or "",
            posted_at=ts_to_datetime(ts),
            thread_root_id=data.get("thread_ts"),
            reactions=reactions,
            attachments=attachments,
            reply_count=int(data.get("reply_count", 0)),
            subtype=data.get("subtype"),
            bot_id=data.get("bot_id"),
        )


@dataclass(frozen=True)
class UserDirectoryEntry(BaseModel):
    id: str
    display_name: str
    is_bot: bool = False

    @classmethod
    def from_slack(cls, data: Dict[str, Any]) -> 'UserDirectoryEntry':
        """Build from a Slack ``users.info`` user object.

        Display name precedence: profile display name, real name, handle.
        """
        profile = data.get("profile") or {}
        display_name = (
            profile.get("display_name")
            or profile.get("real_name")
            or data.get("real_name")
            or data.get("name")
            or data["id"]
        )
        return cls(
            id=data["id"],
            display_name=display_name,
            is_bot=bool(data.get("is_bot")) or data.get("id") == "USLACKBOT",
        )


@dataclass
class Channel(BaseModel):
    id: str
    name: str
    is_private: bool = False
    is_member: bool = True
    is_archived: bool = False
    topic: str = ""
    purpose: str = ""
    num_members: Optional[int] = None

    @classmethod
    def from_slack(cls, data: Dict[str, Any]) -> 'Channel':
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            is_private=bool(data.get("is_private")),
            is_member=bool(data.get("is_member", True)),
            is_archived=bool(data.get("is_archived")),
            topic=(data.get("topic") or {}).get("value", ""),
            purpose=(data.get("purpose") or {}).get("value", ""),
            num_members=data.get("num_members"),
        )


@dataclass(frozen=True)
class TimeWindow(BaseModel):
    """Inclusive ``[oldest, latest]`` fetch window."""
    oldest: datetime
    latest: datetime

    def __post_init__(self):
        # Naive bounds are UTC
        object.__setattr__(self, "oldest", ensure_utc(self.oldest))
        object.__setattr__(self, "latest", ensure_utc(self.latest))
        if self.oldest > self.latest:
            raise ValueError("Time window oldest must not be after latest")

    @classmethod
    def last_hours(cls, hours: int = DEFAULT_WINDOW_HOURS,
                   now: Optional[datetime] = None) -> 'TimeWindow':
        latest = ensure_utc(now) if now else utc_now()
        return cls(oldest=latest - timedelta(hours=hours), latest=latest)

    def contains(self, moment: datetime) -> bool:
        return self.oldest <= moment <= self.latest

    def to_slack_params(self) -> Dict[str, str]:
        return {
            "oldest": datetime_to_ts(self.oldest),
            "latest": datetime_to_ts(self.latest),
            "inclusive": "true",
        }
