"""
Summary data models.

A summarization run produces a ``SummaryDraft``, which is either a
``StructuredDraft`` (the model returned parseable JSON) or a
``PlainTextDraft`` (it did not, and the raw text became the summary body).
The store turns a draft into a persisted ``Summary``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union

from .base import BaseModel, generate_id, utc_now
from ..config.constants import (
    DEFAULT_LIST_LIMIT, DEFAULT_MAX_OUTPUT_TOKENS, DEFAULT_SUMMARIZATION_MODEL,
    DEFAULT_TEMPERATURE, MAX_LIST_LIMIT, SORTABLE_SUMMARY_COLUMNS,
)
from ..exceptions import ImmutableFieldError


class Sentiment(Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"

    @classmethod
    def coerce(cls, value: Any) -> 'Sentiment':
        """Map arbitrary input to a sentiment, defaulting to neutral."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.NEUTRAL


class SourceType(Enum):
    SLACK = "slack"
    MANUAL = "manual"
    API = "api"


@dataclass
class SummaryOptions(BaseModel):
    """Options recognized by the summarization engine."""
    model: str = DEFAULT_SUMMARIZATION_MODEL
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    require_json: bool = True

    def __post_init__(self):
        if self.max_output_tokens <= 0:
            raise ValueError("max_output_tokens must be positive")
        if not 0.0 <= self.temperature <= 1.0:
            raise ValueError("temperature must be between 0 and 1")


@dataclass
class _DraftBase(BaseModel):
    title: str
    summary_text: str
    skills: List[str] = field(default_factory=list)
    red_flags: List[str] = field(default_factory=list)
    action_items: List[str] = field(default_factory=list)
    sentiment: Sentiment = Sentiment.NEUTRAL
    confidence_score: float = 0.0
    model: str = ""
    requested_model: str = ""
    fallback_used: bool = False
    raw_response: str = ""
    input_tokens: int = 0
    output_tokens: int = 0

    kind: ClassVar[str] = ""

    @property
    def is_structured(self) -> bool:
        return self.kind == StructuredDraft.kind

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind
        return data


@dataclass
class StructuredDraft(_DraftBase):
    """Draft parsed from a valid structured AI response."""
    kind: ClassVar[str] = "structured"


@dataclass
class PlainTextDraft(_DraftBase):
    """Draft built from an unparseable AI response; structured fields are empty."""
    kind: ClassVar[str] = "plain_text"


SummaryDraft = Union[StructuredDraft, PlainTextDraft]


@dataclass
class Summary(BaseModel):
    """A persisted summary. AI-derived fields are immutable after creation."""
    id: str = field(default_factory=generate_id)
    owner_id: str = ""
    organization_id: Optional[str] = None
    title: str = ""
    summary_text: str = ""
    skills: List[str] = field(default_factory=list)
    red_flags: List[str] = field(default_factory=list)
    action_items: List[str] = field(default_factory=list)
    sentiment: Sentiment = Sentiment.NEUTRAL
    confidence_score: float = 0.0
    source_channel_id: str = ""
    source_message_ts: Optional[str] = None
    model: str = ""
    created_at: datetime = field(default_factory=utc_now)
    source_type: SourceType = SourceType.SLACK
    draft_kind: str = StructuredDraft.kind
    raw_transcript: Optional[str] = None
    message_count: int = 0
    rating: Optional[int] = None
    tags: List[str] = field(default_factory=list)


def normalize_tags(tags: List[str]) -> List[str]:
    """Trim, lower-case and de-duplicate tags, keeping first-seen order."""
    seen = []
    for tag in tags:
        cleaned = str(tag).strip().lower()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


@dataclass
class SummaryPatch(BaseModel):
    """User-applied annotations. ``None`` leaves a field unchanged."""
    rating: Optional[int] = None
    tags: Optional[List[str]] = None

    MUTABLE_FIELDS: ClassVar[frozenset] = frozenset({"rating", "tags"})

    def __post_init__(self):
        if self.rating is not None and not 1 <= self.rating <= 5:
            raise ValueError("rating must be between 1 and 5")
        if self.tags is not None:
            self.tags = normalize_tags(self.tags)

    @property
    def is_empty(self) -> bool:
        return self.rating is None and self.tags is None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SummaryPatch':
        """Build from a request payload, rejecting protected fields.

        Raises:
            ImmutableFieldError: If the payload names any other field
        """
        protected = set(data) - cls.MUTABLE_FIELDS
        if protected:
            raise ImmutableFieldError(protected)
        return cls(rating=data.get("rating"), tags=data.get("tags"))


@dataclass
class SummaryFilter(BaseModel):
    """Criteria for listing summaries."""
    owner_id: Optional[str] = None
    organization_id: Optional[str] = None
    source_type: Optional[SourceType] = None
    search: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    limit: int = DEFAULT_LIST_LIMIT
    offset: int = 0
    order_by: str = "created_at"
    order_direction: str = "DESC"

    def __post_init__(self):
        if self.order_by not in SORTABLE_SUMMARY_COLUMNS:
            raise ValueError(f"Cannot order summaries by {self.order_by}")
        self.order_direction = self.order_direction.upper()
        if self.order_direction not in ("ASC", "DESC"):
            raise ValueError("order_direction must be ASC or DESC")
        self.tags = normalize_tags(self.tags)
        self.offset = max(0, self.offset)

    @property
    def effective_limit(self) -> int:
        """Requested limit clamped to ``[1, MAX_LIST_LIMIT]``."""
        return max(1, min(self.limit, MAX_LIST_LIMIT))
