"""
AI response parsing and validation.

Structured output is attempted first; anything that cannot be parsed
degrades to a ``PlainTextDraft`` carrying the raw text, so a response is
never discarded.
"""

import json
import logging
import re
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..config.constants import (
    DEFAULT_CONFIDENCE, DEFAULT_SUMMARY_TITLE, MAX_TITLE_LENGTH, PLAIN_TEXT_CONFIDENCE_PENALTY
)
from ..models.summary import PlainTextDraft, Sentiment, StructuredDraft, SummaryDraft

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_TEXT = "The AI model returned an empty response."


def _item_to_text(item: Any) -> str:
    """Flatten an action item / list entry that may be a string or an object."""
    if isinstance(item, dict):
        text = next(
            (str(item[k]) for k in ("task", "text", "description", "title", "name") if item.get(k)),
            ""
        )
        owner = item.get("owner") or item.get("assignee")
        if text and owner:
            return f"{text} ({owner})"
        return text
    return str(item).strip() if item is not None else ""


class SummaryPayload(BaseModel):
    """Validated shape of the AI's JSON output. Accepts camelCase or snake_case keys."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str = DEFAULT_SUMMARY_TITLE
    summary: str = Field(validation_alias=AliasChoices("summary", "summary_text", "summaryText"))
    skills: List[str] = Field(default_factory=list)
    red_flags: List[str] = Field(default_factory=list,
                                 validation_alias=AliasChoices("redFlags", "red_flags"))
    action_items: List[str] = Field(default_factory=list,
                                    validation_alias=AliasChoices("actionItems", "action_items"))
    sentiment: Sentiment = Sentiment.NEUTRAL
    confidence: float = Field(default=DEFAULT_CONFIDENCE,
                              validation_alias=AliasChoices("confidence", "confidence_score",
                                                            "confidenceScore"))

    @field_validator("title", mode="before")
    @classmethod
    def _clean_title(cls, value: Any) -> str:
        title = " ".join(str(value or "").split())
        return title[:MAX_TITLE_LENGTH] if title else DEFAULT_SUMMARY_TITLE

    @field_validator("summary", mode="before")
    @classmethod
    def _require_summary(cls, value: Any) -> str:
        if isinstance(value, list):
            value = "\n".join(str(v) for v in value)
        text = str(value or "").strip()
        if not text:
            raise ValueError("summary must not be empty")
        return text

    @field_validator("skills", "red_flags", "action_items", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, (str, dict)):
            value = [value]
        if not isinstance(value, list):
            return []
        return [text for text in (_item_to_text(item) for item in value) if text]

    @field_validator("sentiment", mode="before")
    @classmethod
    def _coerce_sentiment(cls, value: Any) -> Sentiment:
        return Sentiment.coerce(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            confidence = float(value)
        except (TypeError, ValueError):
            return DEFAULT_CONFIDENCE
        if confidence != confidence:  # NaN
            return DEFAULT_CONFIDENCE
        return min(1.0, max(0.0, confidence))


class ResponseParser:
    """Parses AI responses into summary drafts."""

    def __init__(self):
        self.extractors = [
            self._extract_whole_json,
            self._json_in_fence,
            self._first_json_object,
        ]

    def parse(self, content: str) -> SummaryDraft:
        """Parse a response; never raises."""
        for extractor in self.extractors:
            json_str = extractor(content or "")
            if json_str is None:
                continue

            payload = self._validate(json_str)
            if payload is not None:
                logger.debug(f"Parsed structured summary via {extractor.__name__}")
                return StructuredDraft(
                    title=payload.title,
                    summary_text=payload.summary,
                    skills=payload.skills,
                    red_flags=payload.red_flags,
                    action_items=payload.action_items,
                    sentiment=payload.sentiment,
                    confidence_score=payload.confidence,
                    raw_response=content,
                )

        logger.warning("AI response was not valid structured output, using plain text")
        return self._plain_text_draft(content or "")

    def _validate(self, json_str: str) -> Optional[SummaryPayload]:
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            logger.debug(f"JSON decode failed: {e}")
            return None

        if not isinstance(data, dict):
            return None

        try:
            return SummaryPayload.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Summary payload failed validation: {e.error_count()} errors")
            return None

    def _plain_text_draft(self, content: str) -> PlainTextDraft:
        text = self._strip_code_fences(content).strip() or EMPTY_RESPONSE_TEXT
        return PlainTextDraft(
            title=DEFAULT_SUMMARY_TITLE,
            summary_text=text,
            sentiment=Sentiment.NEUTRAL,
            confidence_score=round(max(0.0, DEFAULT_CONFIDENCE - PLAIN_TEXT_CONFIDENCE_PENALTY), 2),
            raw_response=content,
        )

    @staticmethod
    def _strip_code_fences(content: str) -> str:
        return re.sub(r'```[a-zA-Z]*\n?', '', content)

    def _extract_whole_json(self, content: str) -> Optional[str]:
        stripped = content.strip()
        if stripped.startswith('{') and stripped.endswith('}'):
            return stripped
        return None

    def _json_in_fence(self, content: str) -> Optional[str]:
        """Extract JSON from markdown code blocks using brace counting."""
        match = re.search(r'```(?:json)?\s*(\{)', content, re.DOTALL)
        if not match:
            return None
        return self._balanced_object_at(content, match.start(1))

    def _first_json_object(self, content: str) -> Optional[str]:
        """Extract the first balanced JSON object anywhere in the text."""
        json_start = content.find('{')
        if json_start == -1:
            return None
        return self._balanced_object_at(content, json_start)

    def _balanced_object_at(self, content: str, start_pos: int) -> Optional[str]:
        """The ``{...}`` span starting at ``start_pos``, skipping braces inside strings."""
        if start_pos >= len(content) or content[start_pos] != '{':
            return None

        depth = 0
        in_string = False
        escaped = False

        for i in range(start_pos, len(content)):
            char = content[i]

            if escaped:
                escaped = False
                continue
            if char == '\\':
                escaped = True
                continue
            if char == '"':
                in_string = not in_string
                continue

            if not in_string:
                if char == '{':
                    depth += 1
                elif char == '}':
                    depth -= 1
                    if depth == 0:
                        return content[start_pos:i + 1]

        return None
