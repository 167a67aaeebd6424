"""
Tests for AI response parsing and prompt construction.
"""

import json
from datetime import datetime, timezone

from summary_scribe.models import PlainTextDraft, Sentiment, StructuredDraft, SummaryOptions, Transcript
from summary_scribe.summarization import PromptBuilder, ResponseParser
from summary_scribe.summarization.response_parser import EMPTY_RESPONSE_TEXT

VALID_PAYLOAD = {
    "title": "Release planning",
    "summary": "The team agreed to ship on Friday.",
    "skills": ["python", "release management"],
    "redFlags": ["QA capacity is thin"],
    "actionItems": ["Tag the release", {"task": "Update changelog", "owner": "bob"}],
    "sentiment": "Positive",
    "confidence": 0.92,
}


class TestResponseParser:
    """Tests for ResponseParser."""

    def setup_method(self):
        self.parser = ResponseParser()

    def test_parses_plain_json(self):
        draft = self.parser.parse(json.dumps(VALID_PAYLOAD))

        assert isinstance(draft, StructuredDraft)
        assert draft.is_structured
        assert draft.title == "Release planning"
        assert draft.summary_text == "The team agreed to ship on Friday."
        assert draft.red_flags == ["QA capacity is thin"]
        assert draft.action_items == ["Tag the release", "Update changelog (bob)"]
        assert draft.sentiment == Sentiment.POSITIVE
        assert draft.confidence_score == 0.92

    def test_parses_json_in_code_block(self):
        content = "Here you go:\n```json\n" + json.dumps(VALID_PAYLOAD, indent=2) + "\n```\nThanks"

        draft = self.parser.parse(content)

        assert isinstance(draft, StructuredDraft)
        assert draft.skills == ["python", "release management"]

    def test_parses_json_embedded_in_prose(self):
        content = 'Summary follows {"summary": "Short {braced} note", "sentiment": "negative"} end'

        draft = self.parser.parse(content)

        assert isinstance(draft, StructuredDraft)
        assert draft.summary_text == "Short {braced} note"
        assert draft.sentiment == Sentiment.NEGATIVE

    def test_snake_case_keys_are_accepted(self):
        payload = {"summary_text": "Done", "red_flags": ["x"], "action_items": ["y"], "confidence_score": 0.5}

        draft = self.parser.parse(json.dumps(payload))

        assert draft.red_flags == ["x"]
        assert draft.action_items == ["y"]
        assert draft.confidence_score == 0.5

    def test_defaults_for_missing_fields(self):
        draft = self.parser.parse('{"summary": "Only a summary"}')

        assert isinstance(draft, StructuredDraft)
        assert draft.title == "Conversation Summary"
        assert draft.skills == []
        assert draft.sentiment == Sentiment.NEUTRAL
        assert draft.confidence_score == 0.8

    def test_out_of_range_values_are_clamped(self):
        payload = {"summary": "x", "confidence": 7, "sentiment": "ecstatic", "title": "t" * 200}

        draft = self.parser.parse(json.dumps(payload))

        assert draft.confidence_score == 1.0
        assert draft.sentiment == Sentiment.NEUTRAL
        assert len(draft.title) == 60

    def test_invalid_json_degrades_to_plain_text(self):
        content = "The team discussed {the release but never closed the brace"

        draft = self.parser.parse(content)

        assert isinstance(draft, PlainTextDraft)
        assert not draft.is_structured
        assert draft.summary_text == content
        assert draft.raw_response == content
        assert draft.action_items == []
        assert draft.confidence_score == 0.3

    def test_json_without_summary_degrades_to_plain_text(self):
        draft = self.parser.parse('{"title": "No body"}')

        assert isinstance(draft, PlainTextDraft)

    def test_plain_text_strips_code_fences(self):
        draft = self.parser.parse("```markdown\n## Notes\nAll good\n```")

        assert draft.summary_text == "## Notes\nAll good"

    def test_empty_response(self):
        draft = self.parser.parse("")

        assert isinstance(draft, PlainTextDraft)
        assert draft.summary_text == EMPTY_RESPONSE_TEXT

    def test_draft_to_dict_includes_kind(self):
        draft = self.parser.parse(json.dumps(VALID_PAYLOAD))

        data = draft.to_dict()

        assert data["kind"] == "structured"
        assert data["sentiment"] == "positive"


class TestPromptBuilder:
    """Tests for PromptBuilder."""

    def _transcript(self) -> Transcript:
        return Transcript(
            text="# Slack Channel: #eng\n[2024-03-01 09:00] alice: hi",
            channel_id="C1",
            channel_name="eng",
            message_count=1,
            window_start=datetime(2024, 3, 1, tzinfo=timezone.utc),
            window_end=datetime(2024, 3, 2, tzinfo=timezone.utc),
        )

    def test_user_prompt_contains_transcript_and_window(self):
        prompt = PromptBuilder().build_prompt(self._transcript(), SummaryOptions())

        assert "alice: hi" in prompt.user_prompt
        assert "2024-03-01 00:00" in prompt.user_prompt
        assert prompt.estimated_tokens > 0
        assert prompt.metadata["channel_id"] == "C1"

    def test_json_only_instruction_is_optional(self):
        builder = PromptBuilder()

        strict = builder.build_prompt(self._transcript(), SummaryOptions(require_json=True))
        relaxed = builder.build_prompt(self._transcript(), SummaryOptions(require_json=False))

        assert "Return ONLY the JSON object" in strict.system_prompt
        assert "Return ONLY the JSON object" not in relaxed.system_prompt
        assert "actionItems" in relaxed.system_prompt
