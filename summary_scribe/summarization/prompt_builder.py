"""
Prompt generation for conversation summarization.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

from ..models.base import BaseModel, ensure_utc
from ..models.summary import SummaryOptions
from ..models.transcript import Transcript


@dataclass
class SummarizationPrompt(BaseModel):
    """A complete summarization prompt."""
    system_prompt: str
    user_prompt: str
    estimated_tokens: int
    metadata: Dict[str, Any] = field(default_factory=dict)


class PromptBuilder:
    """Builds the fixed-schema prompt sent to the AI endpoint."""

    # Token estimation (rough approximation: 1 token ≈ 4 characters)
    CHARS_PER_TOKEN = 4

    SYSTEM_PROMPT = """You are an assistant that summarizes workplace chat conversations.

Read the Slack transcript and produce a concise, factual summary. Identify:
- a short title (at most 60 characters)
- a summary of the discussion in a few paragraphs
- skills or expertise people demonstrated
- red flags: risks, blockers, conflicts or concerns raised
- action items, with an owner when one is named
- the overall sentiment: positive, neutral or negative
- your confidence in the summary, from 0.0 to 1.0

Only use information present in the transcript. Refer to people by the
display names shown in the transcript."""

    JSON_SCHEMA = """

Respond with a single JSON object with exactly these fields:
{
  "title": "Short descriptive title",
  "summary": "Summary of the conversation",
  "skills": ["skill demonstrated"],
  "redFlags": ["risk or concern"],
  "actionItems": ["task description (owner)"],
  "sentiment": "positive|neutral|negative",
  "confidence": 0.85
}"""

    JSON_ONLY_INSTRUCTION = """

Return ONLY the JSON object. Do not wrap it in markdown, and do not add any
text before or after it."""

    def build_prompt(self, transcript: Transcript, options: SummaryOptions) -> SummarizationPrompt:
        """Build system and user prompts for a transcript."""
        system_prompt = self.SYSTEM_PROMPT + self.JSON_SCHEMA
        if options.require_json:
            system_prompt += self.JSON_ONLY_INSTRUCTION

        user_prompt = self._build_user_prompt(transcript)
        estimated_tokens = self.estimate_tokens(system_prompt + user_prompt)

        return SummarizationPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            estimated_tokens=estimated_tokens,
            metadata={
                "channel_id": transcript.channel_id,
                "message_count": transcript.message_count,
                "require_json": options.require_json,
            }
        )

    def _build_user_prompt(self, transcript: Transcript) -> str:
        parts = [f"Summarize the following {transcript.message_count} messages"]
        if transcript.window_start and transcript.window_end:
            start = ensure_utc(transcript.window_start)
            end = ensure_utc(transcript.window_end)
            parts.append(
                f" posted between {start.strftime('%Y-%m-%d %H:%M')} and "
                f"{end.strftime('%Y-%m-%d %H:%M')} UTC"
            )
        parts.append(".\n\n")
        parts.append(transcript.text)
        return "".join(parts)

    def estimate_tokens(self, text: str) -> int:
        return len(text) // self.CHARS_PER_TOKEN
