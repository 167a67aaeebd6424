"""
Summarization engine: transcript in, summary draft out.
"""

import dataclasses
import logging
from typing import Optional

from .claude_client import ClaudeClient, ClaudeOptions, ClaudeResponse
from .prompt_builder import PromptBuilder, SummarizationPrompt
from .response_parser import ResponseParser
from ..config.constants import DEFAULT_SUMMARIZATION_MODEL
from ..exceptions import ModelUnavailableError, NothingToSummarizeError, UpstreamUnavailableError
from ..models.summary import SummaryDraft, SummaryOptions
from ..models.transcript import Transcript

logger = logging.getLogger(__name__)


class SummarizationEngine:
    """Sends a transcript to the AI endpoint and parses the result.

    If the requested model is unavailable (or the endpoint is unreachable
    for it), the engine makes exactly one attempt with the configured
    default model. Any error from that attempt propagates.
    """

    def __init__(self,
                 claude_client: ClaudeClient,
                 default_model: str = DEFAULT_SUMMARIZATION_MODEL,
                 prompt_builder: Optional[PromptBuilder] = None,
                 response_parser: Optional[ResponseParser] = None):
        self.claude_client = claude_client
        self.default_model = default_model
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.response_parser = response_parser or ResponseParser()

    async def summarize(self, transcript: Transcript,
                        options: Optional[SummaryOptions] = None) -> SummaryDraft:
        """Summarize a transcript.

        Args:
            transcript: Normalized channel transcript
            options: Model and generation options

        Returns:
            StructuredDraft when the response parsed, otherwise PlainTextDraft

        Raises:
            NothingToSummarizeError: Transcript has no messages
            UpstreamUnavailableError: Endpoint unreachable for requested and default model
            UpstreamRejectedError: Request rejected (4xx)
            QuotaExceededError: Provider quota exhausted
        """
        options = options or SummaryOptions(model=self.default_model)

        if transcript.is_empty:
            raise NothingToSummarizeError(transcript.channel_id)

        prompt = self.prompt_builder.build_prompt(transcript, options)
        logger.info(
            f"Summarizing {transcript.message_count} messages from #{transcript.channel_name} "
            f"with {options.model} (~{prompt.estimated_tokens} tokens)"
        )

        fallback_used = False
        try:
            response = await self._complete(prompt, options, options.model)
        except (ModelUnavailableError, UpstreamUnavailableError) as e:
            if not self._can_fall_back(options.model):
                raise
            logger.warning(
                f"Model {options.model} failed ({e.error_code}), falling back to {self.default_model}"
            )
            response = await self._complete(prompt, options, self.default_model)
            fallback_used = True

        if response.truncated:
            logger.warning(f"Response from {response.model} was truncated at max_tokens")

        draft = self.response_parser.parse(response.content)
        return dataclasses.replace(
            draft,
            model=response.model,
            requested_model=options.model,
            fallback_used=fallback_used,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
        )

    def _can_fall_back(self, requested_model: str) -> bool:
        normalize = self.claude_client.normalize_model_name
        return bool(self.default_model) and normalize(requested_model) != normalize(self.default_model)

    async def _complete(self, prompt: SummarizationPrompt, options: SummaryOptions,
                        model: str) -> ClaudeResponse:
        claude_options = ClaudeOptions(
            model=model,
            max_tokens=options.max_output_tokens,
            temperature=options.temperature,
        )
        return await self.claude_client.create_summary(
            prompt=prompt.user_prompt,
            system_prompt=prompt.system_prompt,
            options=claude_options,
        )
