"""
Async client for the Anthropic Messages API, used to summarize transcripts.

Failures are mapped onto the upstream error taxonomy so the engine can decide
between falling back to another model and surfacing the error.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Optional

import anthropic
import httpx
from anthropic import AsyncAnthropic

from ..exceptions import (
    ModelUnavailableError, QuotaExceededError, SummarizationError, UpstreamRejectedError,
    UpstreamUnavailableError, create_error_context
)
from ..models.base import BaseModel, utc_now
from ..config.constants import (
    DEFAULT_AI_TIMEOUT_SECONDS, DEFAULT_MAX_OUTPUT_TOKENS, DEFAULT_SUMMARIZATION_MODEL,
    DEFAULT_TEMPERATURE
)
from ..slack.client import mask_token

logger = logging.getLogger(__name__)

_MODEL_NOT_FOUND = re.compile(r'(model.*(not found|not exist|invalid|unknown|not a valid))|'
                              r'((not found|invalid|unknown).*model)', re.IGNORECASE)
_DATE_SUFFIX = re.compile(r'-\d{8}$')


@dataclass
class ClaudeOptions(BaseModel):
    """Model and sampling settings for one completion."""
    model: str = DEFAULT_SUMMARIZATION_MODEL
    max_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    temperature: float = DEFAULT_TEMPERATURE


@dataclass
class ClaudeResponse(BaseModel):
    """Text of a completion plus the model that served it."""
    content: str
    model: str
    usage: Dict[str, int]
    stop_reason: str
    message_id: str = ""
    received_at: datetime = field(default_factory=utc_now)

    @property
    def input_tokens(self) -> int:
        return self.usage.get("input_tokens", 0)

    @property
    def output_tokens(self) -> int:
        return self.usage.get("output_tokens", 0)

    @property
    def truncated(self) -> bool:
        return self.stop_reason == "max_tokens"


@dataclass
class UsageStats(BaseModel):
    """Running totals for one client instance."""
    total_requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    failures: int = 0
    rate_limit_hits: int = 0
    last_success_at: Optional[datetime] = None

    def record_success(self, response: ClaudeResponse) -> None:
        self.total_requests += 1
        self.input_tokens += response.input_tokens
        self.output_tokens += response.output_tokens
        self.last_success_at = utc_now()

    def record_failure(self, rate_limited: bool = False) -> None:
        self.failures += 1
        if rate_limited:
            self.rate_limit_hits += 1


class ClaudeClient:
    """Client for the Anthropic Messages API (directly or through OpenRouter)."""

    def __init__(self, api_key: str, base_url: Optional[str] = None,
                 default_timeout: int = DEFAULT_AI_TIMEOUT_SECONDS, max_retries: int = 2,
                 retry_backoff: float = 1.0,
                 http_client: Optional[httpx.AsyncClient] = None):
        """
        Args:
            api_key: Anthropic or OpenRouter API key
            base_url: Endpoint override; an OpenRouter URL switches model naming
            default_timeout: Per-request timeout in seconds
            max_retries: Retries for transient failures (timeouts, 5xx, 429)
            retry_backoff: Base of the exponential backoff in seconds
            http_client: Optional httpx client handed to the SDK
        """
        self.api_key = api_key
        self.base_url = base_url
        self.default_timeout = default_timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.usage_stats = UsageStats()

        self.is_openrouter = bool(base_url and 'openrouter' in base_url.lower())

        logger.debug(
            f"AI client ready (key {mask_token(api_key)}, "
            f"endpoint {base_url or 'anthropic'})"
        )

        # Retries are handled here so error mapping sees every failure
        sdk_options: Dict[str, Any] = {"api_key": api_key, "timeout": default_timeout, "max_retries": 0}
        if base_url:
            sdk_options["base_url"] = base_url
        if http_client is not None:
            sdk_options["http_client"] = http_client

        self._client = AsyncAnthropic(**sdk_options)

    async def close(self):
        await self._client.close()

    def normalize_model_name(self, model: str) -> str:
        """OpenRouter wants ``anthropic/<model>``; the direct API wants the bare name."""
        if self.is_openrouter:
            if '/' in model:
                return model
            return "anthropic/" + _DATE_SUFFIX.sub('', model)
        prefix, _, bare = model.partition('/')
        return bare if prefix == 'anthropic' and bare else model

    def worst_case_seconds(self) -> float:
        """Longest ``create_summary`` can take: every attempt times out and every backoff is slept."""
        attempts = self.max_retries + 1
        backoff = self.retry_backoff * (2 ** self.max_retries - 1)
        return attempts * self.default_timeout + backoff

    async def create_summary(self, prompt: str, system_prompt: str,
                             options: ClaudeOptions) -> ClaudeResponse:
        """Run one completion, retrying transient failures with exponential backoff.

        Raises:
            UpstreamUnavailableError: Network failure, timeout or 5xx after retries
            ModelUnavailableError: Model not found or not served
            UpstreamRejectedError: Any other 4xx
            QuotaExceededError: 429 after retries, or 402 insufficient credits
        """
        model = self.normalize_model_name(options.model)
        request_params = self._build_request_params(prompt, system_prompt, options, model)
        attempt = 0

        while True:
            try:
                response = await self._make_request(request_params)
            except anthropic.APIError as e:
                rate_limited = isinstance(e, anthropic.RateLimitError)
                self.usage_stats.record_failure(rate_limited=rate_limited)
                error = self._map_error(e, model)
                # 429 surfaces as a non-retryable quota error, but is worth waiting out here
                if not (error.retryable or rate_limited) or attempt >= self.max_retries:
                    raise error from e

                delay = self.retry_backoff * 2 ** attempt
                if rate_limited:
                    delay = min(error.retry_after, delay)
                logger.warning(
                    f"AI request for {model} failed ({error.error_code}), "
                    f"retry {attempt + 1}/{self.max_retries} in {delay:.1f}s"
                )
                attempt += 1
                await asyncio.sleep(delay)
                continue

            claude_response = self._process_response(response, model)
            self.usage_stats.record_success(claude_response)
            logger.info(
                f"Completion from {claude_response.model}: "
                f"{claude_response.input_tokens} tokens in, {claude_response.output_tokens} out"
            )
            return claude_response

    def _map_error(self, error: anthropic.APIError, model: str) -> SummarizationError:
        """Translate an SDK error into the upstream taxonomy; ``retryable`` drives the retry loop."""
        if isinstance(error, anthropic.APIConnectionError):
            # APITimeoutError is a connection error too
            return UpstreamUnavailableError(
                f"Could not reach AI provider: {error}",
                model=model,
                context=create_error_context(
                    model=model, timeout=isinstance(error, anthropic.APITimeoutError)
                ),
                cause=error
            )

        status = getattr(error, "status_code", None)
        context = create_error_context(model=model, status_code=status)

        if isinstance(error, anthropic.RateLimitError):
            return QuotaExceededError(
                f"Rate limited by AI provider for model {model}",
                model=model, retry_after=self._extract_retry_after(error),
                context=context, cause=error
            )
        if status == 402:
            return QuotaExceededError(
                f"Insufficient credits for model {model}",
                model=model, context=context, cause=error
            )
        if isinstance(error, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
            return UpstreamRejectedError(
                f"AI provider rejected credentials: {error}",
                model=model, error_code="UPSTREAM_AUTH", context=context, cause=error
            )
        if isinstance(error, anthropic.NotFoundError) or (
                isinstance(error, anthropic.BadRequestError) and _MODEL_NOT_FOUND.search(str(error))):
            logger.error(f"Model {model} is not served by {self.base_url or 'anthropic'}: {error}")
            return ModelUnavailableError(model, context={"error": str(error)}, cause=error)
        if status is not None and status >= 500:
            return UpstreamUnavailableError(
                f"AI provider error {status}", model=model, context=context, cause=error
            )
        return UpstreamRejectedError(
            f"AI provider rejected request ({status}): {error}",
            model=model, context=context, cause=error
        )

    def _build_request_params(self, prompt: str, system_prompt: str,
                              options: ClaudeOptions, model: str) -> Dict[str, Any]:
        return {
            "model": model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "system": system_prompt,
            "messages": [
                {
                    "role": "user",
                    "content": prompt
                }
            ]
        }

    async def _make_request(self, params: Dict[str, Any]) -> Any:
        return await self._client.messages.create(**params)

    def _process_response(self, response: Any, model: str) -> ClaudeResponse:
        """Join the text blocks and read token usage off an SDK message."""
        blocks = getattr(response, 'content', None) or []
        text_parts = [getattr(block, 'text', '') for block in blocks if getattr(block, 'type', 'text') == 'text']
        content = "".join(text_parts)

        usage = {}
        if getattr(response, 'usage', None) is not None:
            usage = {
                "input_tokens": getattr(response.usage, 'input_tokens', 0) or 0,
                "output_tokens": getattr(response.usage, 'output_tokens', 0) or 0,
            }

        # OpenRouter reports the model that actually served the request
        actual_model = getattr(response, 'model', None) or model
        if actual_model != model:
            logger.info(f"Model routing: requested={model}, actual={actual_model}")

        return ClaudeResponse(
            content=content,
            model=actual_model,
            usage=usage,
            stop_reason=getattr(response, 'stop_reason', None) or 'end_turn',
            message_id=getattr(response, 'id', '') or ''
        )

    def _extract_retry_after(self, error: anthropic.APIStatusError) -> int:
        """Seconds to wait: the ``retry-after`` header, a hint in the message, or 60."""
        header = error.response.headers.get("retry-after") if error.response is not None else None
        if header:
            try:
                return max(1, int(float(header)))
            except ValueError:
                pass

        match = re.search(r'retry.+?(\d+).+?second', str(error), re.IGNORECASE)
        if match:
            return int(match.group(1))

        return 60

    def get_usage_stats(self) -> UsageStats:
        return self.usage_stats
