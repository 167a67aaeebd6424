"""
End-to-end summarization pipeline.

Rate limit -> fetch -> filter -> format -> summarize -> store -> (optionally) deliver.
"""

import asyncio
import logging
from typing import Optional, Tuple

from .delivery import DeliveryService
from ..exceptions import NothingToSummarizeError, PipelineTimeoutError, ScribeException
from ..message_processing.fetcher import ChannelActivityFetcher
from ..message_processing.formatter import TranscriptFormatter
from ..models.delivery import DeliveryAttempt
from ..models.message import TimeWindow
from ..models.pipeline import PipelineRequest, PipelineResult
from ..models.summary import SummaryDraft, SummaryOptions
from ..models.transcript import Transcript
from ..data.base import SummaryRepository
from ..rate_limiting.limiter import RateLimiter
from ..summarization.engine import SummarizationEngine

logger = logging.getLogger(__name__)


class SummaryPipeline:
    """Runs one summarization request from rate check to delivery."""

    def __init__(self,
                 rate_limiter: RateLimiter,
                 fetcher: ChannelActivityFetcher,
                 formatter: TranscriptFormatter,
                 engine: SummarizationEngine,
                 summary_repository: SummaryRepository,
                 delivery_service: Optional[DeliveryService] = None,
                 default_timeout: Optional[float] = None,
                 default_options: Optional[SummaryOptions] = None):
        self.rate_limiter = rate_limiter
        self.fetcher = fetcher
        self.formatter = formatter
        self.engine = engine
        self.summaries = summary_repository
        self.delivery_service = delivery_service
        self.default_timeout = default_timeout
        self.default_options = default_options or SummaryOptions()

    async def run_pipeline(self, request: PipelineRequest) -> PipelineResult:
        """Summarize a channel and store the result.

        The rate check happens before any Slack or AI call. A rejected
        request does no work. A summary is stored only after the AI call
        succeeds, and a delivery failure never fails the run.

        Raises:
            RateLimitedError: Identity is over its ceiling
            FetchError: Slack read failed
            NothingToSummarizeError: No messages survived filtering
            SummarizationError: AI call failed
            PipelineTimeoutError: Fetch and summarize exceeded the timeout
            PersistenceError: Summary could not be stored
        """
        identity = self.rate_limiter.identity_for(request.owner_id, request.rate_limit_scope)
        decision = await self.rate_limiter.require(identity)

        window = request.window or TimeWindow.last_hours()
        timeout = request.timeout_seconds or self.default_timeout

        try:
            transcript, draft = await asyncio.wait_for(
                self._fetch_and_summarize(request, window), timeout=timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Pipeline for channel {request.channel_id} timed out after {timeout}s")
            raise PipelineTimeoutError(timeout) from e

        summary = await self.summaries.create(
            draft,
            owner_id=request.owner_id,
            source_channel_id=request.channel_id,
            organization_id=request.organization_id,
            source_type=request.source_type,
            raw_transcript=transcript.text if request.keep_transcript else None,
            message_count=transcript.message_count,
        )
        logger.info(
            f"Stored summary {summary.id} for channel {request.channel_id} "
            f"({transcript.message_count} messages, {draft.kind})"
        )

        delivery = await self._maybe_deliver(request, summary.id)

        return PipelineResult(
            summary=summary,
            rate_limit=decision,
            message_count=transcript.message_count,
            delivery=delivery,
        )

    async def _fetch_and_summarize(self, request: PipelineRequest,
                                   window: TimeWindow) -> Tuple[Transcript, SummaryDraft]:
        channel = await self.fetcher.fetch_channel(request.token, request.channel_id)
        messages = await self.fetcher.fetch_activity(
            request.token, request.channel_id, window, include_threads=request.include_threads
        )

        users = await self.fetcher.fetch_users(request.token, (m.author_id for m in messages))
        messages = self.fetcher.message_filter.filter_messages(messages, users)
        if not messages:
            raise NothingToSummarizeError(request.channel_id)

        transcript = self.formatter.format(
            messages, users, channel.name, channel_id=request.channel_id, window=window
        )
        draft = await self.engine.summarize(transcript, request.options or self.default_options)
        return transcript, draft

    async def _maybe_deliver(self, request: PipelineRequest,
                             summary_id: str) -> Optional[DeliveryAttempt]:
        preferences = request.delivery
        if preferences is None or not preferences.auto_post or self.delivery_service is None:
            return None

        destination = preferences.destination_for(request.channel_id)
        try:
            return await self.delivery_service.deliver(summary_id, destination)
        except ScribeException as e:
            logger.warning(f"Auto-post of summary {summary_id} not completed: {e.to_log_string()}")
            return None
