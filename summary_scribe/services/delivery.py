"""
Delivery of stored summaries back to Slack.

Each attempt is a persisted record moving ``pending -> posted`` or
``pending -> failed``. A failed attempt can be claimed by the retry sweep,
which moves it back to ``pending`` and tries exactly one more post. All
transitions are compare-and-set updates in the store, so a direct
``deliver`` call and a concurrent sweep cannot both post the same summary.

Slack offers no idempotency key for ``chat.postMessage``; a post that
reached Slack but was not recorded locally may be repeated by a retry.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from .slack_format import build_summary_message
from ..config.constants import (
    DEFAULT_DELIVERY_BATCH_SIZE, DEFAULT_DELIVERY_MAX_AGE_HOURS, DEFAULT_DELIVERY_MAX_RETRIES,
    DEFAULT_STALE_PENDING_MINUTES
)
from ..data.base import DeliveryRepository, SummaryRepository
from ..exceptions import DeliveryError, DeliveryInProgressError, ScribeException, SummaryNotFoundError
from ..models.base import BaseModel, utc_now
from ..models.delivery import DeliveryAttempt, DeliveryStatus, Destination
from ..models.summary import Summary
from ..slack.client import SlackAPIError, SlackClient

logger = logging.getLogger(__name__)


class TokenProvider(ABC):
    """Supplies the current Slack token for a summary's owner."""

    @abstractmethod
    async def get_token(self, owner_id: str, organization_id: Optional[str] = None) -> Optional[str]:
        pass


class StaticTokenProvider(TokenProvider):
    """Tokens held in memory, per owner, with an optional default."""

    def __init__(self, default_token: Optional[str] = None,
                 tokens: Optional[Dict[str, str]] = None):
        self.default_token = default_token
        self.tokens: Dict[str, str] = dict(tokens or {})

    def set_token(self, owner_id: str, token: str) -> None:
        self.tokens[owner_id] = token

    async def get_token(self, owner_id: str, organization_id: Optional[str] = None) -> Optional[str]:
        return self.tokens.get(owner_id) or self.default_token


@dataclass
class SweepResult(BaseModel):
    """Outcome of one retry sweep."""
    retried: int = 0
    succeeded: int = 0

    @property
    def failed(self) -> int:
        return self.retried - self.succeeded


class DeliveryService:
    """Posts summaries to Slack and retries failed posts."""

    def __init__(self,
                 summary_repository: SummaryRepository,
                 delivery_repository: DeliveryRepository,
                 slack_client: SlackClient,
                 token_provider: TokenProvider,
                 max_retries: int = DEFAULT_DELIVERY_MAX_RETRIES,
                 batch_size: int = DEFAULT_DELIVERY_BATCH_SIZE,
                 max_age: timedelta = timedelta(hours=DEFAULT_DELIVERY_MAX_AGE_HOURS),
                 stale_pending_after: timedelta = timedelta(minutes=DEFAULT_STALE_PENDING_MINUTES),
                 dashboard_url: Optional[str] = None,
                 clock: Callable[[], datetime] = utc_now):
        """Initialize delivery service.

        Args:
            summary_repository: Store the summaries are read from
            delivery_repository: Store of delivery attempt records
            slack_client: Slack Web API client
            token_provider: Source of the owner's current Slack token
            max_retries: Retries allowed per attempt record
            batch_size: Maximum records handled per sweep
            max_age: Records older than this are never retried
            stale_pending_after: Pending records untouched this long are treated as failed
            dashboard_url: Base URL for the "View Full Summary" button
            clock: Time source
        """
        self.summaries = summary_repository
        self.deliveries = delivery_repository
        self.slack_client = slack_client
        self.token_provider = token_provider
        self.max_retries = max_retries
        self.batch_size = batch_size
        self.max_age = max_age
        self.stale_pending_after = stale_pending_after
        self.dashboard_url = dashboard_url
        self._clock = clock

    async def deliver(self, summary_id: str, destination: Destination) -> DeliveryAttempt:
        """Post a summary once and record the outcome.

        Returns the existing attempt unchanged if the summary was already posted.

        Raises:
            SummaryNotFoundError: Unknown summary
            DeliveryInProgressError: Another attempt for the summary is still pending
        """
        summary = await self.summaries.get(summary_id)
        now = self._clock()

        attempt = DeliveryAttempt(
            summary_id=summary.id,
            target=destination.target,
            owner_id=summary.owner_id,
            organization_id=summary.organization_id,
            created_at=now,
            updated_at=now,
        )

        created = await self.deliveries.create_pending(attempt)
        if created is None:
            live = await self.deliveries.find_live(summary_id)
            if live is not None and live.status == DeliveryStatus.POSTED:
                logger.info(f"Summary {summary_id} already posted by attempt {live.id}")
                return live
            raise DeliveryInProgressError(summary_id, live.id if live else "unknown")

        logger.info(f"Delivering summary {summary_id} to {destination.target} (attempt {created.id})")
        return await self._post_and_record(created, summary)

    async def retry_sweep(self) -> SweepResult:
        """Re-attempt failed (and stale pending) deliveries, oldest first.

        Records already posted are never revisited. Each claimed record gets
        one post and a terminal status.
        """
        now = self._clock()
        created_after = now - self.max_age
        stale_before = now - self.stale_pending_after

        candidates = await self.deliveries.find_retryable(
            max_retries=self.max_retries,
            created_after=created_after,
            stale_before=stale_before,
            limit=self.batch_size,
        )

        result = SweepResult()
        for candidate in candidates:
            claimed = await self.deliveries.claim_for_retry(candidate.id, self.max_retries, stale_before)
            if not claimed:
                logger.debug(f"Delivery attempt {candidate.id} claimed elsewhere, skipping")
                continue

            result.retried += 1
            attempt = await self.deliveries.get(candidate.id)

            try:
                summary = await self.summaries.get(attempt.summary_id)
            except SummaryNotFoundError:
                await self.deliveries.mark_failed(attempt.id, "Summary no longer exists")
                continue

            outcome = await self._post_and_record(attempt, summary)
            if outcome.status == DeliveryStatus.POSTED:
                result.succeeded += 1

        if result.retried:
            logger.info(f"Retry sweep: {result.succeeded}/{result.retried} deliveries succeeded")
        return result

    async def _post_and_record(self, attempt: DeliveryAttempt, summary: Summary) -> DeliveryAttempt:
        """Make exactly one post for a pending attempt and record the terminal status."""
        try:
            response = await self._post(attempt, summary)
        except (SlackAPIError, ScribeException) as e:
            error_message = self._describe_error(e)
            logger.warning(f"Delivery {attempt.id} of summary {summary.id} failed: {error_message}")
            if not await self.deliveries.mark_failed(attempt.id, error_message):
                logger.warning(f"Delivery {attempt.id} was no longer pending when marking failed")
        else:
            recorded = await self.deliveries.mark_posted(
                attempt.id, self._clock(), response.get("ts"), response.get("channel")
            )
            if recorded:
                logger.info(f"Delivered summary {summary.id} as message {response.get('ts')}")
            else:
                logger.warning(f"Delivery {attempt.id} was no longer pending when marking posted")

        return await self.deliveries.get(attempt.id)

    async def _post(self, attempt: DeliveryAttempt, summary: Summary) -> Dict:
        token = await self.token_provider.get_token(attempt.owner_id, attempt.organization_id)
        if not token:
            raise DeliveryError(f"No Slack token available for owner {attempt.owner_id}")

        destination = attempt.destination
        if destination.is_dm:
            channel_id = await self.slack_client.conversations_open(token, destination.user_id)
        else:
            channel_id = destination.channel_id

        text, blocks = build_summary_message(summary, self.dashboard_url)
        return await self.slack_client.chat_post_message(token, channel_id, text, blocks)

    @staticmethod
    def _describe_error(error: Exception) -> str:
        if isinstance(error, SlackAPIError):
            if error.is_auth_error:
                return f"Slack authorization failed ({error.error}); reconnect the Slack integration"
            return f"Slack API error: {error.error}"
        return str(error)
