"""
Channel activity fetching from Slack.
"""

import asyncio
import logging
from typing import Awaitable, Dict, Iterable, List, Optional, TypeVar

from .filter import MessageFilter
from ..config.constants import DEFAULT_FETCH_CONCURRENCY, DEFAULT_FETCH_MAX_MESSAGES
from ..exceptions import (
    ChannelAccessError, FetchError, FetchTransientError, FetchUnauthorizedError,
    create_error_context
)
from ..models.message import Channel, ChannelMessage, TimeWindow, UserDirectoryEntry
from ..slack.client import SlackAPIError, SlackClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChannelActivityFetcher:
    """Reads channels, messages, thread replies and users from Slack."""

    def __init__(self,
                 client: SlackClient,
                 concurrency: int = DEFAULT_FETCH_CONCURRENCY,
                 max_messages: int = DEFAULT_FETCH_MAX_MESSAGES,
                 message_filter: Optional[MessageFilter] = None):
        """Initialize fetcher.

        Args:
            client: Slack Web API client
            concurrency: Maximum in-flight reply/user lookups
            max_messages: Cap on top-level messages read per channel
            message_filter: Filter applied before messages are returned
        """
        self.client = client
        self.concurrency = concurrency
        self.max_messages = max_messages
        self.message_filter = message_filter or MessageFilter()

    async def list_channels(self, token: str) -> List[Channel]:
        """List channels the app is a member of."""
        raw = await self._guard(self.client.conversations_list(token), "list_channels")
        channels = [Channel.from_slack(c) for c in raw]
        return [c for c in channels if c.is_member and not c.is_archived]

    async def fetch_channel(self, token: str, channel_id: str) -> Channel:
        raw = await self._guard(
            self.client.conversations_info(token, channel_id), "fetch_channel", channel_id
        )
        return Channel.from_slack(raw)

    async def fetch_messages(self, token: str, channel_id: str,
                             window: Optional[TimeWindow] = None) -> List[ChannelMessage]:
        """Fetch top-level messages in an inclusive window (default: last 24 hours).

        Raises:
            FetchUnauthorizedError: Token invalid or revoked
            FetchTransientError: Rate limited, 5xx or network failure
            ChannelAccessError: Channel missing or app not a member
        """
        window = window or TimeWindow.last_hours()
        slack_window = window.to_slack_params()
        raw_messages: List[dict] = []

        pages = self.client.conversations_history(
            token, channel_id, slack_window["oldest"], slack_window["latest"]
        )
        try:
            async for page in pages:
                raw_messages.extend(page)
                if len(raw_messages) >= self.max_messages:
                    logger.warning(
                        f"Channel {channel_id} has more than {self.max_messages} messages in window, truncating"
                    )
                    raw_messages = raw_messages[:self.max_messages]
                    break
        except SlackAPIError as e:
            raise self._translate(e, "fetch_messages", channel_id) from e
        finally:
            await pages.aclose()

        messages = [ChannelMessage.from_slack(m) for m in raw_messages if "ts" in m]
        filtered = self.message_filter.filter_messages(messages)

        logger.info(
            f"Fetched {len(messages)} messages from {channel_id}, "
            f"{len(filtered)} after filtering"
        )
        return filtered

    async def fetch_thread_replies(self, token: str, channel_id: str, root_id: str,
                                   window: Optional[TimeWindow] = None) -> List[ChannelMessage]:
        """Fetch replies in a thread, excluding the root message."""
        raw = await self._guard(
            self.client.conversations_replies(token, channel_id, root_id),
            "fetch_thread_replies", channel_id
        )
        replies = [
            ChannelMessage.from_slack(m) for m in raw
            if "ts" in m and m["ts"] != root_id
        ]
        if window is not None:
            replies = [r for r in replies if window.contains(r.posted_at)]
        return self.message_filter.filter_messages(replies)

    async def fetch_users(self, token: str, ids: Iterable[str]) -> List[UserDirectoryEntry]:
        """Look up users one by one; failed lookups are logged and skipped."""
        unique_ids = list(dict.fromkeys(i for i in ids if i))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _lookup(user_id: str) -> Optional[UserDirectoryEntry]:
            async with semaphore:
                try:
                    raw = await self.client.users_info(token, user_id)
                except SlackAPIError as e:
                    logger.warning(f"Could not fetch user {user_id}: {e.error}")
                    return None
            return UserDirectoryEntry.from_slack(raw)

        results = await asyncio.gather(*(_lookup(user_id) for user_id in unique_ids))
        users = [user for user in results if user is not None]

        if len(users) < len(unique_ids):
            logger.info(f"Resolved {len(users)}/{len(unique_ids)} users")
        return users

    async def fetch_activity(self, token: str, channel_id: str,
                             window: Optional[TimeWindow] = None,
                             include_threads: bool = True) -> List[ChannelMessage]:
        """Fetch top-level messages plus thread replies, de-duplicated and ordered."""
        window = window or TimeWindow.last_hours()
        messages = await self.fetch_messages(token, channel_id, window)

        if include_threads:
            roots = [m for m in messages if m.is_thread_root]
            if roots:
                semaphore = asyncio.Semaphore(self.concurrency)

                async def _replies(root: ChannelMessage) -> List[ChannelMessage]:
                    async with semaphore:
                        return await self.fetch_thread_replies(token, channel_id, root.id, window)

                results = await asyncio.gather(*(_replies(r) for r in roots), return_exceptions=True)
                for result in results:
                    if isinstance(result, BaseException):
                        raise result
                    messages.extend(result)

                logger.debug(f"Fetched replies for {len(roots)} threads in {channel_id}")

        unique: Dict[str, ChannelMessage] = {}
        for message in messages:
            unique.setdefault(message.id, message)
        return sorted(unique.values(), key=lambda m: (m.posted_at, m.id))

    async def _guard(self, call: Awaitable[T], operation: str, channel_id: Optional[str] = None) -> T:
        try:
            return await call
        except SlackAPIError as e:
            raise self._translate(e, operation, channel_id) from e

    @staticmethod
    def _translate(error: SlackAPIError, operation: str, channel_id: Optional[str]) -> FetchError:
        """Map a Slack API error onto the fetch error taxonomy."""
        context = create_error_context(
            operation=operation,
            channel_id=channel_id,
            slack_error=error.error,
            status_code=error.status_code,
        )

        if error.is_auth_error:
            logger.error(f"Slack rejected token during {operation}: {error.error}")
            return FetchUnauthorizedError(
                f"Slack authorization failed: {error.error}", context=context, cause=error
            )

        if error.is_transient:
            logger.warning(f"Transient Slack failure during {operation}: {error.error}")
            return FetchTransientError(
                f"Slack temporarily unavailable: {error.error}",
                retry_after=error.retry_after, context=context, cause=error
            )

        return ChannelAccessError(
            f"Slack {operation} failed: {error.error}", context=context, cause=error
        )
