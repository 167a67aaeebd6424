"""
Message filtering logic.

Drops Slack system events and bot output before anything reaches the
transcript, since both dilute summary quality.
"""

from typing import Dict, Iterable, List, Optional
from ..models.message import ChannelMessage, UserDirectoryEntry

SYSTEM_SUBTYPES = frozenset({
    "channel_join",
    "channel_leave",
    "channel_topic",
    "channel_purpose",
    "channel_name",
    "channel_archive",
    "channel_unarchive",
    "group_join",
    "group_leave",
    "group_topic",
    "group_purpose",
    "group_name",
    "bot_message",
    "bot_add",
    "bot_remove",
    "pinned_item",
    "unpinned_item",
    "reminder_add",
    "message_deleted",
    "tombstone",
})


class MessageFilter:
    """Filters Slack messages down to human conversation."""

    def filter_messages(self,
                        messages: Iterable[ChannelMessage],
                        users: Optional[Iterable[UserDirectoryEntry]] = None) -> List[ChannelMessage]:
        """Filter messages, optionally using the user directory to drop bot authors."""
        directory = {user.id: user for user in (users or ())}
        filtered = [m for m in messages if self._should_include_message(m, directory)]

        # Sort by timestamp to maintain chronological order
        filtered.sort(key=lambda m: (m.posted_at, m.id))
        return filtered

    def _should_include_message(self, message: ChannelMessage,
                                users: Dict[str, UserDirectoryEntry]) -> bool:
        """Check if a message should be included."""
        if message.subtype in SYSTEM_SUBTYPES:
            return False

        if message.bot_id:
            return False

        # Skip empty messages without attachments
        if not message.text.strip() and not message.attachments:
            return False

        author = users.get(message.author_id)
        if author is not None and author.is_bot:
            return False

        return True
