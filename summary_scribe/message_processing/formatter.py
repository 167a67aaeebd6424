"""
Transcript formatting.

Turns filtered channel messages plus a user directory into the single
document the summarizer reads. Formatting is pure: same input, same output,
regardless of the order the messages arrive in.
"""

from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from .cleaner import MessageCleaner
from ..models.message import ChannelMessage, TimeWindow, UserDirectoryEntry
from ..models.transcript import Transcript

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"


class TranscriptFormatter:
    """Formats messages as ``[timestamp] displayName: text`` lines under a channel header."""

    def __init__(self, timezone: str = "UTC", cleaner: Optional[MessageCleaner] = None):
        self.tz = ZoneInfo(timezone)
        self.cleaner = cleaner or MessageCleaner()

    def format(self,
               messages: Iterable[ChannelMessage],
               users: Iterable[UserDirectoryEntry],
               channel_name: str,
               channel_id: str = "",
               window: Optional[TimeWindow] = None) -> Transcript:
        """Build a transcript.

        Args:
            messages: Messages in any order
            users: Directory used to resolve authors and mentions
            channel_name: Channel name for the header line
            channel_id: Channel id recorded on the transcript
            window: Fetch window; defaults to the span of the messages

        Returns:
            Transcript with one line per message, oldest first
        """
        ordered = sorted(messages, key=lambda m: (m.posted_at, m.id))
        display_names = {user.id: user.display_name for user in users}

        header = f"# Slack Channel: #{channel_name}"
        lines = [self._format_line(message, display_names) for message in ordered]

        if window is not None:
            window_start, window_end = window.oldest, window.latest
        elif ordered:
            window_start, window_end = ordered[0].posted_at, ordered[-1].posted_at
        else:
            window_start = window_end = None

        return Transcript(
            text="\n".join([header] + lines),
            channel_id=channel_id,
            channel_name=channel_name,
            message_count=len(lines),
            window_start=window_start,
            window_end=window_end,
            header=header,
            lines=tuple(lines),
        )

    def _format_line(self, message: ChannelMessage, display_names: dict) -> str:
        timestamp = message.posted_at.astimezone(self.tz).strftime(TIMESTAMP_FORMAT)
        author = display_names.get(message.author_id) or message.author_id
        text = self.cleaner.clean(message.text, display_names)

        parts: List[str] = [text] if text else []
        if message.attachments:
            names = ", ".join(" ".join(a.name.split()) for a in message.attachments)
            parts.append(f"[attachments: {names}]")

        return f"[{timestamp}] {author}: {' '.join(parts)}"
