"""
Message content cleaning and normalization.

Slack encodes mentions, channel links and URLs as ``<...>`` tokens. These
are rewritten into readable text; anything that cannot be resolved is kept
verbatim so no information is lost.
"""

import html
import re
from typing import Dict, Mapping, Optional

USER_MENTION = re.compile(r'<@([UW][A-Z0-9]+)(?:\|([^>]*))?>')
CHANNEL_REF = re.compile(r'<#([CGD][A-Z0-9]+)(?:\|([^>]*))?>')
SPECIAL_MENTION = re.compile(r'<!(here|channel|everyone)(?:\|[^>]*)?>')
SUBTEAM_MENTION = re.compile(r'<!subteam\^[A-Z0-9]+(?:\|([^>]*))?>')
LINK = re.compile(r'<((?:https?|mailto):[^>|]+)(?:\|([^>]*))?>')


class MessageCleaner:
    """Cleans and normalizes Slack message text."""

    def __init__(self, channel_names: Optional[Mapping[str, str]] = None):
        """
        Args:
            channel_names: Optional channel id to name map for bare ``<#C123>`` refs
        """
        self.channel_names: Dict[str, str] = dict(channel_names or {})

    def clean(self, text: str, display_names: Mapping[str, str]) -> str:
        """Resolve references and collapse whitespace onto a single line."""
        if not text:
            return ""

        def _user(match: re.Match) -> str:
            user_id, label = match.group(1), match.group(2)
            name = display_names.get(user_id) or label
            if not name:
                return match.group(0)
            return f"@{name}"

        def _channel(match: re.Match) -> str:
            channel_id, label = match.group(1), match.group(2)
            name = label or self.channel_names.get(channel_id)
            if not name:
                return match.group(0)
            return f"#{name}"

        def _link(match: re.Match) -> str:
            url, label = match.group(1), match.group(2)
            if label and label != url:
                return f"{label} ({url})"
            return url

        content = USER_MENTION.sub(_user, text)
        content = CHANNEL_REF.sub(_channel, content)
        content = SPECIAL_MENTION.sub(lambda m: f"@{m.group(1)}", content)
        content = SUBTEAM_MENTION.sub(
            lambda m: f"@{m.group(1).lstrip('@')}" if m.group(1) else m.group(0), content
        )
        content = LINK.sub(_link, content)

        # Slack escapes &, < and > in message text
        content = html.unescape(content)

        # Remove excessive whitespace
        return re.sub(r'\s+', ' ', content).strip()
