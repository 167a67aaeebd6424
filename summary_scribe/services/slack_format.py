"""
Render a stored summary as a Slack message (fallback text plus Block Kit blocks).
"""

from typing import Any, Dict, List, Optional, Tuple

from ..config.constants import SLACK_MAX_SECTION_CHARS
from ..models.summary import Summary

TRUNCATION_NOTE = "\n\n_[Content truncated - view full summary in dashboard]_"
SENTIMENT_EMOJI = {
    "positive": ":large_green_circle:",
    "neutral": ":white_circle:",
    "negative": ":red_circle:",
}


def truncate(text: str, limit: int = SLACK_MAX_SECTION_CHARS) -> str:
    """Cut ``text`` so that it plus the truncation note fits in ``limit`` characters."""
    if len(text) <= limit:
        return text
    cut = max(0, limit - len(TRUNCATION_NOTE))
    return text[:cut].rstrip() + TRUNCATION_NOTE


def render_markdown(summary: Summary) -> str:
    """Slack mrkdwn body: summary text followed by non-empty sections."""
    lines = [summary.summary_text]

    sections = (
        (":white_check_mark: *Action Items*", summary.action_items),
        (":warning: *Red Flags*", summary.red_flags),
        (":bulb: *Skills*", summary.skills),
    )
    for heading, items in sections:
        if items:
            lines.append("")
            lines.append(heading)
            lines.extend(f"• {item}" for item in items)

    return "\n".join(lines)


def build_summary_message(summary: Summary,
                          dashboard_url: Optional[str] = None) -> Tuple[str, List[Dict[str, Any]]]:
    """Build ``(text, blocks)`` for ``chat.postMessage``.

    Args:
        summary: Stored summary to render
        dashboard_url: Base URL for the "View Full Summary" link

    Returns:
        Fallback text and Block Kit blocks, each within Slack's size limits
    """
    body = truncate(render_markdown(summary))
    title = summary.title[:150] or "Conversation Summary"

    blocks: List[Dict[str, Any]] = [
        {"type": "header", "text": {"type": "plain_text", "text": title, "emoji": True}},
        {"type": "section", "text": {"type": "mrkdwn", "text": body}},
        {
            "type": "context",
            "elements": [{
                "type": "mrkdwn",
                "text": (
                    f"{SENTIMENT_EMOJI.get(summary.sentiment.value, '')} {summary.sentiment.value.title()}"
                    f"  |  Confidence {round(summary.confidence_score * 100)}%"
                    f"  |  {summary.message_count} messages"
                ),
            }],
        },
    ]

    if dashboard_url:
        blocks.append({
            "type": "actions",
            "elements": [{
                "type": "button",
                "text": {"type": "plain_text", "text": "View Full Summary"},
                "url": f"{dashboard_url.rstrip('/')}/summaries/{summary.id}",
            }],
        })

    text = truncate(f"*{title}*\n\n{body}")
    return text, blocks
