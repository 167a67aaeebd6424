"""
Services: the summarization pipeline and Slack delivery.
"""

from .delivery import DeliveryService, StaticTokenProvider, SweepResult, TokenProvider
from .pipeline import SummaryPipeline
from .slack_format import build_summary_message, render_markdown, truncate

__all__ = [
    'DeliveryService',
    'StaticTokenProvider',
    'SweepResult',
    'TokenProvider',
    'SummaryPipeline',
    'build_summary_message',
    'render_markdown',
    'truncate',
]
