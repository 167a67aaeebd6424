"""
AI summarization: prompt building, the Claude client, response parsing and the engine.
"""

from .engine import SummarizationEngine
from .claude_client import ClaudeClient, ClaudeOptions, ClaudeResponse, UsageStats
from .prompt_builder import PromptBuilder, SummarizationPrompt
from .response_parser import ResponseParser, SummaryPayload

__all__ = [
    'SummarizationEngine',
    'ClaudeClient',
    'ClaudeOptions',
    'ClaudeResponse',
    'UsageStats',
    'PromptBuilder',
    'SummarizationPrompt',
    'ResponseParser',
    'SummaryPayload',
]
