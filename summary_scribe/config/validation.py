"""
Configuration validation for Slack Summary Scribe.
"""

from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from .settings import ScribeConfig


class ConfigValidator:
    """Validates configuration settings."""

    @staticmethod
    def validate_config(config: ScribeConfig) -> List[str]:
        """Validate the entire configuration."""
        errors = []

        errors.extend(ConfigValidator._validate_ai_config(config))
        errors.extend(ConfigValidator._validate_slack_config(config))
        errors.extend(ConfigValidator._validate_numeric_ranges(config))

        return errors

    @staticmethod
    def _validate_ai_config(config: ScribeConfig) -> List[str]:
        errors = []
        ai = config.ai

        if not ai.api_key:
            errors.append("No AI API key configured (set ANTHROPIC_API_KEY or OPENROUTER_API_KEY)")

        if not ai.default_model:
            errors.append("AI default model must not be empty")

        if not 0.0 <= ai.temperature <= 1.0:
            errors.append("AI temperature must be between 0 and 1")

        return errors

    @staticmethod
    def _validate_slack_config(config: ScribeConfig) -> List[str]:
        errors = []

        if not config.slack.api_base_url.startswith(("http://", "https://")):
            errors.append("Slack API base URL must be an http(s) URL")

        token = config.slack.bot_token
        if token and not token.startswith(("xoxb-", "xoxp-")):
            errors.append("Slack bot token should start with xoxb- or xoxp-")

        try:
            ZoneInfo(config.slack.transcript_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"Unknown transcript timezone: {config.slack.transcript_timezone}")

        return errors

    @staticmethod
    def _validate_numeric_ranges(config: ScribeConfig) -> List[str]:
        """Validate numeric configuration values are within acceptable ranges."""
        errors = []

        if config.rate_limit.ceiling < 1:
            errors.append("Rate limit ceiling must be at least 1")

        if config.rate_limit.window_seconds < 1:
            errors.append("Rate limit window must be at least 1 second")

        if config.ai.max_output_tokens < 1 or config.ai.max_output_tokens > 100000:
            errors.append("AI max output tokens must be between 1 and 100000")

        if config.slack.fetch_concurrency < 1 or config.slack.fetch_concurrency > 50:
            errors.append("Fetch concurrency must be between 1 and 50")

        if config.slack.max_messages < 1:
            errors.append("Fetch max messages must be at least 1")

        if config.database.pool_size < 1:
            errors.append("Database pool size must be at least 1")

        if config.delivery.max_retries < 0:
            errors.append("Delivery max retries must not be negative")

        if config.delivery.batch_size < 1:
            errors.append("Delivery batch size must be at least 1")

        if config.delivery.max_age_hours < 1:
            errors.append("Delivery max age must be at least 1 hour")

        if config.delivery.sweep_interval_minutes < 1:
            errors.append("Retry sweep interval must be at least 1 minute")

        return errors
