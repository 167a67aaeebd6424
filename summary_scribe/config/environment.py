"""
Environment variable handling for Slack Summary Scribe configuration.
"""

import os
from typing import Optional
from dotenv import load_dotenv
from .settings import (
    ScribeConfig, SlackConfig, AIConfig, RateLimitConfig, DatabaseConfig,
    DeliveryConfig, LogLevel, RateLimitBackend
)
from .constants import (
    DEFAULT_SUMMARIZATION_MODEL, FALLBACK_SUMMARIZATION_MODEL, SLACK_API_BASE_URL, DEFAULT_DB_PATH
)


class EnvironmentLoader:
    """Loads configuration from environment variables."""

    @staticmethod
    def load_config(dotenv_path: Optional[str] = None) -> ScribeConfig:
        """Load configuration from environment variables."""
        # Load .env file if it exists (override=True to prefer .env over shell env)
        load_dotenv(dotenv_path=dotenv_path, override=True)

        slack_config = SlackConfig(
            api_base_url=os.getenv('SLACK_API_BASE_URL', SLACK_API_BASE_URL),
            bot_token=os.getenv('SLACK_BOT_TOKEN', ''),
            request_timeout=float(os.getenv('SLACK_REQUEST_TIMEOUT', '30')),
            fetch_concurrency=int(os.getenv('FETCH_CONCURRENCY', '5')),
            max_messages=int(os.getenv('FETCH_MAX_MESSAGES', '1000')),
            transcript_timezone=os.getenv('TRANSCRIPT_TIMEZONE', 'UTC'),
        )

        # OpenRouter takes precedence when its key is set
        openrouter_key = os.getenv('OPENROUTER_API_KEY', '')
        if openrouter_key:
            api_key = openrouter_key
            base_url = os.getenv('AI_BASE_URL', 'https://openrouter.ai/api')
        else:
            api_key = os.getenv('ANTHROPIC_API_KEY', '')
            base_url = os.getenv('AI_BASE_URL') or None

        ai_config = AIConfig(
            api_key=api_key,
            base_url=base_url,
            default_model=os.getenv('AI_DEFAULT_MODEL', DEFAULT_SUMMARIZATION_MODEL),
            fallback_model=os.getenv('AI_FALLBACK_MODEL', FALLBACK_SUMMARIZATION_MODEL),
            max_output_tokens=int(os.getenv('AI_MAX_OUTPUT_TOKENS', '2000')),
            temperature=float(os.getenv('AI_TEMPERATURE', '0.3')),
            timeout=int(os.getenv('AI_TIMEOUT', '120')),
            max_retries=int(os.getenv('AI_MAX_RETRIES', '2')),
        )

        backend_str = os.getenv('RATE_LIMIT_BACKEND', 'memory').lower()
        backend = RateLimitBackend.MEMORY
        try:
            backend = RateLimitBackend(backend_str)
        except ValueError:
            pass  # Use default

        rate_limit_config = RateLimitConfig(
            ceiling=int(os.getenv('RATE_LIMIT_CEILING', '10')),
            window_seconds=int(os.getenv('RATE_LIMIT_WINDOW_SECONDS', '3600')),
            backend=backend,
        )

        database_config = DatabaseConfig(
            path=os.getenv('DATABASE_PATH', DEFAULT_DB_PATH),
            pool_size=int(os.getenv('DB_POOL_SIZE', '5')),
        )

        delivery_config = DeliveryConfig(
            max_retries=int(os.getenv('DELIVERY_MAX_RETRIES', '3')),
            batch_size=int(os.getenv('DELIVERY_BATCH_SIZE', '10')),
            max_age_hours=int(os.getenv('DELIVERY_MAX_AGE_HOURS', '72')),
            stale_pending_minutes=int(os.getenv('DELIVERY_STALE_PENDING_MINUTES', '15')),
            sweep_interval_minutes=int(os.getenv('RETRY_SWEEP_INTERVAL_MINUTES', '10')),
            dashboard_url=os.getenv('DASHBOARD_URL') or None,
        )

        # Log level
        log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
        log_level = LogLevel.INFO  # default
        try:
            log_level = LogLevel(log_level_str)
        except ValueError:
            pass  # Use default

        return ScribeConfig(
            slack=slack_config,
            ai=ai_config,
            rate_limit=rate_limit_config,
            database=database_config,
            delivery=delivery_config,
            log_level=log_level,
            log_file=os.getenv('LOG_FILE') or None,
        )

