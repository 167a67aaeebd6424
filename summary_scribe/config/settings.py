"""
Configuration dataclasses for Slack Summary Scribe.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .constants import (
    DEFAULT_AI_TIMEOUT_SECONDS, DEFAULT_DB_PATH, DEFAULT_DELIVERY_BATCH_SIZE,
    DEFAULT_DELIVERY_MAX_AGE_HOURS, DEFAULT_DELIVERY_MAX_RETRIES, DEFAULT_FETCH_CONCURRENCY,
    DEFAULT_FETCH_MAX_MESSAGES, DEFAULT_MAX_OUTPUT_TOKENS, DEFAULT_RATE_LIMIT_CEILING,
    DEFAULT_RATE_LIMIT_WINDOW_SECONDS, DEFAULT_RETRY_SWEEP_INTERVAL_MINUTES,
    DEFAULT_STALE_PENDING_MINUTES, DEFAULT_SUMMARIZATION_MODEL, DEFAULT_TEMPERATURE,
    FALLBACK_SUMMARIZATION_MODEL, SLACK_API_BASE_URL,
)


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class RateLimitBackend(Enum):
    MEMORY = "memory"
    SQLITE = "sqlite"


@dataclass
class RateLimitConfig:
    ceiling: int = DEFAULT_RATE_LIMIT_CEILING
    window_seconds: int = DEFAULT_RATE_LIMIT_WINDOW_SECONDS
    backend: RateLimitBackend = RateLimitBackend.MEMORY


@dataclass
class SlackConfig:
    api_base_url: str = SLACK_API_BASE_URL
    bot_token: str = ""
    request_timeout: float = 30.0
    fetch_concurrency: int = DEFAULT_FETCH_CONCURRENCY
    max_messages: int = DEFAULT_FETCH_MAX_MESSAGES
    transcript_timezone: str = "UTC"


@dataclass
class AIConfig:
    api_key: str = ""
    base_url: Optional[str] = None
    default_model: str = DEFAULT_SUMMARIZATION_MODEL
    fallback_model: str = FALLBACK_SUMMARIZATION_MODEL
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    timeout: int = DEFAULT_AI_TIMEOUT_SECONDS
    max_retries: int = 2


@dataclass
class DatabaseConfig:
    path: str = DEFAULT_DB_PATH
    pool_size: int = 5


@dataclass
class DeliveryConfig:
    max_retries: int = DEFAULT_DELIVERY_MAX_RETRIES
    batch_size: int = DEFAULT_DELIVERY_BATCH_SIZE
    max_age_hours: int = DEFAULT_DELIVERY_MAX_AGE_HOURS
    stale_pending_minutes: int = DEFAULT_STALE_PENDING_MINUTES
    sweep_interval_minutes: int = DEFAULT_RETRY_SWEEP_INTERVAL_MINUTES
    dashboard_url: Optional[str] = None


@dataclass
class ScribeConfig:
    """Top-level application configuration."""
    slack: SlackConfig = field(default_factory=SlackConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    log_level: LogLevel = LogLevel.INFO
    log_file: Optional[str] = None
