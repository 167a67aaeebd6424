"""
Configuration management for Slack Summary Scribe.
"""

from .settings import (
    ScribeConfig, SlackConfig, AIConfig, RateLimitConfig, DatabaseConfig,
    DeliveryConfig, LogLevel, RateLimitBackend
)
from .environment import EnvironmentLoader
from .validation import ConfigValidator
from .manager import ConfigManager

__all__ = [
    'ScribeConfig', 'SlackConfig', 'AIConfig', 'RateLimitConfig', 'DatabaseConfig',
    'DeliveryConfig', 'LogLevel', 'RateLimitBackend',
    'EnvironmentLoader', 'ConfigValidator', 'ConfigManager',
]
