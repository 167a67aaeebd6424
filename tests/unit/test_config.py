"""
Tests for environment loading, validation and the configuration manager.
"""

import pytest

from summary_scribe.config import (
    ConfigManager, ConfigValidator, EnvironmentLoader, LogLevel, RateLimitBackend, ScribeConfig
)
from summary_scribe.config.constants import DEFAULT_SUMMARIZATION_MODEL
from summary_scribe.exceptions import ConfigurationError

ENV_VARS = [
    "SLACK_API_BASE_URL", "SLACK_BOT_TOKEN", "SLACK_REQUEST_TIMEOUT", "FETCH_CONCURRENCY",
    "FETCH_MAX_MESSAGES", "TRANSCRIPT_TIMEZONE", "OPENROUTER_API_KEY", "ANTHROPIC_API_KEY",
    "AI_BASE_URL", "AI_DEFAULT_MODEL", "AI_FALLBACK_MODEL", "AI_MAX_OUTPUT_TOKENS",
    "AI_TEMPERATURE", "AI_TIMEOUT", "AI_MAX_RETRIES", "RATE_LIMIT_BACKEND", "RATE_LIMIT_CEILING",
    "RATE_LIMIT_WINDOW_SECONDS", "DATABASE_PATH", "DB_POOL_SIZE", "DELIVERY_MAX_RETRIES",
    "DELIVERY_BATCH_SIZE", "DELIVERY_MAX_AGE_HOURS", "DELIVERY_STALE_PENDING_MINUTES",
    "RETRY_SWEEP_INTERVAL_MINUTES", "DASHBOARD_URL", "LOG_LEVEL", "LOG_FILE",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Clear every variable the loader reads; returns a .env path that does not exist."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return str(tmp_path / "missing.env")


class TestEnvironmentLoader:
    """Tests for EnvironmentLoader."""

    def test_defaults(self, clean_env):
        config = EnvironmentLoader.load_config(clean_env)

        assert config.ai.default_model == DEFAULT_SUMMARIZATION_MODEL
        assert config.ai.fallback_model != config.ai.default_model
        assert config.ai.base_url is None
        assert config.rate_limit.ceiling == 10
        assert config.rate_limit.window_seconds == 3600
        assert config.rate_limit.backend == RateLimitBackend.MEMORY
        assert config.delivery.max_retries == 3
        assert config.delivery.dashboard_url is None
        assert config.log_level == LogLevel.INFO

    def test_reads_environment(self, clean_env, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-abc")
        monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-123")
        monkeypatch.setenv("RATE_LIMIT_CEILING", "25")
        monkeypatch.setenv("RATE_LIMIT_BACKEND", "SQLite")
        monkeypatch.setenv("TRANSCRIPT_TIMEZONE", "Europe/Berlin")
        monkeypatch.setenv("DASHBOARD_URL", "https://scribe.example.com")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        config = EnvironmentLoader.load_config(clean_env)

        assert config.ai.api_key == "sk-ant-abc"
        assert config.slack.bot_token == "xoxb-123"
        assert config.rate_limit.ceiling == 25
        assert config.rate_limit.backend == RateLimitBackend.SQLITE
        assert config.slack.transcript_timezone == "Europe/Berlin"
        assert config.delivery.dashboard_url == "https://scribe.example.com"
        assert config.log_level == LogLevel.DEBUG

    def test_openrouter_key_takes_precedence(self, clean_env, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-abc")
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or-xyz")

        config = EnvironmentLoader.load_config(clean_env)

        assert config.ai.api_key == "sk-or-xyz"
        assert config.ai.base_url == "https://openrouter.ai/api"

    def test_unknown_enum_values_fall_back(self, clean_env, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_BACKEND", "redis")
        monkeypatch.setenv("LOG_LEVEL", "chatty")

        config = EnvironmentLoader.load_config(clean_env)

        assert config.rate_limit.backend == RateLimitBackend.MEMORY
        assert config.log_level == LogLevel.INFO

    def test_dotenv_file_is_loaded(self, clean_env, monkeypatch, tmp_path):
        dotenv = tmp_path / ".env"
        dotenv.write_text("ANTHROPIC_API_KEY=sk-ant-from-file\nDELIVERY_BATCH_SIZE=4\n")
        # .env values override the shell; registered here so they are undone afterwards
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-from-shell")
        monkeypatch.setenv("DELIVERY_BATCH_SIZE", "10")

        config = EnvironmentLoader.load_config(str(dotenv))

        assert config.ai.api_key == "sk-ant-from-file"
        assert config.delivery.batch_size == 4


class TestConfigValidator:
    """Tests for ConfigValidator."""

    def _valid_config(self) -> ScribeConfig:
        config = ScribeConfig()
        config.ai.api_key = "sk-ant-abc"
        return config

    def test_valid_config_has_no_errors(self):
        assert ConfigValidator.validate_config(self._valid_config()) == []

    def test_missing_api_key(self):
        errors = ConfigValidator.validate_config(ScribeConfig())

        assert any("API key" in error for error in errors)

    def test_bad_values_are_all_reported(self):
        config = self._valid_config()
        config.slack.bot_token = "not-a-token"
        config.slack.transcript_timezone = "Mars/Olympus_Mons"
        config.rate_limit.ceiling = 0
        config.delivery.sweep_interval_minutes = 0
        config.ai.temperature = 1.5

        errors = ConfigValidator.validate_config(config)

        assert len(errors) == 5
        assert any("timezone" in error for error in errors)


class TestConfigManager:
    """Tests for ConfigManager."""

    @pytest.mark.asyncio
    async def test_invalid_config_raises(self, clean_env):
        manager = ConfigManager(dotenv_path=clean_env)

        with pytest.raises(ConfigurationError) as exc_info:
            await manager.load_config()

        assert exc_info.value.error_code == "INVALID_CONFIG"

    @pytest.mark.asyncio
    async def test_loaded_config_is_cached(self, clean_env, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-abc")
        manager = ConfigManager(dotenv_path=clean_env)

        config = await manager.load_config()

        assert manager.config is config

    def test_config_before_load_raises(self):
        with pytest.raises(ConfigurationError):
            ConfigManager().config
