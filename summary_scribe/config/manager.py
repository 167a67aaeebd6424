"""
Configuration manager: loads and validates configuration.
"""

import logging
from typing import Optional

from .environment import EnvironmentLoader
from .settings import ScribeConfig
from .validation import ConfigValidator
from ..exceptions import ConfigurationError, create_error_context

logger = logging.getLogger(__name__)


class ConfigManager:
    """Loads configuration from the environment and validates it."""

    def __init__(self, dotenv_path: Optional[str] = None):
        self.dotenv_path = dotenv_path
        self._config: Optional[ScribeConfig] = None

    async def load_config(self) -> ScribeConfig:
        """Load and validate configuration.

        Raises:
            ConfigurationError: If validation reports any errors
        """
        config = EnvironmentLoader.load_config(self.dotenv_path)
        errors = ConfigValidator.validate_config(config)

        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ConfigurationError(
                message=f"Invalid configuration: {'; '.join(errors)}",
                error_code="INVALID_CONFIG",
                context=create_error_context(operation="load_config", error_count=len(errors)),
                user_message="The service configuration is invalid. Check the logs for details."
            )

        self._config = config
        return config

    @property
    def config(self) -> ScribeConfig:
        if self._config is None:
            raise ConfigurationError(
                message="Configuration accessed before load_config()",
                error_code="CONFIG_NOT_LOADED",
                context=create_error_context(operation="get_config")
            )
        return self._config
