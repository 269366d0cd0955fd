"""Configuration system for fetchify.

Values come from the environment (and an optional ``.env`` file). ``CONFIG``
re-reads the environment on every property access so tests and the CLI can
adjust settings at runtime.
"""

import logging
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)
DEFAULT_DEBUG_PORT = 9222
DEFAULT_TIMEOUT_MS = 30000
DEFAULT_PROFILE_DIR_NAME = 'temp_chrome_data'


class EnvConfig(BaseSettings):
    """Environment variable configuration using pydantic-settings."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='allow'
    )

    # Logging
    FETCHIFY_LOGGING_LEVEL: str = Field(default='info')
    CDP_LOGGING_LEVEL: str = Field(default='WARNING')

    # Browser defaults
    FETCHIFY_HEADLESS: bool | None = Field(default=None)
    FETCHIFY_USER_DATA_DIR: str | None = Field(default=None)
    FETCHIFY_DEBUG_PORT: int | None = Field(default=None)
    FETCHIFY_TIMEOUT_MS: int | None = Field(default=None)
    CHROME_PATH: str | None = Field(default=None)


class Config:
    """Configuration class backed by environment variables.

    Re-reads environment variables on every access for flexibility.
    """

    _instance: 'Config | None' = None

    def __new__(cls) -> 'Config':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def LOGGING_LEVEL(self) -> str:
        return os.getenv('FETCHIFY_LOGGING_LEVEL', 'info').lower()

    @property
    def CDP_LOGGING_LEVEL(self) -> str:
        return os.getenv('CDP_LOGGING_LEVEL', 'WARNING').upper()

    @property
    def USER_DATA_DIR(self) -> Path:
        path = os.getenv('FETCHIFY_USER_DATA_DIR')
        if path:
            return Path(path).expanduser().resolve()
        return Path.cwd() / DEFAULT_PROFILE_DIR_NAME

    @property
    def CHROME_PATH(self) -> str | None:
        return os.getenv('CHROME_PATH') or None

    def load_config(self) -> dict:
        """Load browser settings overridden through the environment.

        Only keys that are actually set are returned, so the result can be
        layered between the built-in defaults and explicit caller overrides.
        """
        env_config = EnvConfig()
        config: dict = {}
        if env_config.FETCHIFY_HEADLESS is not None:
            config['headless'] = env_config.FETCHIFY_HEADLESS
        if env_config.FETCHIFY_USER_DATA_DIR:
            config['user_data_dir'] = self.USER_DATA_DIR
        if env_config.FETCHIFY_DEBUG_PORT is not None:
            config['debug_port'] = env_config.FETCHIFY_DEBUG_PORT
        if env_config.FETCHIFY_TIMEOUT_MS is not None:
            config['timeout'] = env_config.FETCHIFY_TIMEOUT_MS
        logger.debug(f'Browser settings from environment: {config}')
        return config


# Create singleton instance
CONFIG = Config()
