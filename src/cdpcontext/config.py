"""Configuration system for cdpcontext."""

import logging

from dotenv import load_dotenv
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30_000.0
DEFAULT_EVENT_BUFFER_SIZE = 100


class EnvConfig(BaseSettings):
    """Environment variable configuration using pydantic-settings."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='allow'
    )

    # Logging
    CDPCONTEXT_LOGGING_LEVEL: str = Field(default='info')
    CDP_LOGGING_LEVEL: str = Field(default='WARNING')

    # Timeouts and buffering
    CDPCONTEXT_DEFAULT_TIMEOUT_MS: float = Field(default=DEFAULT_TIMEOUT_MS, ge=0)
    CDPCONTEXT_EVENT_BUFFER_SIZE: int = Field(default=DEFAULT_EVENT_BUFFER_SIZE, ge=1)

    # Connection
    CDPCONTEXT_CDP_URL: str | None = Field(default=None)


class Config:
    """Configuration class backed by the environment.

    Re-reads environment variables on every access for flexibility.
    """

    _instance: 'Config | None' = None

    def __new__(cls) -> 'Config':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def LOGGING_LEVEL(self) -> str:
        return self.load_config().CDPCONTEXT_LOGGING_LEVEL.lower()

    @property
    def CDP_LOGGING_LEVEL(self) -> str:
        return self.load_config().CDP_LOGGING_LEVEL.upper()

    @property
    def DEFAULT_TIMEOUT_MS(self) -> float:
        return self.load_config().CDPCONTEXT_DEFAULT_TIMEOUT_MS

    @property
    def EVENT_BUFFER_SIZE(self) -> int:
        return self.load_config().CDPCONTEXT_EVENT_BUFFER_SIZE

    @property
    def CDP_URL(self) -> str | None:
        return self.load_config().CDPCONTEXT_CDP_URL or None

    def load_config(self) -> EnvConfig:
        """Load the environment (and .env file) into a validated settings object.

        Values that fail validation are replaced by their defaults; the valid
        ones are kept.
        """
        try:
            return EnvConfig()
        except ValidationError as e:
            invalid = {
                str(error['loc'][0])
                for error in e.errors()
                if error['loc'] and error['loc'][0] in EnvConfig.model_fields
            }
            if not invalid:
                raise
            logger.debug(f'Ignoring invalid environment values for {sorted(invalid)}')
            # init arguments take precedence over the environment
            return EnvConfig(**{name: EnvConfig.model_fields[name].default for name in invalid})


# Create singleton instance
CONFIG = Config()
