"""
Settings for the MarketLearn core.

Values are read from environment variables prefixed with ``MARKETLEARN_`` (or a
``.env`` file) using pydantic-settings.

Usage:
    from marketlearn.config import get_settings

    settings = get_settings()
    data_dir = settings.data_dir
"""

import sys
from functools import lru_cache
from typing import Literal, Optional

from loguru import logger
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Runtime configuration.

    Attributes:
        store_backend: Where collections are persisted: json files, a SQL database, or memory.
        data_dir: Directory for the json backend.
        database_url: SQLAlchemy URL for the sqlalchemy backend.
        training_interval_hours: Minimum time between two training runs.
        collaborator_timeout_seconds: Upper bound on any text-generation or scoring call.
        llm_api_key: Key for the OpenAI-compatible chat endpoint; empty disables it.
        llm_base_url: Base URL of the chat endpoint.
        llm_model: Model name sent with each chat request.
        log_level: Minimum level for the loguru sink installed by configure_logging.
    """

    model_config = SettingsConfigDict(
        env_prefix="MARKETLEARN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    store_backend: Literal["json", "sqlalchemy", "memory"] = "json"
    data_dir: str = "data"
    database_url: str = "sqlite:///marketlearn.db"

    training_interval_hours: float = 24.0
    collaborator_timeout_seconds: float = 20.0

    llm_api_key: Optional[str] = None
    llm_base_url: str = "https://api.openai.com/v1"
    llm_model: str = "gpt-4"

    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with one at the requested level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}",
    )
