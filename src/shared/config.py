"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017")
    mongodb_database: str = Field(default="talent_matcher")

    # OpenAI / LLM
    openai_api_key: SecretStr = Field(default=SecretStr(""))
    openai_model: str = Field(default="gpt-4o")
    openai_max_tokens: int = Field(default=4096)
    openai_temperature: float = Field(default=0.3)

    # Matching pipeline
    matching_batch_size: int = Field(
        default=15, description="Opportunities sent to the oracle per batch"
    )
    matching_pool_limit: int = Field(
        default=50, description="Maximum opportunities considered per run"
    )
    matching_max_retries: int = Field(
        default=10, description="Rate-limit retries before a batch is skipped"
    )
    matching_base_delay_ms: int = Field(default=1000)
    matching_max_delay_ms: int = Field(default=60000)
    matching_inter_batch_delay_ms: int = Field(
        default=1000, description="Courtesy delay between consecutive batches"
    )

    # Worker
    worker_poll_interval_seconds: float = Field(default=1.0)
    worker_stale_task_seconds: int = Field(
        default=900, description="Running tasks older than this are requeued"
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
