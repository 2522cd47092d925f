"""Configuration and settings management."""

from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import field_validator
from pathlib import Path


class Settings(BaseSettings):
    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    # Storage
    DATA_DIR: str = "data"
    CARD_DB_PATH: str = "data/cards.db"
    CACHE_DB_PATH: str = "data/cache.db"
    IMAGE_ROOT: str = "data/images"
    EVENTS_PATH: str = "data/events.jsonl"
    EVENT_SINK: str = "jsonl"

    # Pricing
    POKEMON_TCG_API_KEY: Optional[str] = None
    PRICE_CACHE_TTL_SECONDS: int = 3600
    PRICE_RESULT_TTL_SECONDS: int = 900
    PRICING_WINDOW_DAYS: int = 14
    SOURCE_TIMEOUT_S: float = 10.0
    EUR_USD_RATE: float = 1.08

    # Reasoning capability
    REASONING_URL: Optional[str] = None
    REASONING_API_KEY: Optional[str] = None
    REASONING_TIMEOUT_S: float = 30.0
    REASONING_MAX_TOKENS: int = 4096
    REASONING_TEMPERATURE: float = 0.15

    # Feature extraction service
    FEATURES_URL: Optional[str] = None
    FEATURES_API_KEY: Optional[str] = None
    FEATURES_TIMEOUT_S: float = 20.0

    # Orchestration
    STAGE_MAX_ATTEMPTS: int = 3
    STAGE_BASE_DELAY_S: float = 1.0
    STAGE_MAX_DELAY_S: float = 8.0
    BRANCH_TIMEOUT_S: float = 60.0
    RUN_CLAIM_TTL_S: int = 900

    # Authenticity
    FAKE_THRESHOLD: float = 0.5

    @field_validator(
        'POKEMON_TCG_API_KEY', 'REASONING_URL', 'REASONING_API_KEY', 'FEATURES_URL', 'FEATURES_API_KEY',
        mode='before'
    )
    @classmethod
    def validate_optional_strings(cls, v):
        """Convert empty/whitespace strings to None."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator('LOG_LEVEL', mode='before')
    @classmethod
    def validate_log_level(cls, v):
        """Convert empty/whitespace strings to default."""
        if isinstance(v, str) and not v.strip():
            return "INFO"
        return v

    @field_validator('LOG_FORMAT', mode='before')
    @classmethod
    def validate_log_format(cls, v):
        """Only json and console renderers are supported."""
        if isinstance(v, str) and v.strip().lower() in ("json", "console"):
            return v.strip().lower()
        return "json"

    @field_validator('EVENT_SINK', mode='before')
    @classmethod
    def validate_event_sink(cls, v):
        """Events go to a JSONL file or to the structured log."""
        if isinstance(v, str) and v.strip().lower() in ("jsonl", "log"):
            return v.strip().lower()
        return "jsonl"

    @field_validator('CARD_DB_PATH', 'CACHE_DB_PATH', mode='before')
    @classmethod
    def validate_db_path(cls, v, info):
        """Convert empty/whitespace strings to default."""
        if isinstance(v, str) and not v.strip():
            return cls.model_fields[info.field_name].default
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"
    }


# Global settings instance
settings = Settings()


def ensure_data_dirs(config: Optional[Settings] = None) -> None:
    """Ensure database, image and event directories exist."""
    config = config or settings
    Path(config.DATA_DIR).mkdir(parents=True, exist_ok=True)
    Path(config.IMAGE_ROOT).mkdir(parents=True, exist_ok=True)
    for file_path in (config.CARD_DB_PATH, config.CACHE_DB_PATH, config.EVENTS_PATH):
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
