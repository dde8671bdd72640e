"""Configuration module for the league history pipeline.

Handles environment variable parsing with defaults and validation.
"""

import os
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

DEFAULT_LEAGUE_ID = "3545957"
DEFAULT_DATABASE_URL = "sqlite:///league_history.db"
TRUE_VALUES = ("1", "true", "yes", "on")


class PipelineConfig(BaseModel):
    """Configuration for one historical scraping run."""

    api_base_url: str = Field(..., description="League source API base URL")
    api_email: str = Field(..., min_length=1, description="Login identity")
    api_password: SecretStr = Field(..., description="Login secret")
    league_id: str = Field(default=DEFAULT_LEAGUE_ID, min_length=1, description="League to scrape")

    # Pacing: every scrape waits delay + uniform(0, jitter) after the previous one
    request_delay_seconds: float = Field(default=2.0, ge=0, description="Minimum gap between scrapes")
    request_jitter_seconds: float = Field(default=1.0, ge=0, description="Random extra gap")
    max_attempts: int = Field(default=1, ge=1, le=5, description="Scrape attempts per division")
    request_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")

    database_url: str = Field(default=DEFAULT_DATABASE_URL, description="SQLAlchemy database URL")
    manage_safe_mode: bool = Field(default=False, description="Disable remote safe mode during the run")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("api_base_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Validate API URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_base_url must be a valid HTTP/HTTPS URL")
        if not urlparse(v).netloc:
            raise ValueError("api_base_url must have a valid domain")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_log_levels:
            raise ValueError(f"Invalid log_level: {v}. Must be one of {valid_log_levels}")
        return v.upper()

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if "://" not in v:
            raise ValueError("database_url must be a SQLAlchemy URL (e.g. sqlite:///file.db)")
        return v

    @model_validator(mode="after")
    def validate_pacing(self) -> "PipelineConfig":
        """A run must never scrape back-to-back."""
        if self.request_delay_seconds + self.request_jitter_seconds <= 0:
            raise ValueError("request_delay_seconds and request_jitter_seconds cannot both be 0")
        return self

    def safe_dict(self) -> dict[str, Any]:
        """Configuration for logging, without secrets."""
        return self.model_dump(exclude={"api_password"})


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a valid integer, got {raw!r}") from e


def load_config() -> PipelineConfig:
    """Load configuration from environment variables with defaults.

    Returns:
        PipelineConfig: Parsed and validated configuration object

    Raises:
        ValueError: If required environment variables are missing or invalid
    """
    api_base_url = os.getenv("LEAGUE_API_BASE_URL")
    if not api_base_url:
        raise ValueError("LEAGUE_API_BASE_URL environment variable is required")

    api_email = os.getenv("LEAGUE_API_EMAIL")
    if not api_email:
        raise ValueError("LEAGUE_API_EMAIL environment variable is required")

    api_password = os.getenv("LEAGUE_API_PASSWORD")
    if not api_password:
        raise ValueError("LEAGUE_API_PASSWORD environment variable is required")

    return PipelineConfig(
        api_base_url=api_base_url,
        api_email=api_email,
        api_password=SecretStr(api_password),
        league_id=os.getenv("LEAGUE_ID", DEFAULT_LEAGUE_ID),
        request_delay_seconds=_env_float("SCRAPE_DELAY_SECONDS", "2.0"),
        request_jitter_seconds=_env_float("SCRAPE_JITTER_SECONDS", "1.0"),
        max_attempts=_env_int("SCRAPE_MAX_ATTEMPTS", "1"),
        request_timeout=_env_float("REQUEST_TIMEOUT", "30.0"),
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        manage_safe_mode=os.getenv("MANAGE_SAFE_MODE", "false").lower() in TRUE_VALUES,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
