"""
Configuration management for Social Timeline
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Account registry
    accounts_file: str = Field(
        default="accounts.json", description="Path of the JSON account registry"
    )
    schedule_file: str = Field(
        default="scheduled_posts.json", description="Path of the JSON scheduled post store"
    )

    # Networks
    bluesky_pds_url: str = Field(
        default="https://bsky.social",
        description="Bluesky PDS used for accounts without a server URL",
    )
    request_timeout: int = Field(
        default=30, description="HTTP timeout in seconds for Mastodon requests"
    )

    # Timeline
    timeline_limit: int = Field(
        default=50, description="Posts fetched per account on refresh"
    )

    # Worker
    queue_size: int = Field(
        default=32, description="Capacity of the command and result queues"
    )
    poll_interval: float = Field(
        default=0.1, description="Seconds between result queue polls in the CLI"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="social_timeline.log", description="Log file path")

    model_config = {"env_file": ".env", "case_sensitive": False, "extra": "ignore"}

    @field_validator("timeline_limit")
    @classmethod
    def validate_timeline_limit(cls, v):
        if v < 1 or v > 100:
            raise ValueError("timeline_limit must be between 1 and 100")
        return v

    @field_validator("queue_size")
    @classmethod
    def validate_queue_size(cls, v):
        if v < 1:
            raise ValueError("queue_size must be a positive number")
        return v

    @field_validator("request_timeout")
    @classmethod
    def validate_request_timeout(cls, v):
        if v < 1:
            raise ValueError("request_timeout must be at least 1 second")
        return v

    @field_validator("poll_interval")
    @classmethod
    def validate_poll_interval(cls, v):
        if v <= 0:
            raise ValueError("poll_interval must be greater than zero")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        level = v.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("bluesky_pds_url")
    @classmethod
    def validate_bluesky_pds_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("bluesky_pds_url must be an http(s) URL")
        return v.rstrip("/")


def check_env_file_exists() -> bool:
    """Check if .env file exists in the current directory."""
    return Path(".env").exists()


def get_settings() -> Settings:
    """Get application settings with user-friendly error handling."""
    try:
        return Settings()
    except ValueError as e:
        source = ".env file" if check_env_file_exists() else "environment"
        raise ConfigurationError(
            "Configuration invalid!\n\n"
            f"Please check the values set in your {source}:\n"
            "- TIMELINE_LIMIT (1-100)\n"
            "- QUEUE_SIZE (positive number)\n"
            "- REQUEST_TIMEOUT (seconds, at least 1)\n"
            "- BLUESKY_PDS_URL (http or https URL)\n"
            "- LOG_LEVEL (DEBUG, INFO, WARNING, ERROR or CRITICAL)\n\n"
            f"Original error: {e}"
        ) from e
