"""
Configuration management.

Centralized environment variable management and validation.
"""

from functools import lru_cache
from typing import Literal, Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from shared.errors import ConfigError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # Allow case-insensitive env var matching
        extra="ignore"
    )

    # Remote workflow API
    api_base_url: str = "http://localhost:5000/api/ambient-visual"
    api_session_cookie: Optional[str] = None
    api_token: Optional[str] = None
    request_timeout: float = 60.0
    prompt_generation_timeout: float = 600.0

    # Redis pub/sub for UI notifications (optional)
    redis_url: Optional[str] = None

    # Environment
    environment: Literal["development", "staging", "production", "test"] = "development"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Reference uploads
    max_reference_images: int = 4
    max_reference_size_mb: int = 10

    # Composition autosave
    step4_settings_debounce_seconds: float = 2.0

    @field_validator("api_base_url")
    @classmethod
    def validate_api_base_url(cls, v: str) -> str:
        """Validate API base URL format."""
        if not v:
            raise ConfigError("API_BASE_URL is required")
        if not v.startswith(("http://", "https://")):
            raise ConfigError("API_BASE_URL must be a valid HTTP/HTTPS URL")
        return v.rstrip("/")

    @field_validator("request_timeout", "prompt_generation_timeout")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        """Validate that timeouts are positive."""
        if v <= 0:
            raise ConfigError("Request timeouts must be greater than 0")
        return v

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate Redis URL format when provided."""
        if not v:
            return None
        if not v.startswith(("redis://", "rediss://")):
            raise ConfigError("REDIS_URL must start with redis:// or rediss://")
        return v

    @field_validator("max_reference_images")
    @classmethod
    def validate_max_reference_images(cls, v: int) -> int:
        """Validate reference image limit."""
        if v < 1 or v > 20:
            raise ConfigError("MAX_REFERENCE_IMAGES must be between 1 and 20")
        return v

    @field_validator("max_reference_size_mb")
    @classmethod
    def validate_max_reference_size_mb(cls, v: int) -> int:
        """Validate reference upload size limit."""
        if v <= 0:
            raise ConfigError("MAX_REFERENCE_SIZE_MB must be greater than 0")
        return v

    @field_validator("step4_settings_debounce_seconds")
    @classmethod
    def validate_debounce(cls, v: float) -> float:
        """Validate autosave debounce delay."""
        if v < 0:
            raise ConfigError("STEP4_SETTINGS_DEBOUNCE_SECONDS cannot be negative")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the settings singleton.

    Returns:
        Loaded Settings instance

    Raises:
        ConfigError: If configuration is invalid
    """
    try:
        return Settings()
    except Exception as e:
        # Re-raise as ConfigError for consistency
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(f"Failed to load configuration: {str(e)}") from e
