from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from admission.app.core.utils import parse_duration


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Global rate limit policy
    rate_limit_max: int = 1000
    rate_limit_time_window: int | str = 60000  # milliseconds or "1 minute"
    rate_limit_ban: int | None = None  # None disables banning
    rate_limit_skip_on_error: bool = False
    rate_limit_global: bool = True  # Apply to every route unless opted out
    rate_limit_continue_exceeding: bool = False  # Refresh window on each exceeding request

    # Local store
    rate_limit_cache_size: int = 5000  # Max distinct keys per scope (LRU)

    # Key namespace used by shared stores
    rate_limit_key_prefix: str = "admission-rate-limit-"

    # Header rendering (HTTP integration only)
    rate_limit_add_headers: bool = True
    rate_limit_add_headers_on_exceeding: bool = True
    rate_limit_enable_draft_spec: bool = False

    # Redis settings (optional)
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"
    redis_connect_timeout: float = 0.5  # Seconds, keep low so skip_on_error kicks in fast

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @property
    def rate_limit_time_window_ms(self) -> int:
        """Time window in milliseconds."""
        return parse_duration(self.rate_limit_time_window)

    @field_validator("rate_limit_max", "rate_limit_cache_size")
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator("rate_limit_time_window")
    @classmethod
    def validate_time_window(cls, v: Any) -> int | str:
        """Validate the time window parses to a positive duration."""
        if parse_duration(v) <= 0:
            raise ValueError("rate_limit_time_window must be a positive duration")
        return v

    @field_validator("rate_limit_ban")
    @classmethod
    def validate_ban(cls, v: int | None) -> int | None:
        """Validate ban threshold is positive when set."""
        if v is not None and v < 1:
            raise ValueError("rate_limit_ban must be at least 1 when set")
        return v

    @field_validator("redis_connect_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in ("text", "structured", "json"):
            raise ValueError("log_format must be one of: text, structured, json")
        return v.lower()

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
