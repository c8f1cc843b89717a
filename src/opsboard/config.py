"""
Configuration management for opsboard.

Uses Pydantic Settings to load configuration from environment variables
(prefixed with ``OPSBOARD_``) with sensible defaults. Nothing here is
required: the derivation functions work with the defaults, and callers can
pass their own ``Settings`` instance when they need different formatting.

Usage:
    from opsboard.config import settings
    print(settings.deploy_time_format)
"""

from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables can be set directly or via a .env file
    in the project root directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="OPSBOARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Display Formatting
    # ==========================================================================

    deploy_time_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="strftime format for the deployment completion time",
    )
    stage_time_format: str = Field(
        default="%H:%M:%S",
        description="strftime format for per-step and per-stage timestamps",
    )
    display_timezone: Optional[str] = Field(
        default=None,
        description=(
            "IANA timezone used when formatting timestamps (e.g. 'Asia/Seoul'). "
            "When unset, timestamps keep the offset they were recorded with."
        ),
    )

    # ==========================================================================
    # Status Normalization
    # ==========================================================================

    # See pipeline_statuses.py for how the threshold is applied
    status_fuzzy_threshold: float = Field(
        default=90.0,
        description="Minimum rapidfuzz ratio for a misspelled success status",
    )

    # ==========================================================================
    # Deploy Log Pattern Catalog
    # ==========================================================================

    pattern_catalog_path: Optional[str] = Field(
        default=None,
        description="JSON file with step label / marker overrides (see deploy/patterns.py)",
    )

    # ==========================================================================
    # Logging Configuration
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_format: str = Field(
        default="console",
        description="Log format: 'json' for production, 'console' for dev",
    )

    # ==========================================================================
    # Validators
    # ==========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return upper_v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        lower_v = v.lower()
        if lower_v not in {"json", "console"}:
            raise ValueError("log_format must be 'json' or 'console'")
        return lower_v

    @field_validator("display_timezone")
    @classmethod
    def validate_display_timezone(cls, v: Optional[str]) -> Optional[str]:
        """Reject timezone names the zoneinfo database does not know."""
        if v is None or not v.strip():
            return None
        try:
            ZoneInfo(v.strip())
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown display_timezone: {v}") from exc
        return v.strip()

    @field_validator("status_fuzzy_threshold")
    @classmethod
    def validate_fuzzy_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError("status_fuzzy_threshold must be between 0 and 100")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures we only load settings once,
    which is important because loading from .env can be slow.
    """
    return Settings()


# Convenience alias for importing
settings = get_settings()
