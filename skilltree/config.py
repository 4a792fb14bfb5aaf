"""
Configuration settings for the skilltree progression engine.

Uses Pydantic Settings for environment variable management with .env file support.
Every variable is prefixed with ``SKILLTREE_`` (e.g. ``SKILLTREE_STREAK_THRESHOLD=3``).
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SKILLTREE_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Learning Path
    # ========================================
    grid_columns: int = Field(
        default=5,
        ge=1,
        description="Number of columns in the learning-path grid",
    )

    # ========================================
    # Test Sessions
    # ========================================
    streak_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive correct answers that trigger a streak celebration",
    )
    mistake_threshold: int = Field(
        default=0,
        ge=0,
        description="Unique wrong answers above this count trigger the mistake review",
    )
    unit_passing_score: int = Field(
        default=70,
        ge=0,
        le=100,
        description="Passing score (percent) for unit tests",
    )
    final_test_passing_score: int = Field(
        default=70,
        ge=0,
        le=100,
        description="Default passing score for final tests without explicit configuration",
    )
    review_question_limit: int = Field(
        default=10,
        ge=1,
        description="Maximum number of previously failed questions in a review test",
    )

    # ========================================
    # Overlay timers (seconds)
    # ========================================
    streak_overlay_seconds: float = Field(default=2.5, ge=0)
    mistake_overlay_seconds: float = Field(default=3.0, ge=0)
    success_overlay_seconds: float = Field(default=3.0, ge=0)
    ad_interstitial_seconds: float = Field(default=5.0, ge=0)
    ads_enabled: bool = Field(
        default=True,
        description="Show an ad interstitial after a passed attempt for non-premium learners",
    )

    # ========================================
    # Experience Points
    # ========================================
    unit_base_xp: int = Field(default=10, ge=1)
    final_test_base_xp: int = Field(default=50, ge=1)
    ideal_seconds_per_question: int = Field(default=30, ge=1)

    # ========================================
    # Hearts Economy
    # ========================================
    max_hearts: int = Field(default=5, ge=1)
    hours_per_heart: int = Field(default=5, ge=1)
    zaps_per_heart_purchase: int = Field(default=10, ge=0)

    # ========================================
    # Attempt persistence (resume)
    # ========================================
    session_dir: Path = Field(
        default=Path.home() / ".skilltree" / "attempts",
        description="Directory holding in-progress attempt snapshots",
    )
    attempt_expiry_hours: int = Field(default=24, ge=1)

    # ========================================
    # Platform API
    # ========================================
    api_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the learning platform backend",
    )
    api_key: str | None = Field(default=None, description="Platform API key")
    api_timeout_seconds: float = Field(default=30.0, gt=0)
    api_retry_attempts: int = Field(default=3, ge=1)

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level for the loguru sink",
    )
    log_file: Path | None = Field(default=None, description="Optional rotating log file")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value

    def get_hearts_config(self) -> dict[str, int]:
        """Get hearts economy parameters."""
        return {
            "max_hearts": self.max_hearts,
            "hours_per_heart": self.hours_per_heart,
            "zaps_per_heart_purchase": self.zaps_per_heart_purchase,
        }

    def get_api_config(self) -> dict[str, Any]:
        """Get platform API client parameters."""
        return {
            "base_url": self.api_base_url,
            "api_key": self.api_key,
            "timeout_seconds": self.api_timeout_seconds,
            "retry_attempts": self.api_retry_attempts,
        }

    def has_api_configured(self) -> bool:
        """Check if the platform API credentials are configured."""
        return bool(self.api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
