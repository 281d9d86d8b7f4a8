"""
Configuration settings for the ReQuizle study engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="REQUIZLE_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".requizle",
        description="Directory holding the state database, fallback file and media store",
    )
    storage_key: str = Field(
        default="quiz-storage",
        description="Key under which the persisted document is stored",
    )
    state_db_name: str = Field(
        default="state.db",
        description="SQLite file for the primary key-value store",
    )
    fallback_file_name: str = Field(
        default="state.json",
        description="JSON file used when the primary store is unavailable",
    )
    media_db_name: str = Field(
        default="media.db",
        description="SQLite file for stored media blobs",
    )

    # ========================================
    # Media Loading
    # ========================================
    media_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts before a media load is reported as failed",
    )
    media_retry_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Fixed delay in seconds between media load attempts",
    )
    media_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout for remote media",
    )

    # ========================================
    # Queue Behavior
    # ========================================
    requeue_min_offset: int = Field(
        default=4,
        ge=0,
        description="Minimum distance from the queue head for a missed question",
    )
    requeue_max_offset: int = Field(
        default=6,
        ge=0,
        description="Maximum distance from the queue head for a missed question",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Helper Methods
    # ========================================
    @property
    def state_db_path(self) -> Path:
        return self.data_dir / self.state_db_name

    @property
    def fallback_file_path(self) -> Path:
        return self.data_dir / self.fallback_file_name

    @property
    def media_db_path(self) -> Path:
        return self.data_dir / self.media_db_name

    def get_requeue_offsets(self) -> tuple[int, int]:
        """Return (min, max) requeue offsets, ordered."""
        low, high = self.requeue_min_offset, self.requeue_max_offset
        return (low, high) if low <= high else (high, low)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
