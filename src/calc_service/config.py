"""
Configuration management for Calc Service.

Handles loading configuration from environment variables and an optional
.env file, and provides sensible defaults for all settings.
"""

from enum import Enum
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EvaluationMode(str, Enum):
    """When a submitted expression is evaluated."""
    SYNC = "sync"  # Inline; submit returns the terminal record
    ASYNC = "async"  # Queued on the worker pool; submit returns the pending record


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="CALC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    app_name: str = "Calc Service"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # History store settings
    store_backend: Literal["memory", "database"] = "memory"
    database_url: str = "sqlite+aiosqlite:///./calc_service.db"
    database_echo: bool = False

    # Evaluation settings
    evaluation_mode: EvaluationMode = EvaluationMode.SYNC
    workers: int = Field(1, ge=1)  # Concurrent evaluations in async mode
    max_nesting_depth: int = Field(64, ge=1, le=256)  # Each level costs three parser stack frames
    max_expression_length: int = Field(4096, ge=1)

    # Simulated per-operation cost in async mode (milliseconds)
    time_addition_ms: int = Field(0, ge=0)
    time_subtraction_ms: int = Field(0, ge=0)
    time_multiplication_ms: int = Field(0, ge=0)
    time_division_ms: int = Field(0, ge=0)

    # Pending-queue monitor; 0 disables it
    monitor_interval_seconds: float = Field(0.0, ge=0.0)

    @property
    def operation_delays_ms(self) -> dict[str, int]:
        """Per-operator simulated cost keyed by operator symbol."""
        return {
            "+": self.time_addition_ms,
            "-": self.time_subtraction_ms,
            "*": self.time_multiplication_ms,
            "/": self.time_division_ms,
        }


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, loaded once."""
    return Settings()
