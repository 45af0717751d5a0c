"""
Type-safe configuration using Pydantic Settings
Validates environment variables and provides sensible defaults
"""

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class EngineConfig(BaseSettings):
    """
    Reservation engine configuration with validation
    Automatically loads from SLOT_ENGINE_* environment variables and .env file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SLOT_ENGINE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Remote store settings
    api_base_url: Optional[str] = Field(
        None, description="Base URL of the slot/subscription/booking REST API"
    )
    api_token: Optional[str] = Field(
        None, description="Bearer token sent with every API request"
    )
    api_timeout: int = Field(
        30, ge=1, le=120, description="HTTP request timeout in seconds"
    )

    # Local store settings
    db_file: str = Field("slot_engine.db", description="SQLite database file path")

    # Scheduling settings
    scan_batch_size: int = Field(
        7, ge=1, le=31, description="Dates queried concurrently per scan batch"
    )
    scan_months: int = Field(
        2, ge=1, le=12, description="Months covered by a default availability scan"
    )
    page_size: int = Field(
        100, ge=1, le=500, description="Page size used when paging the slot store"
    )

    log_level: str = Field("INFO", description="Root log level for the CLI")

    @field_validator("api_base_url")
    @classmethod
    def validate_api_base_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate API base URL format"""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError(
                "SLOT_ENGINE_API_BASE_URL must start with http:// or https://"
            )
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name"""
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v}")
        return level


# Singleton instance
_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """
    Get or create the global configuration instance

    Returns:
        EngineConfig: Validated configuration

    Raises:
        ValidationError: If configuration is invalid
    """
    global _config
    if _config is None:
        _config = EngineConfig()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() re-reads the environment"""
    global _config
    _config = None
