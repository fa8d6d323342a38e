"""Application configuration from environment variables."""

from __future__ import annotations
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from TWEAKENGINE_* variables or a .env file."""

    model_config = SettingsConfigDict(
        env_prefix="TWEAKENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    artifacts_path: str = "./artifacts"

    # Target system
    adapter_type: str = "fake"
    host: str = "localhost"
    system_state_path: Optional[str] = None

    # Logging
    log_level: str = "INFO"

    # Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
