"""Runtime settings management."""

import os
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings pulled from ``WORLDGEN_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WORLDGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(default="json", description="Logging format")

    # Performance Configuration
    workers: int = Field(
        default_factory=lambda: os.cpu_count() or 1,
        ge=1,
        description="Worker threads for per-cell stages",
    )
    max_sites: int = Field(default=200_000, ge=1, description="Maximum sites per world")


# Instantiate singleton settings object
settings = Settings()
