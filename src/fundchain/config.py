"""
Application configuration with environment-driven settings.
"""

import os
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "fundchain"
    app_env: Literal["dev", "qa", "uat", "prod"] = "dev"
    debug: bool = False
    log_level: str = "INFO"

    # Display
    amount_decimals: int = Field(
        default=18,
        ge=0,
        le=36,
        description="Fractional digits of the ledger's fixed-point amounts",
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lower-case level names from the environment."""
        return str(v).strip().upper()

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


_cached_settings: Settings | None = None


def get_settings() -> Settings:
    global _cached_settings
    # Under pytest the environment is monkeypatched between tests, so never cache there.
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return Settings()
    if _cached_settings is None:
        _cached_settings = Settings()
    return _cached_settings
