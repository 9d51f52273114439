"""
Ledger gateway configuration.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderType(str, Enum):
    """Supported ledger gateway types."""

    HTTP = "http"
    MOCK = "mock"


class LedgerConfig(BaseSettings):
    """Ledger gateway configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider selection
    provider_type: ProviderType = Field(default=ProviderType.HTTP)

    # Relay endpoint that signs, broadcasts and reads contract calls
    gateway_url: str = Field(default="http://localhost:8545/ledger")
    contract_address: str = Field(default="")
    api_key: str = Field(default="")

    # Timeouts / polling
    request_timeout_seconds: float = Field(default=30.0, gt=0, le=300)
    settlement_poll_interval_seconds: float = Field(default=2.0, gt=0, le=60)

    def get_endpoint_url(self, path: str) -> str:
        base = self.gateway_url.rstrip("/")
        return f"{base}/{path.lstrip('/')}"


def get_ledger_config() -> LedgerConfig:
    return LedgerConfig()
