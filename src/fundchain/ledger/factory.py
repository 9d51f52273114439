"""
Ledger gateway factory.

Single source of truth for configuration: LedgerConfig (Pydantic Settings),
never raw os.getenv("LEDGER_*") here.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from fundchain.ledger.config import LedgerConfig, ProviderType
from fundchain.ledger.config import get_ledger_config as _get_settings_ledger_config
from fundchain.ledger.http_adapter import HttpLedgerGateway
from fundchain.ledger.interface import LedgerGateway
from fundchain.ledger.mock_adapter import InMemoryLedger

logger = logging.getLogger(__name__)


def _mask(s: str, keep: int = 6) -> str:
    if not s:
        return ""
    if len(s) <= keep:
        return "*" * len(s)
    return f"{s[:keep]}***"


@lru_cache(maxsize=1)
def get_ledger_config() -> LedgerConfig:
    """Return cached LedgerConfig loaded from OS env + .env."""
    return _get_settings_ledger_config()


def build_ledger_gateway(cfg: LedgerConfig) -> LedgerGateway:
    if cfg.provider_type == ProviderType.HTTP:
        return HttpLedgerGateway(cfg)

    if cfg.provider_type == ProviderType.MOCK:
        return InMemoryLedger()

    raise ValueError(f"Unsupported ledger provider_type: {cfg.provider_type}")


@lru_cache(maxsize=1)
def get_ledger_gateway() -> LedgerGateway:
    """Create and cache the ledger gateway using LedgerConfig."""
    cfg = get_ledger_config()

    logger.info(
        "Ledger config resolved",
        extra={
            "provider_type": getattr(cfg.provider_type, "value", str(cfg.provider_type)),
            "gateway_url": cfg.gateway_url,
            "contract_address": cfg.contract_address,
            "api_key": _mask(cfg.api_key),
            "settlement_poll_interval_seconds": cfg.settlement_poll_interval_seconds,
        },
    )

    return build_ledger_gateway(cfg)
