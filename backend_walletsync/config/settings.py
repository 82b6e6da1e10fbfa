"""
Application settings.

Typed, validated view over the environment (see config.env). The sync service,
storage layer, and price/metadata collaborators take their tunables from here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from backend_walletsync.config.env import (
    get_database_url,
    get_float,
    get_int,
    get_solana_rpc_url,
    load_walletsync_env,
)

DEFAULT_POLL_INTERVAL_SEC = 3.0
DEFAULT_ERROR_BACKOFF_SEC = 10.0
DEFAULT_WALLET_BATCH_SIZE = 5
DEFAULT_RPC_MAX_PER_SECOND = 10
DEFAULT_PRICE_MAX_PER_SECOND = 50


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one process."""

    solana_rpc_url: str
    database_url: str
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC
    error_backoff_sec: float = DEFAULT_ERROR_BACKOFF_SEC
    wallet_batch_size: int = DEFAULT_WALLET_BATCH_SIZE
    rpc_max_per_second: int = DEFAULT_RPC_MAX_PER_SECOND
    price_max_per_second: int = DEFAULT_PRICE_MAX_PER_SECOND
    coinvera_api_key: str | None = None
    native_price_usd: float | None = None


def get_settings() -> Settings:
    """
    Return the current application settings.

    Raises ConfigurationError when the RPC endpoint is missing or malformed.
    """
    load_walletsync_env()
    native_price = get_float("NATIVE_PRICE_USD", 0.0)
    price_limit_default = get_int("COINVERA_LIMIT", DEFAULT_PRICE_MAX_PER_SECOND)
    return Settings(
        solana_rpc_url=get_solana_rpc_url(),
        database_url=get_database_url(),
        poll_interval_sec=max(0.1, get_float("POLL_INTERVAL_SEC", DEFAULT_POLL_INTERVAL_SEC)),
        error_backoff_sec=max(0.1, get_float("ERROR_BACKOFF_SEC", DEFAULT_ERROR_BACKOFF_SEC)),
        wallet_batch_size=max(1, get_int("WALLET_BATCH_SIZE", DEFAULT_WALLET_BATCH_SIZE)),
        rpc_max_per_second=max(1, get_int("RPC_MAX_PER_SECOND", DEFAULT_RPC_MAX_PER_SECOND)),
        price_max_per_second=max(1, get_int("PRICE_MAX_PER_SECOND", price_limit_default)),
        coinvera_api_key=(os.getenv("COINVERA_APIKEY") or "").strip() or None,
        native_price_usd=native_price if native_price > 0 else None,
    )
