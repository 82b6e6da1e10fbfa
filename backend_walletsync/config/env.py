"""
Environment variable loading and validation for WalletSync.

- SOLANA_RPC_URL: RPC endpoint (read from .env); required.
- HELIUS_API_KEY: Helius API key (builds the RPC URL when SOLANA_RPC_URL is unset)
- SOLANA_NETWORK: devnet | mainnet (default: mainnet); picks the Helius host
- WALLETSYNC_DB_URL / DATABASE_URL: SQLAlchemy URL for the event ledger
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from backend_walletsync.core.exceptions import ConfigurationError

# Project root: config is backend_walletsync/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

HELIUS_MAINNET_URL_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"
HELIUS_DEVNET_URL_TEMPLATE = "https://devnet.helius-rpc.com/?api-key={key}"
DEFAULT_SQLITE_PATH = "walletsync.db"


def load_walletsync_env() -> None:
    """Load .env from project root. Safe to call multiple times."""
    from dotenv import load_dotenv

    load_dotenv(_ENV_PATH)


def get_solana_network() -> str:
    """Return SOLANA_NETWORK from env: devnet | mainnet. Default: mainnet."""
    load_walletsync_env()
    raw = (os.getenv("SOLANA_NETWORK") or os.getenv("SOLANA_CLUSTER") or "mainnet").strip().lower()
    return "devnet" if raw == "devnet" else "mainnet"


def get_solana_rpc_url() -> str:
    """
    Resolve Solana RPC URL from env.
    Order: SOLANA_RPC_URL > HELIUS_API_KEY (network-specific).
    Raises ConfigurationError when neither is set or the URL is not http(s).
    """
    load_walletsync_env()
    url = (os.getenv("SOLANA_RPC_URL") or "").strip()
    if not url:
        key = (os.getenv("HELIUS_API_KEY") or "").strip()
        if key:
            template = (
                HELIUS_DEVNET_URL_TEMPLATE
                if get_solana_network() == "devnet"
                else HELIUS_MAINNET_URL_TEMPLATE
            )
            url = template.format(key=key)
    if not url:
        raise ConfigurationError(
            "SOLANA_RPC_URL environment variable is not set. Please check your .env file."
        )
    if not url.startswith(("http://", "https://")):
        raise ConfigurationError(
            f"Invalid RPC URL format: {mask_url(url)}. URL must start with http:// or https://"
        )
    return url


def get_database_url() -> str:
    """Return WALLETSYNC_DB_URL or DATABASE_URL; else SQLite from WALLETSYNC_DB_PATH or default."""
    load_walletsync_env()
    url = (os.getenv("WALLETSYNC_DB_URL") or os.getenv("DATABASE_URL") or "").strip()
    if url:
        return url
    path = (os.getenv("WALLETSYNC_DB_PATH") or "").strip() or DEFAULT_SQLITE_PATH
    return f"sqlite:///{path}"


def get_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def get_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def mask_url(url: str) -> str:
    """Mask API key in URL if present."""
    if "api-key=" in url:
        return url.split("api-key=")[0] + "api-key=***"
    return url
