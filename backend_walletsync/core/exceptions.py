"""
Application-level exceptions.

ConfigurationError is the only startup-fatal condition; RpcError is transient and
handled per wallet / per chunk by the sync loop.
"""

from __future__ import annotations

from typing import Any


class WalletSyncError(Exception):
    """Base class for wallet sync errors."""


class ConfigurationError(WalletSyncError):
    """Required configuration is missing or malformed (e.g. no RPC endpoint)."""


class RpcError(WalletSyncError):
    """Transport failure or JSON-RPC error object returned by the ledger provider."""

    def __init__(self, message: str, *, code: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data

    @classmethod
    def from_error_object(cls, err: Any) -> "RpcError":
        """Build from a JSON-RPC `error` member (dict or bare value)."""
        if isinstance(err, dict):
            return cls(
                f"Solana RPC error: {err.get('message', err)} (code={err.get('code')})",
                code=err.get("code"),
                data=err.get("data"),
            )
        return cls(f"Solana RPC error: {err}")


class InvalidWalletError(WalletSyncError, ValueError):
    """Wallet address is empty or not a valid base58 public key."""
