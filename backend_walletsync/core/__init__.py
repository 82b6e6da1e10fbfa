"""
Core utilities: exceptions shared by listener, storage, and worker.
"""

from backend_walletsync.core.exceptions import (
    ConfigurationError,
    InvalidWalletError,
    RpcError,
    WalletSyncError,
)

__all__ = [
    "ConfigurationError",
    "InvalidWalletError",
    "RpcError",
    "WalletSyncError",
]
