"""
Solana ledger access package.

Pages wallet signature history, resolves signatures into transaction bodies in
batches, and extracts per-wallet balance deltas.
"""

from backend_walletsync.solana_listener.listener import (
    BACKFILL,
    INCREMENTAL,
    FetchResult,
    SignatureFetcher,
    SyncMode,
)
from backend_walletsync.solana_listener.models import (
    SOL_MINT,
    BalanceDelta,
    RawTransaction,
    SignatureInfo,
)
from backend_walletsync.solana_listener.parser import extract
from backend_walletsync.solana_listener.resolver import BatchTransactionResolver
from backend_walletsync.solana_listener.rpc import LedgerProvider, SolanaRpcClient

__all__ = [
    "BACKFILL",
    "INCREMENTAL",
    "SOL_MINT",
    "BalanceDelta",
    "BatchTransactionResolver",
    "FetchResult",
    "LedgerProvider",
    "RawTransaction",
    "SignatureFetcher",
    "SignatureInfo",
    "SolanaRpcClient",
    "SyncMode",
    "extract",
]
