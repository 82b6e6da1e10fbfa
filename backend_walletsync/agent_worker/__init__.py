"""Sync service: the loop that keeps every wallet's event ledger current."""

from backend_walletsync.agent_worker.worker import (
    SyncReport,
    WalletSyncService,
    WorkerConfig,
    WorkerState,
)

__all__ = ["SyncReport", "WalletSyncService", "WorkerConfig", "WorkerState"]
