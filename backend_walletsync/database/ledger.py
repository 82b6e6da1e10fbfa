"""
Persistence gate: the only path by which events reach the ledger.

Every write is preceded by an existence check, and the ledger's unique key backs
it up, so re-processing a signature (overlapping pages, restarts, forced
resyncs) never produces a second copy of an event.
"""

from __future__ import annotations

import threading
from typing import Sequence

from backend_walletsync.database.models import AppendResult, WalletEvent
from backend_walletsync.database.repositories import EventLedger
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger(__name__)


class PersistenceGate:
    def __init__(self, ledger: EventLedger) -> None:
        self._ledger = ledger
        self.written = 0
        self.skipped = 0
        self._counter_lock = threading.Lock()

    def already_processed(self, signature: str, wallet_id: str) -> bool:
        return self._ledger.exists(signature, wallet_id)

    def try_append(self, event: WalletEvent) -> AppendResult:
        if self._ledger.contains(event):
            self._count(AppendResult.SKIPPED_DUPLICATE)
            return AppendResult.SKIPPED_DUPLICATE
        result = self._ledger.append(event)
        self._count(result)
        return result

    def try_append_all(self, events: Sequence[WalletEvent]) -> list[AppendResult]:
        """All events of one signature, written atomically."""
        if not events:
            return []
        results = self._ledger.append_all(events)
        for result in results:
            self._count(result)
        written = sum(1 for r in results if r is AppendResult.WRITTEN)
        if written:
            logger.debug(
                "events_persisted",
                wallet_id=events[0].wallet_id,
                signature=events[0].signature[:16],
                written=written,
            )
        return results

    def _count(self, result: AppendResult) -> None:
        with self._counter_lock:
            if result is AppendResult.WRITTEN:
                self.written += 1
            else:
                self.skipped += 1
