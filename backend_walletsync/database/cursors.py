"""
Per-wallet sync cursors.

The cursor is the newest signature already handled for a wallet. It lives in
memory and is rebuilt from the ledger on startup; it only moves forward.
"""

from __future__ import annotations

import time
from typing import Callable, Iterable

from backend_walletsync.database.models import Cursor, Wallet
from backend_walletsync.database.repositories import EventLedger
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger(__name__)


class CursorStore:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._cursors: dict[str, Cursor] = {}

    def get(self, wallet_id: str) -> Cursor | None:
        return self._cursors.get(wallet_id)

    def advance(self, wallet_id: str, signature: str, slot: int) -> bool:
        """
        Move the cursor to signature. Ignored when slot is older than the current
        cursor's slot. Returns True when the cursor changed.
        """
        current = self._cursors.get(wallet_id)
        if current is not None and slot < current.last_slot:
            logger.debug(
                "cursor_regression_ignored",
                wallet_id=wallet_id,
                current_slot=current.last_slot,
                slot=slot,
            )
            return False
        now = self._clock()
        if current is not None and current.last_signature == signature:
            current.last_sync_time = now
            return False
        self._cursors[wallet_id] = Cursor(
            wallet_id=wallet_id,
            last_signature=signature,
            last_sync_time=now,
            last_slot=slot,
        )
        return True

    def touch(self, wallet_id: str) -> None:
        current = self._cursors.get(wallet_id)
        if current is not None:
            current.last_sync_time = self._clock()

    def drop(self, wallet_id: str) -> None:
        self._cursors.pop(wallet_id, None)

    def rehydrate(self, ledger: EventLedger, wallets: Iterable[Wallet]) -> int:
        """Seed cursors from the newest stored event of each wallet. Returns how many were set."""
        restored = 0
        for wallet in wallets:
            found = ledger.most_recent(wallet.wallet_id)
            if found is None:
                continue
            signature, slot = found
            if self.advance(wallet.wallet_id, signature, slot):
                restored += 1
        logger.info("cursors_rehydrated", restored=restored)
        return restored

    def snapshot(self) -> dict[str, Cursor]:
        return dict(self._cursors)

    def __len__(self) -> int:
        return len(self._cursors)

    def __contains__(self, wallet_id: object) -> bool:
        return wallet_id in self._cursors
