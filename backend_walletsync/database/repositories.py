"""
Repositories over Database: the wallet registry and the wallet event ledger.

All methods are synchronous and open one short session each. The ledger is
append-only: there is no update or delete.
"""

from __future__ import annotations

import time
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from backend_walletsync.core.exceptions import InvalidWalletError
from backend_walletsync.database.database import Database, TrackedWallet, WalletEventRow
from backend_walletsync.database.models import AppendResult, Wallet, WalletEvent
from backend_walletsync.utils.wallet_utils import is_valid_wallet, short_address
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger(__name__)

_APPEND_ATTEMPTS = 3


def _validate_wallet(address: str) -> str:
    """Validate Solana base58 address; return stripped string. Raises InvalidWalletError if invalid."""
    addr = (address or "").strip()
    if not addr:
        raise InvalidWalletError("wallet address is required")
    if not is_valid_wallet(addr):
        raise InvalidWalletError(f"invalid Solana address: {short_address(addr)}")
    return addr


class WalletRegistry:
    """Monitored wallets. remove() deactivates; add() reactivates a removed wallet."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def add(self, wallet_id: str, address: str, label: str | None = None) -> bool:
        """
        Register or reactivate a wallet. Returns True if it was added or reactivated,
        False if it was already active.
        """
        wallet_id = (wallet_id or "").strip()
        if not wallet_id:
            raise InvalidWalletError("wallet id is required")
        addr = _validate_wallet(address)
        now = int(time.time())
        with self._db.session_scope() as session:
            row = session.query(TrackedWallet).filter(TrackedWallet.wallet_id == wallet_id).first()
            if row is not None:
                if row.is_active and row.address == addr:
                    return False
                row.address = addr
                row.is_active = True
                if label is not None:
                    row.label = label
                row.updated_at = now
                logger.info("wallet_reactivated", wallet_id=wallet_id, address=short_address(addr))
                return True
            session.add(
                TrackedWallet(
                    wallet_id=wallet_id,
                    address=addr,
                    label=label,
                    is_active=True,
                    created_at=now,
                    updated_at=now,
                )
            )
        logger.info("wallet_added", wallet_id=wallet_id, address=short_address(addr))
        return True

    def remove(self, wallet_id: str) -> bool:
        """Soft delete. Returns True if an active wallet was deactivated."""
        with self._db.session_scope() as session:
            row = (
                session.query(TrackedWallet)
                .filter(TrackedWallet.wallet_id == wallet_id, TrackedWallet.is_active.is_(True))
                .first()
            )
            if row is None:
                return False
            row.is_active = False
            row.updated_at = int(time.time())
        logger.info("wallet_removed", wallet_id=wallet_id)
        return True

    def get(self, wallet_id: str) -> Wallet | None:
        with self._db.session_scope() as session:
            row = (
                session.query(TrackedWallet)
                .filter(TrackedWallet.wallet_id == wallet_id, TrackedWallet.is_active.is_(True))
                .first()
            )
            if row is None:
                return None
            return Wallet(wallet_id=row.wallet_id, address=row.address, label=row.label)

    def list_active(self) -> list[Wallet]:
        with self._db.session_scope() as session:
            rows = (
                session.query(TrackedWallet)
                .filter(TrackedWallet.is_active.is_(True))
                .order_by(TrackedWallet.id)
                .all()
            )
            return [Wallet(wallet_id=r.wallet_id, address=r.address, label=r.label) for r in rows]


class EventLedger:
    """Append-only store of wallet events."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def exists(self, signature: str, wallet_id: str | None = None) -> bool:
        """True if any event with this signature is stored (for wallet_id when given)."""
        with self._db.session_scope() as session:
            q = session.query(WalletEventRow.id).filter(WalletEventRow.signature == signature)
            if wallet_id is not None:
                q = q.filter(WalletEventRow.wallet_id == wallet_id)
            return q.first() is not None

    def contains(self, event: WalletEvent) -> bool:
        with self._db.session_scope() as session:
            return self._stored(session, event)

    def append(self, event: WalletEvent) -> AppendResult:
        """Insert one event. A uniqueness violation is reported as a duplicate, not raised."""
        try:
            with self._db.session_scope() as session:
                session.add(WalletEventRow.from_event(event))
        except IntegrityError:
            logger.debug(
                "ledger_duplicate_event",
                wallet_id=event.wallet_id,
                signature=event.signature[:16],
                type=event.type,
            )
            return AppendResult.SKIPPED_DUPLICATE
        return AppendResult.WRITTEN

    def append_all(self, events: Iterable[WalletEvent]) -> list[AppendResult]:
        """
        Insert a signature's events in one transaction, skipping ones already stored.
        Either every new event of the batch is written or none is.

        A uniqueness violation means another writer stored one of the events
        between the check and the insert; the batch is rolled back and re-run
        against the existence check, which then reports it as a duplicate.
        """
        batch = list(events)
        for attempt in range(1, _APPEND_ATTEMPTS + 1):
            try:
                return self._append_batch(batch)
            except IntegrityError:
                if attempt == _APPEND_ATTEMPTS:
                    raise
                logger.debug(
                    "ledger_append_conflict",
                    wallet_id=batch[0].wallet_id,
                    signature=batch[0].signature[:16],
                    attempt=attempt,
                )
        return []

    def _append_batch(self, events: list[WalletEvent]) -> list[AppendResult]:
        results: list[AppendResult] = []
        with self._db.session_scope() as session:
            for event in events:
                if self._stored(session, event):
                    results.append(AppendResult.SKIPPED_DUPLICATE)
                    continue
                session.add(WalletEventRow.from_event(event))
                session.flush()
                results.append(AppendResult.WRITTEN)
        return results

    @staticmethod
    def _stored(session, event: WalletEvent) -> bool:
        wallet_id, signature, type_, asset_id = event.dedup_key
        return (
            session.query(WalletEventRow.id)
            .filter(
                WalletEventRow.wallet_id == wallet_id,
                WalletEventRow.signature == signature,
                WalletEventRow.type == type_,
                WalletEventRow.asset_id == asset_id,
            )
            .first()
            is not None
        )

    def most_recent(self, wallet_id: str) -> tuple[str, int] | None:
        """(signature, slot) of the newest stored event for the wallet, or None."""
        with self._db.session_scope() as session:
            row = (
                session.query(WalletEventRow.signature, WalletEventRow.slot)
                .filter(WalletEventRow.wallet_id == wallet_id)
                .order_by(WalletEventRow.slot.desc(), WalletEventRow.id.desc())
                .first()
            )
            if row is None:
                return None
            return row[0], int(row[1])

    def most_recent_signature(self, wallet_id: str) -> str | None:
        found = self.most_recent(wallet_id)
        return found[0] if found else None

    def list_events(self, wallet_id: str, limit: int = 100) -> list[WalletEvent]:
        """Newest first."""
        with self._db.session_scope() as session:
            rows = (
                session.query(WalletEventRow)
                .filter(WalletEventRow.wallet_id == wallet_id)
                .order_by(WalletEventRow.slot.desc(), WalletEventRow.id.desc())
                .limit(max(1, limit))
                .all()
            )
            return [r.to_event() for r in rows]

    def count_events(self, wallet_id: str | None = None) -> int:
        with self._db.session_scope() as session:
            q = session.query(func.count(WalletEventRow.id))
            if wallet_id is not None:
                q = q.filter(WalletEventRow.wallet_id == wallet_id)
            return int(q.scalar() or 0)
