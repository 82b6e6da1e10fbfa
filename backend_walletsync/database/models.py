"""
Domain models for database entities.

Wallets, cursors, and the append-only wallet event ledger.
Used by the repository layer and the classifier; no ORM coupling here.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Any

EVENT_SEND = "send"
EVENT_RECEIVE = "receive"
EVENT_SWAP = "swap"
EVENT_BURN = "burn"
EVENT_CLOSE = "close"
EVENT_TYPES = frozenset({EVENT_SEND, EVENT_RECEIVE, EVENT_SWAP, EVENT_BURN, EVENT_CLOSE})

STATUS_CONFIRMED = "confirmed"


@dataclass(frozen=True)
class Wallet:
    """A monitored wallet from the registry."""

    wallet_id: str
    address: str
    label: str | None = None


@dataclass
class Cursor:
    """Last processed signature for a wallet. last_slot orders cursors so they never regress."""

    wallet_id: str
    last_signature: str
    last_sync_time: float
    last_slot: int = 0


class AppendResult(str, enum.Enum):
    WRITTEN = "written"
    SKIPPED_DUPLICATE = "skipped_duplicate"


@dataclass(frozen=True)
class WalletEvent:
    """
    One wallet-relevant event. Persisted once; never updated or deleted.

    amount is signed: negative = value left the wallet, positive = value entered.
    """

    signature: str
    wallet_id: str
    slot: int
    type: str
    venue: str
    asset_id: str
    amount: float
    usd_value: float
    counterparty_from: str
    counterparty_to: str
    timestamp: int
    """Unix timestamp (seconds) from the transaction's block time."""
    name: str = "Unknown"
    symbol: str = "UNKNOWN"
    logo: str = ""
    status: str = STATUS_CONFIRMED
    id: int | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.type not in EVENT_TYPES:
            raise ValueError(f"unknown event type: {self.type}")

    @property
    def dedup_key(self) -> tuple[str, str, str, str]:
        return (self.wallet_id, self.signature, self.type, self.asset_id)

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out.pop("id")
        return out
