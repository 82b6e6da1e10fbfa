"""Storage: wallet registry, append-only event ledger, persistence gate and sync cursors."""

from backend_walletsync.database.cursors import CursorStore
from backend_walletsync.database.database import Database, get_database
from backend_walletsync.database.ledger import PersistenceGate
from backend_walletsync.database.models import (
    EVENT_BURN,
    EVENT_CLOSE,
    EVENT_RECEIVE,
    EVENT_SEND,
    EVENT_SWAP,
    AppendResult,
    Cursor,
    Wallet,
    WalletEvent,
)
from backend_walletsync.database.repositories import EventLedger, WalletRegistry

__all__ = [
    "AppendResult",
    "Cursor",
    "CursorStore",
    "Database",
    "EVENT_BURN",
    "EVENT_CLOSE",
    "EVENT_RECEIVE",
    "EVENT_SEND",
    "EVENT_SWAP",
    "EventLedger",
    "PersistenceGate",
    "Wallet",
    "WalletEvent",
    "WalletRegistry",
    "get_database",
]
