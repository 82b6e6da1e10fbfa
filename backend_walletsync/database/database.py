"""
SQLAlchemy-backed storage for the wallet registry and the wallet event ledger.

Uses WALLETSYNC_DB_URL / DATABASE_URL for PostgreSQL when set; otherwise SQLite.
One Database instance owns one engine; repositories (WalletRegistry, EventLedger)
share it. Sessions are short-lived: commit on success, roll back on error.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from backend_walletsync.database.models import WalletEvent
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()


# -----------------------------------------------------------------------------
# SQLAlchemy models
# -----------------------------------------------------------------------------


class TrackedWallet(Base):
    """Monitored wallet: one row per wallet id. Removal is a soft delete (is_active = false)."""

    __tablename__ = "tracked_wallets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet_id = Column(String(64), unique=True, nullable=False, index=True)
    address = Column(String(64), nullable=False, index=True)
    label = Column(String(256), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(Integer, nullable=True)  # Unix timestamp
    updated_at = Column(Integer, nullable=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "wallet_id": self.wallet_id,
            "address": self.address,
            "label": self.label or "",
            "is_active": self.is_active,
            "created_at": self.created_at,
        }


class WalletEventRow(Base):
    """
    Append-only wallet event. Unique per (wallet_id, signature, type, asset_id) so a
    multi-mint transfer keeps every leg and two monitored wallets in one transaction
    each keep their own event.
    """

    __tablename__ = "wallet_events"
    __table_args__ = (
        UniqueConstraint("wallet_id", "signature", "type", "asset_id", name="uq_wallet_events_key"),
        Index("ix_wallet_events_wallet_slot", "wallet_id", "slot"),
        Index("ix_wallet_events_wallet_timestamp", "wallet_id", "timestamp"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet_id = Column(String(64), nullable=False, index=True)
    signature = Column(String(128), nullable=False, index=True)
    slot = Column(Integer, nullable=False, index=True)
    type = Column(String(16), nullable=False, index=True)
    venue = Column(String(64), nullable=False, default="Unknown", index=True)
    asset_id = Column(String(64), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    usd_value = Column(Float, nullable=False, default=0.0)
    counterparty_from = Column(String(64), nullable=False, index=True)
    counterparty_to = Column(String(64), nullable=False, index=True)
    timestamp = Column(Integer, nullable=False)
    name = Column(String(256), nullable=False)
    symbol = Column(String(64), nullable=False)
    logo = Column(String(1024), nullable=False)
    status = Column(String(16), nullable=False, default="confirmed")
    created_at = Column(Integer, nullable=True)

    @classmethod
    def from_event(cls, event: WalletEvent) -> "WalletEventRow":
        return cls(**event.to_dict(), created_at=int(time.time()))

    def to_event(self) -> WalletEvent:
        return WalletEvent(
            id=self.id,
            signature=self.signature,
            wallet_id=self.wallet_id,
            slot=self.slot,
            type=self.type,
            venue=self.venue,
            asset_id=self.asset_id,
            amount=self.amount,
            usd_value=self.usd_value,
            counterparty_from=self.counterparty_from,
            counterparty_to=self.counterparty_to,
            timestamp=self.timestamp,
            name=self.name,
            symbol=self.symbol,
            logo=self.logo,
            status=self.status,
        )


# -----------------------------------------------------------------------------
# Engine and session
# -----------------------------------------------------------------------------


def _redact(url: str) -> str:
    return url.split("?")[0].split("//")[-1]


class Database:
    """Engine + session factory for one database URL."""

    def __init__(self, url: str) -> None:
        self.url = url
        connect_args: dict[str, Any] = {}
        engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(url, connect_args=connect_args, **engine_kwargs)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        logger.info("database_engine", url=_redact(url))

    def init_db(self) -> None:
        """Create tables if they do not exist. Safe to call on every startup."""
        try:
            Base.metadata.create_all(bind=self.engine)
            logger.info("database_init_db", url=_redact(self.url))
        except Exception as e:
            logger.exception("database_init_db_failed", error=str(e))
            raise

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Context manager for a single session. Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()


def get_database(url: str | None = None, *, init: bool = True) -> Database:
    """Build a Database for url (default: from environment) and create tables."""
    if url is None:
        from backend_walletsync.config.env import get_database_url

        url = get_database_url()
    db = Database(url)
    if init:
        db.init_db()
    return db
