"""
Wallet sync service: fetch → resolve → extract → detect venue → classify → persist.

One cycle ("tick") walks the active wallets in small concurrent batches. A wallet
without a cursor is backfilled through its whole history; a wallet with one is
tailed incrementally. Failures are isolated per wallet; a failed wallet keeps its
cursor and is retried on the next tick. Cursors move forward only after a wallet's
signatures have been handed to the persistence gate. Ledger calls run in worker
threads so a database round trip does not stall the other wallets of a batch.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from backend_walletsync.analysis_engine.classifier import EventClassifier
from backend_walletsync.analysis_engine.venues import detect
from backend_walletsync.core.exceptions import InvalidWalletError
from backend_walletsync.database.cursors import CursorStore
from backend_walletsync.database.ledger import PersistenceGate
from backend_walletsync.database.models import AppendResult, Wallet, WalletEvent
from backend_walletsync.database.repositories import EventLedger, WalletRegistry
from backend_walletsync.ingestion.rate_limiter import RequestScheduler
from backend_walletsync.solana_listener.listener import (
    BACKFILL,
    INCREMENTAL,
    SignatureFetcher,
    SyncMode,
)
from backend_walletsync.solana_listener.models import RawTransaction
from backend_walletsync.solana_listener.parser import extract
from backend_walletsync.solana_listener.resolver import BatchTransactionResolver, chunked
from backend_walletsync.solana_listener.rpc import LedgerProvider
from backend_walletsync.walletsync_logging import bind_wallet, get_logger

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL_SEC = 3.0
DEFAULT_ERROR_BACKOFF_SEC = 10.0
DEFAULT_WALLET_BATCH_SIZE = 5
DEFAULT_BATCH_PAUSE_SEC = 0.1
DEFAULT_INITIAL_BACKFILL_PAUSE_SEC = 1.0
DEFAULT_PRICE_REFRESH_INTERVAL_SEC = 300.0
DEFAULT_HEARTBEAT_EVERY_TICKS = 20


@dataclass
class WorkerConfig:
    """
    Timing knobs for the sync loop.

    poll_interval_sec: pause between ticks.
    error_backoff_sec: pause after a tick that failed as a whole.
    wallet_batch_size: wallets synced concurrently within a tick.
    batch_pause_sec: pause between wallet batches.
    initial_backfill_pause_sec: pause between sequential startup backfills.
    """

    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC
    error_backoff_sec: float = DEFAULT_ERROR_BACKOFF_SEC
    wallet_batch_size: int = DEFAULT_WALLET_BATCH_SIZE
    batch_pause_sec: float = DEFAULT_BATCH_PAUSE_SEC
    initial_backfill_pause_sec: float = DEFAULT_INITIAL_BACKFILL_PAUSE_SEC
    price_refresh_interval_sec: float = DEFAULT_PRICE_REFRESH_INTERVAL_SEC
    heartbeat_every_ticks: int = DEFAULT_HEARTBEAT_EVERY_TICKS

    def __post_init__(self) -> None:
        self.poll_interval_sec = max(0.0, float(self.poll_interval_sec))
        self.error_backoff_sec = max(0.0, float(self.error_backoff_sec))
        self.wallet_batch_size = max(1, int(self.wallet_batch_size))
        self.batch_pause_sec = max(0.0, float(self.batch_pause_sec))
        self.initial_backfill_pause_sec = max(0.0, float(self.initial_backfill_pause_sec))
        self.heartbeat_every_ticks = max(1, int(self.heartbeat_every_ticks))


@dataclass
class WorkerState:
    """Mutable counters for status and heartbeat."""

    running: bool = False
    started_at: float | None = None
    last_tick_at: float | None = None
    tick_count: int = 0
    wallet_errors: int = 0
    tick_errors: int = 0
    last_error: str | None = None
    last_price_refresh_at: float | None = None


@dataclass
class SyncReport:
    """Outcome of one wallet sync."""

    wallet_id: str
    mode: str
    fetched: int = 0
    failed_onchain: int = 0
    already_stored: int = 0
    unresolved: int = 0
    classify_errors: int = 0
    events_written: int = 0
    events_skipped: int = 0
    cursor: str | None = None
    duration_sec: float = 0.0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallet_id": self.wallet_id,
            "mode": self.mode,
            "fetched": self.fetched,
            "failed_onchain": self.failed_onchain,
            "already_stored": self.already_stored,
            "unresolved": self.unresolved,
            "classify_errors": self.classify_errors,
            "events_written": self.events_written,
            "events_skipped": self.events_skipped,
            "cursor": self.cursor,
            "duration_sec": round(self.duration_sec, 3),
            "error": self.error,
        }


class WalletSyncService:
    """Keeps the event ledger of every active wallet in step with the chain."""

    def __init__(
        self,
        provider: LedgerProvider,
        registry: WalletRegistry,
        ledger: EventLedger,
        classifier: EventClassifier,
        *,
        cursors: CursorStore | None = None,
        config: WorkerConfig | None = None,
        price_refresher: Callable[[], Awaitable[Any]] | None = None,
        schedulers: list[RequestScheduler] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.ledger = ledger
        self.cursors = cursors or CursorStore()
        self.config = config or WorkerConfig()
        self.state = WorkerState()
        self.gate = PersistenceGate(ledger)
        self._classifier = classifier
        self._fetcher = SignatureFetcher(provider, sleep=sleep)
        self._resolver = BatchTransactionResolver(provider)
        self._price_refresher = price_refresher
        self._schedulers = list(schedulers or [])
        self._sleep = sleep
        self._stop_event: asyncio.Event | None = None
        self._locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # One wallet
    # ------------------------------------------------------------------

    def _lock_for(self, wallet_id: str) -> asyncio.Lock:
        lock = self._locks.get(wallet_id)
        if lock is None:
            lock = self._locks[wallet_id] = asyncio.Lock()
        return lock

    async def sync(self, wallet: Wallet, mode: SyncMode | None = None) -> SyncReport:
        """
        Bring one wallet up to date. Backfill when it has no cursor, incremental
        otherwise. Fetch errors propagate and leave the cursor untouched.
        """
        async with self._lock_for(wallet.wallet_id):
            return await self._sync_locked(wallet, mode)

    async def _sync_locked(self, wallet: Wallet, mode: SyncMode | None) -> SyncReport:
        started = time.monotonic()
        cursor = self.cursors.get(wallet.wallet_id)
        if mode is None:
            mode = INCREMENTAL if cursor is not None else BACKFILL
        report = SyncReport(wallet_id=wallet.wallet_id, mode=mode.name)
        log = bind_wallet(wallet.wallet_id, __name__, mode=mode.name)

        fetched = await self._fetcher.fetch(
            wallet.address,
            mode,
            cursor.last_signature if cursor is not None else None,
        )
        report.fetched = len(fetched.signatures)
        successful = fetched.successful
        report.failed_onchain = report.fetched - len(successful)

        pending: list[str] = []
        for info in successful:
            if await asyncio.to_thread(self.gate.already_processed, info.signature, wallet.wallet_id):
                report.already_stored += 1
            else:
                pending.append(info.signature)

        for group in chunked(pending, mode.resolve_chunk_size):
            resolved = await self._resolver.resolve(group, chunk_size=mode.resolve_chunk_size)
            for signature in group:
                tx = resolved.get(signature)
                if tx is None:
                    report.unresolved += 1
                    continue
                if await asyncio.to_thread(self.gate.already_processed, signature, wallet.wallet_id):
                    report.already_stored += 1
                    continue
                try:
                    events = await self._classify(tx, wallet)
                except Exception as e:
                    report.classify_errors += 1
                    log.exception("worker_classify_failed", signature=signature[:16], error=str(e))
                    continue
                for result in await asyncio.to_thread(self.gate.try_append_all, events):
                    if result is AppendResult.WRITTEN:
                        report.events_written += 1
                    else:
                        report.events_skipped += 1

        if fetched.newest_signature is not None:
            self.cursors.advance(wallet.wallet_id, fetched.newest_signature, fetched.newest_slot)
        else:
            self.cursors.touch(wallet.wallet_id)
        current = self.cursors.get(wallet.wallet_id)
        report.cursor = current.last_signature if current is not None else None
        report.duration_sec = time.monotonic() - started

        if report.fetched or report.events_written:
            log.info("worker_wallet_synced", **report.to_dict())
        return report

    async def _classify(self, tx: RawTransaction, wallet: Wallet) -> list[WalletEvent]:
        deltas = extract(tx, wallet.address)
        venue = detect(tx)
        return await self._classifier.classify(
            tx,
            deltas,
            venue,
            tx.signer,
            wallet.address,
            wallet.wallet_id,
        )

    async def _sync_safe(self, wallet: Wallet, mode: SyncMode | None = None) -> SyncReport:
        """sync() with per-wallet exception isolation; never raises."""
        try:
            return await self.sync(wallet, mode)
        except Exception as e:
            self.state.wallet_errors += 1
            self.state.last_error = f"{wallet.wallet_id}: {e}"
            logger.exception("worker_wallet_sync_failed", wallet_id=wallet.wallet_id, error=str(e))
            return SyncReport(
                wallet_id=wallet.wallet_id,
                mode=(mode or (INCREMENTAL if wallet.wallet_id in self.cursors else BACKFILL)).name,
                error=str(e),
            )

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def run_tick(self) -> list[SyncReport]:
        """One pass over every active wallet, in concurrent batches."""
        wallets = self.registry.list_active()
        reports: list[SyncReport] = []
        batches = chunked(wallets, self.config.wallet_batch_size)
        for i, batch in enumerate(batches):
            reports.extend(await asyncio.gather(*(self._sync_safe(w) for w in batch)))
            if i < len(batches) - 1 and self.config.batch_pause_sec > 0:
                await self._sleep(self.config.batch_pause_sec)
        self.state.tick_count += 1
        self.state.last_tick_at = time.time()
        if self.state.tick_count % self.config.heartbeat_every_ticks == 0:
            logger.info("worker_heartbeat", **self.status())
        return reports

    async def sync_all(self) -> list[SyncReport]:
        """Single pass outside the loop (CLI `sync`)."""
        return await self.run_tick()

    async def initial_backfill(self) -> int:
        """Sequentially backfill wallets that have no cursor. Returns how many were attempted."""
        attempted = 0
        for wallet in self.registry.list_active():
            if self._stopping():
                break
            if wallet.wallet_id in self.cursors:
                continue
            if attempted and self.config.initial_backfill_pause_sec > 0:
                await self._sleep(self.config.initial_backfill_pause_sec)
            attempted += 1
            await self._sync_safe(wallet, BACKFILL)
        if attempted:
            logger.info("worker_initial_backfill_done", wallet_count=attempted)
        return attempted

    async def refresh_prices(self, force: bool = False) -> None:
        if self._price_refresher is None:
            return
        now = time.time()
        last = self.state.last_price_refresh_at
        if not force and last is not None and now - last < self.config.price_refresh_interval_sec:
            return
        self.state.last_price_refresh_at = now
        try:
            await self._price_refresher()
        except Exception as e:
            logger.warning("worker_price_refresh_failed", error=str(e))

    def _stopping(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    async def _wait_or_stop(self, timeout: float) -> None:
        if self._stop_event is None:
            await self._sleep(timeout)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

    async def run_forever(self) -> None:
        """Tick until stop(). Stop is honoured at tick boundaries."""
        if self._stop_event is None:
            self._stop_event = asyncio.Event()
        while not self._stopping():
            try:
                await self.refresh_prices()
                await self.run_tick()
                delay = self.config.poll_interval_sec
            except Exception as e:
                self.state.tick_errors += 1
                self.state.last_error = str(e)
                logger.exception("worker_tick_failed", error=str(e))
                delay = self.config.error_backoff_sec
            await self._wait_or_stop(delay)

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Rehydrate cursors, refresh the native price, backfill new wallets one at a
        time, then tick until stop() is called.
        """
        if self.state.running:
            logger.warning("worker_already_running")
            return
        self._stop_event = asyncio.Event()
        self.state.running = True
        self.state.started_at = time.time()
        try:
            wallets = self.registry.list_active()
            self.cursors.rehydrate(self.ledger, wallets)
            logger.info(
                "worker_started",
                wallet_count=len(wallets),
                cursor_count=len(self.cursors),
                poll_interval_sec=self.config.poll_interval_sec,
                wallet_batch_size=self.config.wallet_batch_size,
            )
            await self.refresh_prices(force=True)
            await self.initial_backfill()
            await self.run_forever()
        finally:
            self.state.running = False
            logger.info("worker_stopped", tick_count=self.state.tick_count)

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        logger.info("worker_stop_requested")

    def status(self) -> dict[str, Any]:
        cursors = {
            wallet_id: {
                "last_signature": c.last_signature,
                "last_slot": c.last_slot,
                "last_sync_time": int(c.last_sync_time),
            }
            for wallet_id, c in self.cursors.snapshot().items()
        }
        return {
            "running": self.state.running,
            "started_at": self.state.started_at,
            "last_tick_at": self.state.last_tick_at,
            "tick_count": self.state.tick_count,
            "wallet_errors": self.state.wallet_errors,
            "tick_errors": self.state.tick_errors,
            "last_error": self.state.last_error,
            "events_written": self.gate.written,
            "events_skipped": self.gate.skipped,
            "cursors": cursors,
            "schedulers": [s.stats() for s in self._schedulers],
        }

    async def force_resync(self, wallet_id: str) -> SyncReport:
        """Drop the cursor and backfill again; the gate keeps the ledger duplicate-free."""
        wallet = self.registry.get(wallet_id)
        if wallet is None:
            raise InvalidWalletError(f"wallet not registered: {wallet_id}")
        self.cursors.drop(wallet_id)
        logger.info("worker_force_resync", wallet_id=wallet_id)
        return await self.sync(wallet, BACKFILL)

    def add_wallet(self, wallet_id: str, address: str, label: str | None = None) -> bool:
        """
        Register a wallet. A wallet with stored events resumes from its newest
        event; otherwise the next tick backfills it.
        """
        added = self.registry.add(wallet_id, address, label)
        wallet = self.registry.get(wallet_id)
        if wallet is not None and wallet_id not in self.cursors:
            self.cursors.rehydrate(self.ledger, [wallet])
        return added

    def remove_wallet(self, wallet_id: str) -> bool:
        removed = self.registry.remove(wallet_id)
        self.cursors.drop(wallet_id)
        self._locks.pop(wallet_id, None)
        return removed
