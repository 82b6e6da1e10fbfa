"""
Process wiring for the sync service.

Builds the RPC client, schedulers, storage, price/metadata collaborators and the
WalletSyncService from Settings, and runs the service until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass

from backend_walletsync.agent_worker.worker import WalletSyncService, WorkerConfig
from backend_walletsync.analysis_engine.classifier import EventClassifier
from backend_walletsync.config.env import mask_url
from backend_walletsync.config.settings import Settings
from backend_walletsync.database import CursorStore, Database, EventLedger, WalletRegistry
from backend_walletsync.ingestion.rate_limiter import RequestScheduler
from backend_walletsync.oracle.metadata import ChainedMetadataResolver
from backend_walletsync.oracle.pricing import CoinveraPriceResolver, NativePriceCache
from backend_walletsync.solana_listener.rpc import SolanaRpcClient
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger(__name__)


@dataclass
class Runtime:
    settings: Settings
    db: Database
    rpc: SolanaRpcClient
    service: WalletSyncService

    async def aclose(self) -> None:
        await self.rpc.aclose()
        self.db.dispose()


def build_runtime(settings: Settings, *, db: Database | None = None) -> Runtime:
    """Assemble a ready-to-run service. Must be called with a running event loop."""
    if db is None:
        db = Database(settings.database_url)
        db.init_db()
    rpc_scheduler = RequestScheduler(settings.rpc_max_per_second, name="rpc")
    price_scheduler = RequestScheduler(settings.price_max_per_second, name="price")
    rpc = SolanaRpcClient(settings.solana_rpc_url, scheduler=rpc_scheduler)

    native_cache = NativePriceCache()
    if settings.native_price_usd:
        native_cache.set(settings.native_price_usd)
    prices = CoinveraPriceResolver(
        settings.coinvera_api_key,
        scheduler=price_scheduler,
        native_cache=native_cache,
    )
    metadata = ChainedMetadataResolver.with_das(rpc)

    service = WalletSyncService(
        rpc,
        WalletRegistry(db),
        EventLedger(db),
        EventClassifier(prices, metadata),
        cursors=CursorStore(),
        config=WorkerConfig(
            poll_interval_sec=settings.poll_interval_sec,
            error_backoff_sec=settings.error_backoff_sec,
            wallet_batch_size=settings.wallet_batch_size,
        ),
        price_refresher=prices.refresh_native_price,
        schedulers=[rpc_scheduler, price_scheduler],
    )
    logger.info(
        "runtime_built",
        rpc_url=mask_url(settings.solana_rpc_url),
        rpc_max_per_second=settings.rpc_max_per_second,
        price_max_per_second=settings.price_max_per_second,
        pricing_enabled=settings.coinvera_api_key is not None,
    )
    return Runtime(settings=settings, db=db, rpc=rpc, service=service)


async def run_service(settings: Settings) -> None:
    """Run the service until SIGINT/SIGTERM."""
    runtime = build_runtime(settings)
    loop = asyncio.get_running_loop()

    def request_shutdown() -> None:
        logger.info("runtime_shutdown_signal")
        runtime.service.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except (NotImplementedError, RuntimeError):
            # Windows or not the main thread
            pass
    try:
        await runtime.service.start()
    finally:
        await runtime.aclose()
