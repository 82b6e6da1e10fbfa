"""
Signature fetcher: pages through a wallet's signature history.

Backfill and incremental tailing share one paging routine; a SyncMode fixes the
page size, the resolver chunk size, and the pause between pages. Paging walks
backward from the newest signature with a `before` pointer and stops when the
provider returns a short page or the wallet's cursor is reached. The provider is
also asked to stop at the cursor (`until`), so a caught-up wallet costs one call.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from backend_walletsync.solana_listener.models import SignatureInfo
from backend_walletsync.solana_listener.resolver import (
    BACKFILL_CHUNK_SIZE,
    INCREMENTAL_CHUNK_SIZE,
)
from backend_walletsync.solana_listener.rpc import MAX_SIGNATURES_PER_REQUEST, LedgerProvider
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger(__name__)

PROGRESS_LOG_EVERY_PAGES = 5


@dataclass(frozen=True)
class SyncMode:
    """How one wallet is paged: page size, resolver chunk size, pause between pages."""

    name: str
    page_size: int
    resolve_chunk_size: int
    page_delay_sec: float = 0.0
    max_pages: int | None = None

    def __post_init__(self) -> None:
        if not (1 <= self.page_size <= MAX_SIGNATURES_PER_REQUEST):
            raise ValueError(f"page_size must be between 1 and {MAX_SIGNATURES_PER_REQUEST}")


BACKFILL = SyncMode(
    name="backfill",
    page_size=MAX_SIGNATURES_PER_REQUEST,
    resolve_chunk_size=BACKFILL_CHUNK_SIZE,
    page_delay_sec=0.3,
)
INCREMENTAL = SyncMode(
    name="incremental",
    page_size=5,
    resolve_chunk_size=INCREMENTAL_CHUNK_SIZE,
)


@dataclass
class FetchResult:
    """Signatures newer than the cursor, oldest first, plus the newest one observed."""

    signatures: list[SignatureInfo] = field(default_factory=list)
    newest_signature: str | None = None
    newest_slot: int = 0
    pages: int = 0
    reached_cursor: bool = False

    @property
    def successful(self) -> list[SignatureInfo]:
        return [s for s in self.signatures if not s.failed]


def sort_chronologically(newest_first: list[SignatureInfo]) -> list[SignatureInfo]:
    """Ascending by slot; entries sharing a slot keep their ledger order (oldest first)."""
    return sorted(reversed(newest_first), key=lambda s: s.slot)


class SignatureFetcher:
    def __init__(
        self,
        provider: LedgerProvider,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._sleep = sleep

    async def fetch(
        self,
        address: str,
        mode: SyncMode,
        cursor: str | None = None,
    ) -> FetchResult:
        """
        Collect every signature newer than cursor (all history when cursor is None).

        Provider errors propagate; the caller abandons this wallet's cycle and the
        cursor stays where it was.
        """
        result = FetchResult()
        collected: list[SignatureInfo] = []
        before: str | None = None

        while True:
            page = await self._provider.list_signatures(
                address,
                limit=mode.page_size,
                before=before,
                until=cursor,
            )
            result.pages += 1
            if not page:
                break
            if result.newest_signature is None:
                result.newest_signature = page[0].signature
                result.newest_slot = page[0].slot

            for info in page:
                if cursor is not None and info.signature == cursor:
                    result.reached_cursor = True
                    break
                collected.append(info)

            if result.reached_cursor or len(page) < mode.page_size:
                break
            if mode.max_pages is not None and result.pages >= mode.max_pages:
                break

            before = page[-1].signature
            if result.pages % PROGRESS_LOG_EVERY_PAGES == 0:
                logger.info(
                    "fetcher_backfill_progress",
                    wallet_id=address,
                    mode=mode.name,
                    pages=result.pages,
                    signatures=len(collected),
                )
            if mode.page_delay_sec > 0:
                await self._sleep(mode.page_delay_sec)

        result.signatures = sort_chronologically(collected)
        if collected:
            logger.info(
                "fetcher_new_signatures",
                wallet_id=address,
                mode=mode.name,
                signature_count=len(collected),
                failed_count=len(collected) - len(result.successful),
                oldest_slot=result.signatures[0].slot,
                pages=result.pages,
            )
        return result
