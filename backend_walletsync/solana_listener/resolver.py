"""
Batch transaction resolver: signatures to full transaction bodies.

One batched request per chunk. A failed entry maps to None; a failed chunk maps
every signature in it to None and the remaining chunks still run.
"""

from __future__ import annotations

from typing import Sequence, TypeVar

from backend_walletsync.core.exceptions import RpcError
from backend_walletsync.solana_listener.models import RawTransaction
from backend_walletsync.solana_listener.rpc import LedgerProvider
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger(__name__)

INCREMENTAL_CHUNK_SIZE = 10
BACKFILL_CHUNK_SIZE = 25

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BatchTransactionResolver:
    def __init__(self, provider: LedgerProvider, *, chunk_size: int = INCREMENTAL_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._provider = provider
        self._chunk_size = chunk_size

    async def resolve(
        self,
        signatures: list[str],
        *,
        chunk_size: int | None = None,
    ) -> dict[str, RawTransaction | None]:
        """Map every input signature to its RawTransaction, or None when unavailable."""
        size = chunk_size or self._chunk_size
        resolved: dict[str, RawTransaction | None] = {}
        for chunk in chunked(signatures, size):
            try:
                bodies = await self._provider.get_transactions(chunk)
            except (RpcError, OSError) as e:
                logger.warning(
                    "resolver_chunk_failed",
                    chunk_size=len(chunk),
                    first_signature=chunk[0],
                    error=str(e),
                )
                resolved.update({sig: None for sig in chunk})
                continue

            for i, sig in enumerate(chunk):
                raw = bodies[i] if i < len(bodies) else None
                if not raw:
                    resolved[sig] = None
                    continue
                try:
                    resolved[sig] = RawTransaction.from_rpc_result(sig, raw)
                except (TypeError, ValueError, AttributeError) as e:
                    logger.warning("resolver_malformed_transaction", signature=sig, error=str(e))
                    resolved[sig] = None

        dropped = sum(1 for v in resolved.values() if v is None)
        if dropped:
            logger.info(
                "resolver_entries_dropped",
                requested=len(signatures),
                dropped=dropped,
            )
        return resolved
