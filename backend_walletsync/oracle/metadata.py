"""
Token metadata resolver: asset id -> {name, symbol, logo}.

An ordered chain of lookup strategies; the first one that answers wins and the
placeholder at the end always answers. metadata_of never raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

from backend_walletsync.solana_listener.models import SOL_MINT
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger(__name__)

SOL_LOGO = (
    "https://raw.githubusercontent.com/solana-labs/token-list/main/assets/mainnet/"
    "So11111111111111111111111111111111111111112/logo.png"
)
DEFAULT_LOGO = "https://www.coinvera.io/logo.png"


@dataclass(frozen=True)
class TokenMetadata:
    name: str
    symbol: str
    logo: str


NATIVE_METADATA = TokenMetadata(name="Solana", symbol="SOL", logo=SOL_LOGO)
PLACEHOLDER_METADATA = TokenMetadata(name="Unknown", symbol="UNKNOWN", logo=DEFAULT_LOGO)

MetadataStrategy = Callable[[str], Awaitable["TokenMetadata | None"]]


class MetadataResolver(Protocol):
    async def metadata_of(self, asset_id: str) -> TokenMetadata: ...


class DasAssetSource(Protocol):
    async def get_asset(self, asset_id: str) -> dict[str, Any] | None: ...


def metadata_from_das(asset: dict[str, Any]) -> TokenMetadata | None:
    """Pick name/symbol/logo out of a DAS getAsset result."""
    content = asset.get("content") or {}
    meta = content.get("metadata") or {}
    name = (meta.get("name") or "").strip()
    symbol = (meta.get("symbol") or "").strip()
    if not name and not symbol:
        return None
    links = content.get("links") or {}
    logo = links.get("image") or ""
    if not logo:
        for f in content.get("files") or []:
            if isinstance(f, dict) and f.get("uri"):
                logo = f["uri"]
                break
    return TokenMetadata(
        name=name or PLACEHOLDER_METADATA.name,
        symbol=symbol or PLACEHOLDER_METADATA.symbol,
        logo=logo or DEFAULT_LOGO,
    )


class ChainedMetadataResolver:
    """
    Tries native → cache → extra strategies (in order) → placeholder.

    Successful lookups from strategies are cached for the life of the process.
    """

    def __init__(self, strategies: list[MetadataStrategy] | None = None) -> None:
        self._strategies = list(strategies or [])
        self._cache: dict[str, TokenMetadata] = {}

    @classmethod
    def with_das(cls, source: DasAssetSource) -> "ChainedMetadataResolver":
        async def _das(asset_id: str) -> TokenMetadata | None:
            asset = await source.get_asset(asset_id)
            return metadata_from_das(asset) if asset else None

        return cls([_das])

    async def metadata_of(self, asset_id: str) -> TokenMetadata:
        if asset_id == SOL_MINT:
            return NATIVE_METADATA
        cached = self._cache.get(asset_id)
        if cached is not None:
            return cached
        for strategy in self._strategies:
            try:
                found = await strategy(asset_id)
            except Exception as e:
                logger.debug("metadata_strategy_failed", asset_id=asset_id, error=str(e))
                continue
            if found is not None:
                self._cache[asset_id] = found
                return found
        return PLACEHOLDER_METADATA
