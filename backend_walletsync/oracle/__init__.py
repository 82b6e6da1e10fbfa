"""
Price and metadata collaborators consulted by the event classifier.

Both never raise: a missing price is 0, missing metadata is a placeholder.
"""

from backend_walletsync.oracle.metadata import (
    NATIVE_METADATA,
    PLACEHOLDER_METADATA,
    ChainedMetadataResolver,
    MetadataResolver,
    TokenMetadata,
)
from backend_walletsync.oracle.pricing import (
    CoinveraPriceResolver,
    NativePriceCache,
    PriceResolver,
)

__all__ = [
    "NATIVE_METADATA",
    "PLACEHOLDER_METADATA",
    "ChainedMetadataResolver",
    "CoinveraPriceResolver",
    "MetadataResolver",
    "NativePriceCache",
    "PriceResolver",
    "TokenMetadata",
]
