"""
USD price resolver for classified events.

price_of never raises; 0 means "unavailable" and turns into a zero USD value on
the event. Native coin is priced from an in-process cache (seeded from config or
derived from the USDT quote); tokens are priced through the Coinvera price API,
throttled by the shared RequestScheduler.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from backend_walletsync.ingestion.rate_limiter import RequestScheduler
from backend_walletsync.solana_listener.models import SOL_MINT
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger(__name__)

COINVERA_PRICE_URL = "https://api.coinvera.io/api/v1/price"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
NATIVE_FALLBACK_PRICE_USD = 100.0
MAX_SANE_NATIVE_PRICE_USD = 10_000.0
PRICE_TIMEOUT_SEC = 10.0


class PriceResolver(Protocol):
    async def price_of(self, asset_id: str) -> float: ...


def extract_usd_price(response: dict[str, Any]) -> float:
    """USD price from a Coinvera response, or 0 when missing or unparseable."""
    if not isinstance(response, dict) or response.get("error"):
        return 0.0
    raw = response.get("priceInUsd")
    if raw in (None, ""):
        return 0.0
    try:
        price = float(raw)
    except (TypeError, ValueError):
        return 0.0
    return price if price == price and price > 0 else 0.0


def native_price_from_usdt_quote(response: dict[str, Any]) -> float:
    """
    Native price from the USDT quote: 1 USDT = priceInSol SOL = priceInUsd USD.
    Returns 0 when the quote is missing or implausible.
    """
    try:
        in_sol = float(response.get("priceInSol") or 0)
        in_usd = float(response.get("priceInUsd") or 0)
    except (TypeError, ValueError):
        return 0.0
    if in_sol <= 0 or in_usd <= 0:
        return 0.0
    price = in_usd / in_sol
    if price <= 0 or price > MAX_SANE_NATIVE_PRICE_USD:
        return 0.0
    return price


@dataclass
class NativePriceCache:
    price_usd: float | None = None
    updated_at: float | None = None

    def set(self, price_usd: float) -> None:
        if price_usd > 0:
            self.price_usd = price_usd
            self.updated_at = time.time()

    def get(self) -> float:
        if self.price_usd and self.price_usd > 0:
            return self.price_usd
        return NATIVE_FALLBACK_PRICE_USD

    def age_minutes(self) -> int:
        """Minutes since last update; -1 when never set."""
        if self.updated_at is None:
            return -1
        return int((time.time() - self.updated_at) // 60)


class CoinveraPriceResolver:
    """Token prices from Coinvera; native coin from NativePriceCache."""

    def __init__(
        self,
        api_key: str | None,
        *,
        scheduler: RequestScheduler | None = None,
        native_cache: NativePriceCache | None = None,
        base_url: str = COINVERA_PRICE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = (api_key or "").strip() or None
        self._scheduler = scheduler
        self.native_cache = native_cache or NativePriceCache()
        self._base_url = base_url
        self._transport = transport

    async def _fetch_quote(self, mint: str) -> dict[str, Any]:
        async def _get() -> dict[str, Any]:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(PRICE_TIMEOUT_SEC),
                transport=self._transport,
            ) as client:
                resp = await client.get(
                    self._base_url,
                    params={"ca": mint},
                    headers={"Content-Type": "application/json", "x-api-key": self._api_key or ""},
                )
                resp.raise_for_status()
                data = resp.json()
                return data if isinstance(data, dict) else {}

        if self._scheduler is not None:
            return await self._scheduler.enqueue(_get)
        return await _get()

    async def price_of(self, asset_id: str) -> float:
        if asset_id == SOL_MINT:
            return self.native_cache.get()
        if not self._api_key:
            return 0.0
        try:
            quote = await self._fetch_quote(asset_id)
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("price_fetch_failed", asset_id=asset_id, error=str(e))
            return 0.0
        return extract_usd_price(quote)

    async def refresh_native_price(self) -> float:
        """Re-derive the native price from the USDT quote; keeps the old value on failure."""
        if not self._api_key:
            return self.native_cache.get()
        try:
            quote = await self._fetch_quote(USDT_MINT)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("native_price_refresh_failed", error=str(e))
            return self.native_cache.get()
        price = native_price_from_usdt_quote(quote)
        if price > 0:
            self.native_cache.set(price)
            logger.info("native_price_refreshed", price_usd=round(price, 4))
        return self.native_cache.get()
