"""
Solana JSON-RPC client used as the ledger provider.

getSignaturesForAddress for paging a wallet's history (newest first) and batched
getTransaction (one HTTP request per chunk, jsonParsed encoding). Every request goes
through the shared RequestScheduler when one is given.
"""

from __future__ import annotations

import itertools
from typing import Any, Protocol

import httpx

from backend_walletsync.core.exceptions import RpcError
from backend_walletsync.ingestion.rate_limiter import RequestScheduler
from backend_walletsync.solana_listener.models import SignatureInfo
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger(__name__)

MAX_SIGNATURES_PER_REQUEST = 1000
DEFAULT_COMMITMENT = "confirmed"
DEFAULT_TIMEOUT_SEC = 30.0


class LedgerProvider(Protocol):
    """What the fetcher and resolver need from the ledger."""

    async def list_signatures(
        self,
        address: str,
        limit: int,
        before: str | None = None,
        until: str | None = None,
    ) -> list[SignatureInfo]: ...

    async def get_transactions(self, signatures: list[str]) -> list[dict[str, Any] | None]: ...


class SolanaRpcClient:
    """Async JSON-RPC client over httpx; safe to share across wallets in one event loop."""

    def __init__(
        self,
        rpc_url: str,
        *,
        scheduler: RequestScheduler | None = None,
        commitment: str = DEFAULT_COMMITMENT,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        self._rpc_url = rpc_url.rstrip("/")
        self._scheduler = scheduler
        self._commitment = commitment
        self._timeout = timeout_sec
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    def _http(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "SolanaRpcClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    def _body(self, method: str, params: list[Any]) -> dict[str, Any]:
        return {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

    async def _post(self, payload: Any) -> Any:
        async def _send() -> Any:
            resp = await self._http().post(self._rpc_url, json=payload)
            resp.raise_for_status()
            return resp.json()

        try:
            if self._scheduler is not None:
                return await self._scheduler.enqueue(_send)
            return await _send()
        except httpx.HTTPError as e:
            raise RpcError(f"Solana RPC transport error: {e}") from e
        except ValueError as e:
            raise RpcError(f"Solana RPC returned invalid JSON: {e}") from e

    async def call(self, method: str, params: list[Any]) -> Any:
        """Single JSON-RPC call; raise RpcError on transport or RPC error."""
        data = await self._post(self._body(method, params))
        if not isinstance(data, dict):
            raise RpcError("Solana RPC returned a non-object response")
        if "error" in data:
            raise RpcError.from_error_object(data["error"])
        return data.get("result")

    async def list_signatures(
        self,
        address: str,
        limit: int,
        before: str | None = None,
        until: str | None = None,
    ) -> list[SignatureInfo]:
        """getSignaturesForAddress; newest first. `until` excludes it and everything older."""
        if not (1 <= limit <= MAX_SIGNATURES_PER_REQUEST):
            raise ValueError(f"limit must be between 1 and {MAX_SIGNATURES_PER_REQUEST}")
        opts: dict[str, Any] = {"limit": limit, "commitment": self._commitment}
        if before is not None:
            opts["before"] = before
        if until is not None:
            opts["until"] = until
        result = await self.call("getSignaturesForAddress", [address, opts])
        if result is None:
            raise RpcError("Solana RPC returned no result")
        infos: list[SignatureInfo] = []
        for item in result if isinstance(result, list) else []:
            if not isinstance(item, dict) or "signature" not in item:
                continue
            try:
                infos.append(SignatureInfo.from_rpc_item(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("rpc_skip_invalid_signature_item", error=str(e))
        return infos

    async def get_transactions(self, signatures: list[str]) -> list[dict[str, Any] | None]:
        """
        Batched getTransaction. Returns one entry per signature, in input order;
        entries that errored or came back empty are None. Raises RpcError only when the
        whole request fails.
        """
        if not signatures:
            return []
        opts = {
            "encoding": "jsonParsed",
            "commitment": self._commitment,
            "maxSupportedTransactionVersion": 0,
        }
        bodies = [self._body("getTransaction", [sig, opts]) for sig in signatures]
        data = await self._post(bodies)
        replies = data if isinstance(data, list) else [data]

        by_id: dict[Any, dict[str, Any]] = {
            r.get("id"): r for r in replies if isinstance(r, dict)
        }
        out: list[dict[str, Any] | None] = []
        for body in bodies:
            reply = by_id.get(body["id"])
            if reply is None or reply.get("error") or not reply.get("result"):
                if reply is not None and reply.get("error"):
                    logger.debug(
                        "rpc_get_transaction_entry_error",
                        signature=body["params"][0],
                        error=str(reply.get("error")),
                    )
                out.append(None)
                continue
            out.append(reply["result"])
        return out

    async def get_asset(self, asset_id: str) -> dict[str, Any] | None:
        """DAS getAsset (Helius and other DAS-enabled endpoints)."""
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": "getAsset", "params": {"id": asset_id}}
        data = await self._post(payload)
        if not isinstance(data, dict) or "error" in data:
            return None
        result = data.get("result")
        return result if isinstance(result, dict) else None
