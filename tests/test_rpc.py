"""
Tests for the JSON-RPC client over httpx.MockTransport.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from conftest import OTHER_WALLET, WALLET, sol_send

from backend_walletsync.core.exceptions import RpcError
from backend_walletsync.ingestion.rate_limiter import RequestScheduler
from backend_walletsync.solana_listener.rpc import SolanaRpcClient

RPC_URL = "https://rpc.example.test"


def _client(handler, **kwargs) -> SolanaRpcClient:
    return SolanaRpcClient(RPC_URL, transport=httpx.MockTransport(handler), **kwargs)


def test_list_signatures_sends_paging_options():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.update(body)
        return httpx.Response(
            200,
            json={
                "jsonrpc": "2.0",
                "id": body["id"],
                "result": [
                    {"signature": "s2", "slot": 12, "err": None, "blockTime": 1_700_000_002},
                    {"signature": "s1", "slot": 11, "err": {"InstructionError": [0, "x"]}, "blockTime": None},
                    {"slot": 10},
                ],
            },
        )

    async def scenario():
        async with _client(handler) as client:
            return await client.list_signatures(WALLET, limit=5, before="s9", until="s0")

    infos = asyncio.run(scenario())
    assert seen["method"] == "getSignaturesForAddress"
    address, opts = seen["params"]
    assert address == WALLET
    assert opts == {"limit": 5, "commitment": "confirmed", "before": "s9", "until": "s0"}
    assert [i.signature for i in infos] == ["s2", "s1"]
    assert infos[1].failed and not infos[0].failed


def test_list_signatures_limit_bounds():
    client = _client(lambda request: httpx.Response(500))
    with pytest.raises(ValueError):
        asyncio.run(client.list_signatures(WALLET, limit=0))
    with pytest.raises(ValueError):
        asyncio.run(client.list_signatures(WALLET, limit=1001))


def test_get_transactions_is_one_batch_matched_by_id():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        batch = json.loads(request.content)
        requests.append(batch)
        replies = []
        for body in reversed(batch):
            sig = body["params"][0]
            if sig == "bad":
                replies.append({"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32004, "message": "not found"}})
            elif sig == "missing":
                replies.append({"jsonrpc": "2.0", "id": body["id"], "result": None})
            else:
                replies.append({"jsonrpc": "2.0", "id": body["id"], "result": sol_send(WALLET, OTHER_WALLET, 1)})
        return httpx.Response(200, json=replies)

    async def scenario():
        async with _client(handler) as client:
            return await client.get_transactions(["ok1", "bad", "missing", "ok2"])

    out = asyncio.run(scenario())
    assert len(requests) == 1
    assert [b["method"] for b in requests[0]] == ["getTransaction"] * 4
    assert requests[0][0]["params"][1]["encoding"] == "jsonParsed"
    assert requests[0][0]["params"][1]["maxSupportedTransactionVersion"] == 0
    assert [o is not None for o in out] == [True, False, False, True]


def test_rpc_error_object_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        return httpx.Response(
            200,
            json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32602, "message": "Invalid param"}},
        )

    with pytest.raises(RpcError) as exc:
        asyncio.run(_client(handler).call("getSlot", []))
    assert exc.value.code == -32602


def test_transport_errors_become_rpc_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RpcError, match="transport"):
        asyncio.run(_client(handler).call("getSlot", []))

    with pytest.raises(RpcError):
        asyncio.run(_client(lambda request: httpx.Response(429)).call("getSlot", []))


def test_calls_route_through_scheduler():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": 42})

    async def scenario():
        scheduler = RequestScheduler(100, name="rpc")
        client = _client(handler, scheduler=scheduler)
        results = await asyncio.gather(*(client.call("getSlot", []) for _ in range(3)))
        await client.aclose()
        return results, scheduler.stats()

    results, stats = asyncio.run(scenario())
    assert results == [42, 42, 42]
    assert stats["name"] == "rpc"
    assert stats["queue_length"] == 0


def test_get_asset_returns_none_on_error():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["method"] == "getAsset"
        if body["params"]["id"] == "known":
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": {"id": "known"}})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32000}})

    async def scenario():
        async with _client(handler) as client:
            return await client.get_asset("known"), await client.get_asset("unknown")

    known, unknown = asyncio.run(scenario())
    assert known == {"id": "known"}
    assert unknown is None


def test_empty_url_rejected():
    with pytest.raises(ValueError):
        SolanaRpcClient("   ")
