"""
Pytest fixtures for wallet sync tests.

Temporary SQLite database, an in-memory ledger provider that pages like
getSignaturesForAddress, and builders for jsonParsed getTransaction results.
"""

from __future__ import annotations

from typing import Any

import pytest

from backend_walletsync.analysis_engine.classifier import EventClassifier
from backend_walletsync.core.exceptions import RpcError
from backend_walletsync.oracle.metadata import ChainedMetadataResolver
from backend_walletsync.solana_listener.models import SignatureInfo

# Valid Solana pubkeys (base58, 32 bytes)
WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
OTHER_WALLET = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
BONK_MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"


def token_balance(index: int, mint: str, owner: str, amount: int, decimals: int = 6) -> dict[str, Any]:
    return {
        "accountIndex": index,
        "mint": mint,
        "owner": owner,
        "uiTokenAmount": {
            "amount": str(amount),
            "decimals": decimals,
            "uiAmountString": str(amount / (10 ** decimals)),
        },
    }


def parsed_ix(program_id: str, ix_type: str | None = None, info: dict[str, Any] | None = None) -> dict[str, Any]:
    ix: dict[str, Any] = {"programId": program_id, "accounts": []}
    if ix_type is not None:
        ix = {"programId": program_id, "parsed": {"type": ix_type, "info": info or {}}}
    return ix


def raw_tx(
    *,
    account_keys: list[str],
    pre: list[int],
    post: list[int],
    signers: list[str] | None = None,
    pre_tokens: list[dict[str, Any]] | None = None,
    post_tokens: list[dict[str, Any]] | None = None,
    instructions: list[dict[str, Any]] | None = None,
    inner: list[dict[str, Any]] | None = None,
    err: Any = None,
    slot: int = 100,
    block_time: int | None = 1_700_000_000,
) -> dict[str, Any]:
    """A jsonParsed getTransaction result."""
    signers = signers if signers is not None else account_keys[:1]
    meta: dict[str, Any] = {
        "err": err,
        "fee": 5000,
        "preBalances": pre,
        "postBalances": post,
        "preTokenBalances": pre_tokens or [],
        "postTokenBalances": post_tokens or [],
        "innerInstructions": [{"index": 0, "instructions": inner}] if inner else [],
    }
    return {
        "slot": slot,
        "blockTime": block_time,
        "transaction": {
            "signatures": ["sig"],
            "message": {
                "accountKeys": [
                    {"pubkey": k, "signer": k in signers, "writable": True, "source": "transaction"}
                    for k in account_keys
                ],
                "instructions": instructions or [],
            },
        },
        "meta": meta,
    }


def sol_send(sender: str, receiver: str, lamports: int, *, slot: int = 100, fee: int = 5000) -> dict[str, Any]:
    """Native transfer signed by sender."""
    return raw_tx(
        account_keys=[sender, receiver, "11111111111111111111111111111111"],
        pre=[10_000_000_000, 1_000_000_000, 1],
        post=[10_000_000_000 - lamports - fee, 1_000_000_000 + lamports, 1],
        instructions=[
            parsed_ix(
                "11111111111111111111111111111111",
                "transfer",
                {"source": sender, "destination": receiver, "lamports": lamports},
            )
        ],
        slot=slot,
    )


class FakeLedgerProvider:
    """
    In-memory LedgerProvider.

    history: address -> SignatureInfo list, newest first.
    bodies: signature -> getTransaction result (missing means the entry errored).
    """

    def __init__(
        self,
        history: dict[str, list[SignatureInfo]] | None = None,
        bodies: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self.history = history or {}
        self.bodies = bodies or {}
        self.list_calls: list[dict[str, Any]] = []
        self.tx_calls: list[list[str]] = []
        self.failing_addresses: set[str] = set()
        self.fail_get_transactions = False

    def push(self, address: str, signature: str, slot: int, body: dict[str, Any] | None, err: Any = None) -> None:
        """Record a new (newest) signature for address."""
        info = SignatureInfo(signature=signature, slot=slot, err=err, block_time=1_700_000_000 + slot)
        self.history.setdefault(address, []).insert(0, info)
        if body is not None:
            self.bodies[signature] = body

    async def list_signatures(
        self,
        address: str,
        limit: int,
        before: str | None = None,
        until: str | None = None,
    ) -> list[SignatureInfo]:
        self.list_calls.append({"address": address, "limit": limit, "before": before, "until": until})
        if address in self.failing_addresses:
            raise RpcError("provider unavailable", code=-32005)
        seq = self.history.get(address, [])
        start = 0
        if before is not None:
            start = next(i for i, s in enumerate(seq) if s.signature == before) + 1
        out: list[SignatureInfo] = []
        for info in seq[start:]:
            if until is not None and info.signature == until:
                break
            out.append(info)
            if len(out) == limit:
                break
        return out

    async def get_transactions(self, signatures: list[str]) -> list[dict[str, Any] | None]:
        self.tx_calls.append(list(signatures))
        if self.fail_get_transactions:
            raise RpcError("batch rejected")
        return [self.bodies.get(s) for s in signatures]


class StaticPrices:
    def __init__(self, prices: dict[str, float] | None = None) -> None:
        self.prices = prices or {}
        self.requested: list[str] = []

    async def price_of(self, asset_id: str) -> float:
        self.requested.append(asset_id)
        return self.prices.get(asset_id, 0.0)


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    """SQLite URL in tmp_path; environment overrides cleared so nothing leaks in."""
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("WALLETSYNC_DB_URL", raising=False)
    url = f"sqlite:///{tmp_path / 'walletsync.db'}"
    monkeypatch.setenv("WALLETSYNC_DB_URL", url)
    return url


@pytest.fixture
def db(db_url):
    from backend_walletsync.database import get_database

    database = get_database(db_url)
    yield database
    database.dispose()


@pytest.fixture
def ledger(db):
    from backend_walletsync.database import EventLedger

    return EventLedger(db)


@pytest.fixture
def registry(db):
    from backend_walletsync.database import WalletRegistry

    return WalletRegistry(db)


@pytest.fixture
def provider():
    return FakeLedgerProvider()


@pytest.fixture
def prices():
    from backend_walletsync.solana_listener.models import SOL_MINT

    return StaticPrices({SOL_MINT: 150.0, USDC_MINT: 1.0})


@pytest.fixture
def classifier(prices):
    return EventClassifier(prices, ChainedMetadataResolver())
