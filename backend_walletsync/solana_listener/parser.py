"""
Solana transaction parser: balance deltas for a monitored wallet.

Purely structural; no classification. Computes the native-coin delta from
pre/post lamport balances and one token delta per mint owned by the wallet.
Absent metadata lists mean "no change", never an error.
"""

from __future__ import annotations

from backend_walletsync.solana_listener.models import (
    LAMPORTS_PER_SOL,
    SOL_DECIMALS,
    SOL_MINT,
    BalanceDelta,
    RawTransaction,
    TokenBalance,
)
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger(__name__)


def native_delta_lamports(tx: RawTransaction, wallet_address: str) -> int:
    """post - pre lamports for wallet_address; 0 if the wallet is absent or balances are short."""
    try:
        idx = tx.account_keys.index(wallet_address)
    except ValueError:
        return 0
    if idx >= len(tx.pre_balances) or idx >= len(tx.post_balances):
        return 0
    return tx.post_balances[idx] - tx.pre_balances[idx]


def native_delta(tx: RawTransaction, wallet_address: str) -> float:
    """Native-coin delta in whole coin units."""
    return native_delta_lamports(tx, wallet_address) / LAMPORTS_PER_SOL


def _owned_by(balances: list[TokenBalance], wallet_address: str) -> dict[str, list[TokenBalance]]:
    by_mint: dict[str, list[TokenBalance]] = {}
    for tb in balances:
        if tb.owner == wallet_address:
            by_mint.setdefault(tb.mint, []).append(tb)
    return by_mint


def token_deltas(tx: RawTransaction, wallet_address: str) -> list[BalanceDelta]:
    """
    One delta per mint the wallet owns on either side; zero deltas dropped.

    A wallet can hold several token accounts for one mint, so amounts are summed
    per mint. Decimals come from the post side when present.
    """
    pre = _owned_by(tx.pre_token_balances, wallet_address)
    post = _owned_by(tx.post_token_balances, wallet_address)

    mints: list[str] = list(post)
    mints.extend(m for m in pre if m not in post)

    out: list[BalanceDelta] = []
    for mint in mints:
        post_entries = post.get(mint, [])
        pre_entries = pre.get(mint, [])
        decimals = (post_entries or pre_entries)[0].decimals
        raw_delta = sum(e.amount_raw for e in post_entries) - sum(e.amount_raw for e in pre_entries)
        if raw_delta == 0:
            continue
        out.append(
            BalanceDelta(
                asset_id=mint,
                amount_delta=raw_delta / (10 ** decimals),
                decimals=decimals,
            )
        )
    return out


def extract(tx: RawTransaction, wallet_address: str) -> list[BalanceDelta]:
    """
    Return balance deltas for wallet_address: token deltas first, then the native delta
    (only when nonzero).
    """
    deltas = token_deltas(tx, wallet_address)
    lamports = native_delta_lamports(tx, wallet_address)
    if lamports != 0:
        deltas.append(
            BalanceDelta(
                asset_id=SOL_MINT,
                amount_delta=lamports / LAMPORTS_PER_SOL,
                decimals=SOL_DECIMALS,
                is_native=True,
            )
        )
    if deltas:
        logger.debug(
            "parser_balance_deltas",
            signature=tx.signature,
            wallet_id=wallet_address,
            assets=[d.asset_id for d in deltas],
        )
    return deltas


def split_deltas(deltas: list[BalanceDelta]) -> tuple[list[BalanceDelta], BalanceDelta | None]:
    """Return (token deltas, native delta or None)."""
    tokens = [d for d in deltas if not d.is_native]
    native = next((d for d in deltas if d.is_native), None)
    return tokens, native
