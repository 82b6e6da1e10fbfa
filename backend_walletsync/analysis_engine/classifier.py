"""
Event classifier: (transaction, balance deltas, venue) -> wallet events.

State machine, first match wins:
    failed      -> nothing
    no deltas   -> nothing
    burn/close  -> burn and/or close events (short-circuits the rest)
    venue known -> one swap event for the spent asset
    otherwise   -> send/receive; token legs suppress the native leg

Direction of a transfer comes from the signer, not from the balance sign: when the
wallet signed, it is a send (negative), otherwise a receive (positive).

plan_events() is pure; EventClassifier.classify() adds USD value and display fields
from the price and metadata collaborators.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from backend_walletsync.analysis_engine.venues import (
    TOKEN_PROGRAM_VENUE,
    UNKNOWN_VENUE,
    primary_program_id,
)
from backend_walletsync.database.models import (
    EVENT_BURN,
    EVENT_CLOSE,
    EVENT_RECEIVE,
    EVENT_SEND,
    EVENT_SWAP,
    WalletEvent,
)
from backend_walletsync.oracle.metadata import MetadataResolver
from backend_walletsync.oracle.pricing import PriceResolver
from backend_walletsync.solana_listener.models import (
    SOL_MINT,
    SYSTEM_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    BalanceDelta,
    RawTransaction,
)
from backend_walletsync.solana_listener.parser import split_deltas
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger(__name__)

# Native movements at or below this size are fee dust, not transfers.
NATIVE_DUST_THRESHOLD = 1e-7
UNKNOWN_ASSET = "Unknown"
UNKNOWN_ADDRESS = "Unknown"

_BURN_TYPES = frozenset({"burn", "burnChecked"})
_CLOSE_TYPES = frozenset({"closeAccount"})
_NON_PARTY_KEYS = frozenset({SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID})


@dataclass(frozen=True)
class EventDraft:
    """An event before pricing and display fields are attached."""

    type: str
    asset_id: str
    amount: float
    venue: str
    counterparty_from: str
    counterparty_to: str
    price_asset_id: str
    account_close: bool = False


# --- counterparties ---


def _other_primary_key(tx: RawTransaction, wallet_address: str) -> str:
    """Structural fallback: the first of the two leading account keys that is not the wallet."""
    for key in tx.account_keys[:2]:
        if key and key != wallet_address and key not in _NON_PARTY_KEYS:
            return key
    return UNKNOWN_ADDRESS


def _native_counterparty(tx: RawTransaction, wallet_address: str) -> str | None:
    """
    Account whose lamports moved opposite to the wallet's. For an inflow the sender
    also paid the fee, so it must have lost more than the wallet gained.
    """
    try:
        i = tx.account_keys.index(wallet_address)
    except ValueError:
        return None
    n = min(len(tx.account_keys), len(tx.pre_balances), len(tx.post_balances))
    if i >= n:
        return None
    own = tx.post_balances[i] - tx.pre_balances[i]
    if own == 0:
        return None
    for j in range(n):
        if j == i:
            continue
        change = tx.post_balances[j] - tx.pre_balances[j]
        if own > 0 and change < 0 and abs(change) > abs(own):
            return tx.account_keys[j]
        if own < 0 and change > 0:
            return tx.account_keys[j]
    return None


def _token_counterparty(tx: RawTransaction, wallet_address: str, mint: str, wallet_delta: float) -> str | None:
    """Other owner of the same mint whose balance moved the opposite way (largest mover wins)."""
    moves: dict[str, int] = {}
    for tb in tx.pre_token_balances:
        if tb.mint == mint and tb.owner and tb.owner != wallet_address:
            moves[tb.owner] = moves.get(tb.owner, 0) - tb.amount_raw
    for tb in tx.post_token_balances:
        if tb.mint == mint and tb.owner and tb.owner != wallet_address:
            moves[tb.owner] = moves.get(tb.owner, 0) + tb.amount_raw
    if wallet_delta < 0:
        candidates = [(d, o) for o, d in moves.items() if d > 0]
    else:
        candidates = [(-d, o) for o, d in moves.items() if d < 0]
    if not candidates:
        return None
    candidates.sort(key=lambda c: c[0], reverse=True)
    return candidates[0][1]


def _parties(event_type: str, wallet_address: str, counterparty: str) -> tuple[str, str]:
    if event_type == EVENT_SEND:
        return wallet_address, counterparty
    return counterparty, wallet_address


# --- burn / close ---


def _wallet_token_accounts(tx: RawTransaction, wallet_address: str) -> set[str]:
    accounts = set()
    for tb in [*tx.pre_token_balances, *tx.post_token_balances]:
        if tb.owner == wallet_address and 0 <= tb.account_index < len(tx.account_keys):
            accounts.add(tx.account_keys[tb.account_index])
    return accounts


def _mint_decimals(tx: RawTransaction, mint: str, token_deltas: list[BalanceDelta]) -> int:
    for d in token_deltas:
        if d.asset_id == mint:
            return d.decimals
    for tb in [*tx.post_token_balances, *tx.pre_token_balances]:
        if tb.mint == mint:
            return tb.decimals
    return 0


def _account_mint(tx: RawTransaction, account: str) -> str | None:
    """Mint of a token account, from the pre side first (a closed account has no post entry)."""
    for tb in [*tx.pre_token_balances, *tx.post_token_balances]:
        if 0 <= tb.account_index < len(tx.account_keys) and tx.account_keys[tb.account_index] == account:
            return tb.mint
    return None


def _burn_amount(info: dict, fallback_decimals: int) -> float | None:
    token_amount = info.get("tokenAmount")
    if isinstance(token_amount, dict):
        raw = token_amount.get("amount")
        declared = token_amount.get("decimals")
        decimals = int(declared) if declared is not None else fallback_decimals
    else:
        raw = info.get("amount")
        decimals = fallback_decimals
    try:
        return int(raw) / (10 ** decimals)
    except (TypeError, ValueError):
        return None


def _burn_close_drafts(
    tx: RawTransaction,
    wallet_address: str,
    token_deltas: list[BalanceDelta],
    native: BalanceDelta | None,
) -> list[EventDraft]:
    owned_accounts = _wallet_token_accounts(tx, wallet_address)
    burned: dict[str, float] = {}
    closed = False
    closed_mint: str | None = None

    for ix in tx.all_instructions():
        info = ix.info
        if ix.parsed_type in _BURN_TYPES:
            account, mint = info.get("account"), info.get("mint")
            if not account or not mint:
                continue
            authority = info.get("authority") or info.get("multisigAuthority")
            if account not in owned_accounts and authority != wallet_address:
                continue
            amount = _burn_amount(info, _mint_decimals(tx, mint, token_deltas))
            if amount is None:
                continue
            burned[mint] = burned.get(mint, 0.0) + abs(amount)
        elif ix.parsed_type in _CLOSE_TYPES:
            if info.get("account") and info.get("destination") == wallet_address:
                closed = True
                closed_mint = closed_mint or _account_mint(tx, info["account"])

    drafts = [
        EventDraft(
            type=EVENT_BURN,
            asset_id=mint,
            amount=-amount,
            venue=TOKEN_PROGRAM_VENUE,
            counterparty_from=wallet_address,
            counterparty_to=SYSTEM_PROGRAM_ID,
            price_asset_id=mint,
        )
        for mint, amount in burned.items()
    ]
    if closed:
        rent = abs(native.amount_delta) if native is not None else 0.0
        if closed_mint is None:
            closed_mint = token_deltas[0].asset_id if token_deltas else UNKNOWN_ASSET
        drafts.append(
            EventDraft(
                type=EVENT_CLOSE,
                asset_id=closed_mint,
                amount=rent,
                venue=TOKEN_PROGRAM_VENUE,
                counterparty_from=SYSTEM_PROGRAM_ID,
                counterparty_to=wallet_address,
                price_asset_id=SOL_MINT,
                account_close=True,
            )
        )
    return drafts


# --- swap / transfer ---


def _swap_drafts(
    venue: str,
    wallet_address: str,
    token_deltas: list[BalanceDelta],
    native: BalanceDelta | None,
) -> list[EventDraft]:
    legs = list(token_deltas)
    if native is not None and abs(native.amount_delta) > NATIVE_DUST_THRESHOLD:
        legs.append(native)
    spent = next((leg for leg in legs if leg.amount_delta < 0), None)
    if spent is None:
        return []
    return [
        EventDraft(
            type=EVENT_SWAP,
            asset_id=spent.asset_id,
            amount=-abs(spent.amount_delta),
            venue=venue,
            counterparty_from=wallet_address,
            counterparty_to=primary_program_id(venue),
            price_asset_id=spent.asset_id,
        )
    ]


def _transfer_drafts(
    tx: RawTransaction,
    signer_address: str | None,
    wallet_address: str,
    token_deltas: list[BalanceDelta],
    native: BalanceDelta | None,
) -> list[EventDraft]:
    event_type = EVENT_SEND if signer_address == wallet_address else EVENT_RECEIVE
    sign = -1.0 if event_type == EVENT_SEND else 1.0
    fallback = _other_primary_key(tx, wallet_address)

    if token_deltas:
        drafts = []
        for d in token_deltas:
            counterparty = _token_counterparty(tx, wallet_address, d.asset_id, d.amount_delta) or fallback
            frm, to = _parties(event_type, wallet_address, counterparty)
            drafts.append(
                EventDraft(
                    type=event_type,
                    asset_id=d.asset_id,
                    amount=sign * abs(d.amount_delta),
                    venue=UNKNOWN_VENUE,
                    counterparty_from=frm,
                    counterparty_to=to,
                    price_asset_id=d.asset_id,
                )
            )
        return drafts

    if native is None or abs(native.amount_delta) <= NATIVE_DUST_THRESHOLD:
        return []
    counterparty = _native_counterparty(tx, wallet_address) or fallback
    frm, to = _parties(event_type, wallet_address, counterparty)
    return [
        EventDraft(
            type=event_type,
            asset_id=SOL_MINT,
            amount=sign * abs(native.amount_delta),
            venue=UNKNOWN_VENUE,
            counterparty_from=frm,
            counterparty_to=to,
            price_asset_id=SOL_MINT,
        )
    ]


def plan_events(
    tx: RawTransaction,
    deltas: list[BalanceDelta],
    venue: str,
    signer_address: str | None,
    wallet_address: str,
) -> list[EventDraft]:
    """Pure classification step; see module docstring for the order of rules."""
    if tx.err is not None:
        return []
    if not deltas:
        return []
    token_deltas, native = split_deltas(deltas)

    special = _burn_close_drafts(tx, wallet_address, token_deltas, native)
    if special:
        return special
    if venue != UNKNOWN_VENUE:
        return _swap_drafts(venue, wallet_address, token_deltas, native)
    return _transfer_drafts(tx, signer_address, wallet_address, token_deltas, native)


class EventClassifier:
    """Turns drafts into priced WalletEvents."""

    def __init__(self, prices: PriceResolver, metadata: MetadataResolver) -> None:
        self._prices = prices
        self._metadata = metadata

    async def classify(
        self,
        tx: RawTransaction,
        deltas: list[BalanceDelta],
        venue: str,
        signer_address: str | None,
        wallet_address: str,
        wallet_id: str,
    ) -> list[WalletEvent]:
        drafts = plan_events(tx, deltas, venue, signer_address, wallet_address)
        timestamp = tx.block_time if tx.block_time is not None else int(time.time())
        events = []
        for draft in drafts:
            price = await self._prices.price_of(draft.price_asset_id)
            usd_value = abs(draft.amount) * price if price > 0 else 0.0
            if draft.account_close:
                token_meta = (
                    await self._metadata.metadata_of(draft.asset_id)
                    if draft.asset_id != UNKNOWN_ASSET
                    else None
                )
                native_meta = await self._metadata.metadata_of(SOL_MINT)
                name = f"{token_meta.name if token_meta else 'Unknown Token'} Account Close"
                symbol, logo = native_meta.symbol, native_meta.logo
            else:
                meta = await self._metadata.metadata_of(draft.asset_id)
                name, symbol, logo = meta.name, meta.symbol, meta.logo
            events.append(
                WalletEvent(
                    signature=tx.signature,
                    wallet_id=wallet_id,
                    slot=tx.slot,
                    type=draft.type,
                    venue=draft.venue,
                    asset_id=draft.asset_id,
                    amount=draft.amount,
                    usd_value=usd_value,
                    counterparty_from=draft.counterparty_from,
                    counterparty_to=draft.counterparty_to,
                    timestamp=timestamp,
                    name=name,
                    symbol=symbol,
                    logo=logo,
                )
            )
        if events:
            logger.debug(
                "classifier_events",
                signature=tx.signature,
                wallet_id=wallet_id,
                types=[e.type for e in events],
                venue=venue,
            )
        return events
