"""
Tests for the wallet registry, the append-only event ledger, the persistence
gate and the cursor store. Uses a temporary SQLite DB via conftest fixtures.
"""

from __future__ import annotations

import pytest
from conftest import OTHER_WALLET, USDC_MINT, WALLET

from backend_walletsync.core.exceptions import InvalidWalletError
from backend_walletsync.database import (
    AppendResult,
    CursorStore,
    EventLedger,
    PersistenceGate,
    Wallet,
    WalletEvent,
)
from backend_walletsync.solana_listener.models import SOL_MINT


def _event(signature="sig1", wallet_id="w1", slot=10, type_="send", asset_id=SOL_MINT, amount=-1.0):
    return WalletEvent(
        signature=signature,
        wallet_id=wallet_id,
        slot=slot,
        type=type_,
        venue="Unknown",
        asset_id=asset_id,
        amount=amount,
        usd_value=abs(amount) * 100,
        counterparty_from=WALLET,
        counterparty_to=OTHER_WALLET,
        timestamp=1_700_000_000,
        name="Solana",
        symbol="SOL",
        logo="",
    )


def test_event_type_is_validated():
    with pytest.raises(ValueError, match="unknown event type"):
        _event(type_="mint")


def test_append_is_idempotent(ledger):
    assert ledger.append(_event()) is AppendResult.WRITTEN
    assert ledger.append(_event()) is AppendResult.SKIPPED_DUPLICATE
    assert ledger.count_events("w1") == 1
    stored = ledger.list_events("w1")
    assert stored[0] == _event()
    assert stored[0].id is not None


def test_multiple_assets_per_signature_are_kept(ledger):
    assert ledger.append(_event(asset_id=SOL_MINT)) is AppendResult.WRITTEN
    assert ledger.append(_event(asset_id=USDC_MINT)) is AppendResult.WRITTEN
    assert ledger.append(_event(type_="close", asset_id=USDC_MINT, amount=0.002)) is AppendResult.WRITTEN
    assert ledger.count_events() == 3


def test_exists_is_scoped_to_wallet_when_given(ledger):
    ledger.append(_event(wallet_id="w1"))
    assert ledger.exists("sig1")
    assert ledger.exists("sig1", "w1")
    assert not ledger.exists("sig1", "w2")
    assert not ledger.exists("other")


def test_most_recent_orders_by_slot(ledger):
    assert ledger.most_recent_signature("w1") is None
    ledger.append(_event(signature="late", slot=30))
    ledger.append(_event(signature="early", slot=5))
    assert ledger.most_recent("w1") == ("late", 30)
    assert [e.signature for e in ledger.list_events("w1")] == ["late", "early"]


def test_gate_append_all_skips_stored_and_counts(ledger):
    gate = PersistenceGate(ledger)
    assert gate.try_append(_event(asset_id=SOL_MINT)) is AppendResult.WRITTEN
    results = gate.try_append_all([_event(asset_id=SOL_MINT), _event(asset_id=USDC_MINT)])
    assert results == [AppendResult.SKIPPED_DUPLICATE, AppendResult.WRITTEN]
    assert gate.try_append(_event(asset_id=USDC_MINT)) is AppendResult.SKIPPED_DUPLICATE
    assert (gate.written, gate.skipped) == (2, 2)
    assert gate.already_processed("sig1", "w1")
    assert gate.try_append_all([]) == []


def test_gate_append_all_treats_concurrent_insert_as_duplicate(ledger, monkeypatch):
    assert ledger.append(_event(asset_id=SOL_MINT)) is AppendResult.WRITTEN
    real_stored = EventLedger._stored
    calls = []

    def stored_after_check(session, event):
        # The first check misses a row another writer has just inserted.
        calls.append(event.asset_id)
        return False if len(calls) == 1 else real_stored(session, event)

    monkeypatch.setattr(EventLedger, "_stored", staticmethod(stored_after_check))
    gate = PersistenceGate(ledger)
    results = gate.try_append_all([_event(asset_id=SOL_MINT), _event(asset_id=USDC_MINT)])

    assert results == [AppendResult.SKIPPED_DUPLICATE, AppendResult.WRITTEN]
    assert (gate.written, gate.skipped) == (1, 1)
    assert ledger.count_events("w1") == 2
    assert calls == [SOL_MINT, SOL_MINT, USDC_MINT]


def test_registry_add_list_remove(registry):
    assert registry.add("w1", WALLET, "treasury") is True
    assert registry.add("w1", WALLET) is False
    assert registry.add("w2", OTHER_WALLET) is True
    assert registry.list_active() == [Wallet("w1", WALLET, "treasury"), Wallet("w2", OTHER_WALLET)]

    assert registry.remove("w1") is True
    assert registry.remove("w1") is False
    assert registry.get("w1") is None
    assert [w.wallet_id for w in registry.list_active()] == ["w2"]

    assert registry.add("w1", WALLET) is True
    assert registry.get("w1") == Wallet("w1", WALLET, "treasury")


def test_registry_rejects_invalid_addresses(registry):
    with pytest.raises(InvalidWalletError, match="invalid Solana address"):
        registry.add("w1", "not-a-valid-pubkey")
    with pytest.raises(InvalidWalletError, match="required"):
        registry.add("w1", "")
    with pytest.raises(ValueError):
        registry.add("", WALLET)
    assert registry.list_active() == []


def test_cursor_never_regresses():
    cursors = CursorStore(clock=lambda: 1000.0)
    assert cursors.advance("w1", "b", 20) is True
    assert cursors.advance("w1", "a", 10) is False
    assert cursors.get("w1").last_signature == "b"
    assert cursors.advance("w1", "c", 20) is True
    assert cursors.advance("w1", "c", 20) is False
    assert cursors.get("w1").last_slot == 20
    cursors.drop("w1")
    assert "w1" not in cursors
    assert len(cursors) == 0


def test_cursor_rehydrate_from_ledger(ledger):
    ledger.append(_event(signature="s1", wallet_id="w1", slot=5))
    ledger.append(_event(signature="s2", wallet_id="w1", slot=9))
    cursors = CursorStore()
    restored = cursors.rehydrate(ledger, [Wallet("w1", WALLET), Wallet("w2", OTHER_WALLET)])
    assert restored == 1
    assert cursors.get("w1").last_signature == "s2"
    assert cursors.get("w2") is None
    assert set(cursors.snapshot()) == {"w1"}
