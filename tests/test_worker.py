"""
End-to-end tests for the wallet sync service: fake ledger provider, real
classifier and a temporary SQLite ledger.
"""

from __future__ import annotations

import asyncio
import threading

import pytest
from conftest import OTHER_WALLET, WALLET, FakeLedgerProvider, sol_send

from backend_walletsync.agent_worker.worker import WalletSyncService, WorkerConfig
from backend_walletsync.core.exceptions import InvalidWalletError
from backend_walletsync.database import CursorStore
from backend_walletsync.solana_listener.listener import BACKFILL


async def _no_sleep(_: float) -> None:
    return None


@pytest.fixture
def service(provider, registry, ledger, classifier):
    return WalletSyncService(
        provider,
        registry,
        ledger,
        classifier,
        cursors=CursorStore(),
        config=WorkerConfig(poll_interval_sec=0.01, error_backoff_sec=0.01, batch_pause_sec=0),
        sleep=_no_sleep,
    )


def _seed(provider: FakeLedgerProvider, count: int, start_slot: int = 100) -> None:
    for i in range(count):
        slot = start_slot + i
        provider.push(WALLET, f"sig{slot}", slot=slot, body=sol_send(WALLET, OTHER_WALLET, 1_000_000 * (i + 1), slot=slot))


def test_backfill_then_incremental_without_duplicates(service, provider, registry, ledger):
    registry.add("w1", WALLET)
    _seed(provider, 3)

    (report,) = asyncio.run(service.run_tick())
    assert report.mode == "backfill"
    assert report.events_written == 3
    assert service.cursors.get("w1").last_signature == "sig102"
    assert ledger.count_events("w1") == 3

    (report,) = asyncio.run(service.run_tick())
    assert report.mode == "incremental"
    assert report.fetched == 0
    assert provider.list_calls[-1]["until"] == "sig102"

    _seed(provider, 2, start_slot=200)
    (report,) = asyncio.run(service.run_tick())
    assert report.events_written == 2
    assert service.cursors.get("w1").last_signature == "sig201"
    assert ledger.count_events("w1") == 5
    events = ledger.list_events("w1")
    assert {e.type for e in events} == {"send"}
    assert all(e.amount < 0 for e in events)


def test_failed_and_unresolvable_signatures_still_advance_cursor(service, provider, registry, ledger):
    registry.add("w1", WALLET)
    _seed(provider, 5)
    del provider.bodies["sig101"]
    del provider.bodies["sig103"]
    provider.push(WALLET, "failedsig", slot=300, body=sol_send(WALLET, OTHER_WALLET, 5, slot=300), err={"x": 1})

    (report,) = asyncio.run(service.run_tick())
    assert report.fetched == 6
    assert report.failed_onchain == 1
    assert report.unresolved == 2
    assert report.events_written == 3
    assert ledger.count_events("w1") == 3
    assert not ledger.exists("failedsig")
    assert service.cursors.get("w1").last_signature == "failedsig"
    assert all("failedsig" not in call for call in provider.tx_calls)


def test_wallet_failure_is_isolated(service, provider, registry, ledger):
    registry.add("w1", WALLET)
    registry.add("w2", OTHER_WALLET)
    _seed(provider, 2)
    provider.history[OTHER_WALLET] = list(provider.history[WALLET])
    provider.failing_addresses.add(OTHER_WALLET)

    reports = asyncio.run(service.run_tick())
    by_id = {r.wallet_id: r for r in reports}
    assert by_id["w1"].ok and by_id["w1"].events_written == 2
    assert not by_id["w2"].ok
    assert service.cursors.get("w2") is None
    assert service.state.wallet_errors == 1

    provider.failing_addresses.clear()
    reports = asyncio.run(service.run_tick())
    assert all(r.ok for r in reports)
    assert ledger.count_events("w2") == 2  # receiver side of the same transfers


def test_replay_is_idempotent(service, provider, registry, ledger):
    registry.add("w1", WALLET)
    _seed(provider, 3)
    asyncio.run(service.run_tick())

    report = asyncio.run(service.force_resync("w1"))
    assert report.mode == BACKFILL.name
    assert report.already_stored == 3
    assert report.events_written == 0
    assert ledger.count_events("w1") == 3
    assert len(provider.tx_calls) == 1


def test_cursor_rehydrated_on_start_skips_backfill(provider, registry, ledger, classifier):
    registry.add("w1", WALLET)
    _seed(provider, 2)
    first = WalletSyncService(provider, registry, ledger, classifier, sleep=_no_sleep)
    asyncio.run(first.sync_all())

    restarted = WalletSyncService(
        provider,
        registry,
        ledger,
        classifier,
        config=WorkerConfig(poll_interval_sec=0.01),
        sleep=_no_sleep,
    )

    async def scenario():
        task = asyncio.create_task(restarted.start())
        for _ in range(200):
            await asyncio.sleep(0.01)
            if restarted.state.tick_count >= 1:
                break
        restarted.stop()
        await asyncio.wait_for(task, timeout=5)

    calls_before = len(provider.list_calls)
    asyncio.run(scenario())
    assert restarted.state.running is False
    assert restarted.state.tick_count >= 1
    assert restarted.cursors.get("w1").last_signature == "sig101"
    assert all(c["until"] == "sig101" for c in provider.list_calls[calls_before:])
    assert ledger.count_events("w1") == 2


def test_add_and_remove_wallet(service, provider, ledger):
    assert service.add_wallet("w1", WALLET, "main") is True
    _seed(provider, 1)
    asyncio.run(service.sync_all())
    assert "w1" in service.cursors

    assert service.remove_wallet("w1") is True
    assert "w1" not in service.cursors
    assert asyncio.run(service.sync_all()) == []

    assert service.add_wallet("w1", WALLET) is True
    assert service.cursors.get("w1").last_signature == "sig100"

    with pytest.raises(InvalidWalletError):
        service.add_wallet("w3", "nope")
    with pytest.raises(InvalidWalletError):
        asyncio.run(service.force_resync("ghost"))


def test_status_reports_counters(service, provider, registry):
    registry.add("w1", WALLET)
    _seed(provider, 1)
    asyncio.run(service.run_tick())
    status = service.status()
    assert status["running"] is False
    assert status["tick_count"] == 1
    assert status["events_written"] == 1
    assert status["cursors"]["w1"]["last_signature"] == "sig100"
    assert status["schedulers"] == []


def test_failed_tick_backs_off_then_keeps_ticking(provider, registry, ledger, classifier, monkeypatch):
    registry.add("w1", WALLET)
    _seed(provider, 1)
    service = WalletSyncService(
        provider,
        registry,
        ledger,
        classifier,
        config=WorkerConfig(poll_interval_sec=3.0, error_backoff_sec=10.0),
        sleep=_no_sleep,
    )
    real_list_active = registry.list_active
    outages = [RuntimeError("database unavailable")]

    def flaky_list_active():
        if outages:
            raise outages.pop()
        return real_list_active()

    monkeypatch.setattr(registry, "list_active", flaky_list_active)
    delays = []

    async def record_wait(timeout):
        delays.append(timeout)
        if len(delays) == 3:
            service.stop()

    monkeypatch.setattr(service, "_wait_or_stop", record_wait)
    asyncio.run(service.run_forever())

    assert delays == [10.0, 3.0, 3.0]
    assert service.state.tick_errors == 1
    assert service.state.tick_count == 2
    assert "database unavailable" in service.state.last_error
    assert ledger.count_events("w1") == 1


def test_ledger_calls_run_off_the_event_loop_thread(service, provider, registry, ledger, monkeypatch):
    registry.add("w1", WALLET)
    _seed(provider, 2)
    loop_threads = []
    ledger_threads = []
    real_exists, real_append_all = ledger.exists, ledger.append_all

    def exists(signature, wallet_id=None):
        ledger_threads.append(threading.get_ident())
        return real_exists(signature, wallet_id)

    def append_all(events):
        ledger_threads.append(threading.get_ident())
        return real_append_all(events)

    monkeypatch.setattr(ledger, "exists", exists)
    monkeypatch.setattr(ledger, "append_all", append_all)

    async def scenario():
        loop_threads.append(threading.get_ident())
        return await service.run_tick()

    (report,) = asyncio.run(scenario())
    assert report.events_written == 2
    assert ledger_threads
    assert loop_threads[0] not in ledger_threads
