"""
Command-line entrypoint.

    walletsync run                                   # sync loop until SIGINT/SIGTERM
    walletsync sync [--wallet ID] [--resync]         # one pass, then exit
    walletsync add-wallet ID ADDRESS [--label TEXT]
    walletsync remove-wallet ID
    walletsync status [--events N]

Configuration comes from the environment / .env (see config.env).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from backend_walletsync.config.env import get_database_url
from backend_walletsync.config.settings import get_settings
from backend_walletsync.core.exceptions import ConfigurationError, InvalidWalletError
from backend_walletsync.database import CursorStore, EventLedger, WalletRegistry, get_database
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger("backend_walletsync.cli")


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _cmd_run(args: argparse.Namespace) -> int:
    from backend_walletsync.agent_worker.runtime import run_service

    settings = get_settings()
    asyncio.run(run_service(settings))
    return 0


async def _sync_once(wallet_id: str | None, resync: bool) -> int:
    from backend_walletsync.agent_worker.runtime import build_runtime

    runtime = build_runtime(get_settings())
    service = runtime.service
    try:
        wallets = service.registry.list_active()
        service.cursors.rehydrate(service.ledger, wallets)
        await service.refresh_prices(force=True)
        if wallet_id is not None:
            if resync:
                reports = [await service.force_resync(wallet_id)]
            else:
                wallet = service.registry.get(wallet_id)
                if wallet is None:
                    raise InvalidWalletError(f"wallet not registered: {wallet_id}")
                reports = [await service.sync(wallet)]
        else:
            if resync:
                for w in wallets:
                    service.cursors.drop(w.wallet_id)
            reports = await service.sync_all()
    finally:
        await runtime.aclose()
    _print_json([r.to_dict() for r in reports])
    return 0 if all(r.ok for r in reports) else 2


def _cmd_sync(args: argparse.Namespace) -> int:
    return asyncio.run(_sync_once(args.wallet, args.resync))


def _cmd_add_wallet(args: argparse.Namespace) -> int:
    db = get_database(get_database_url())
    added = WalletRegistry(db).add(args.wallet_id, args.address, args.label)
    print(f"{'added' if added else 'already active'}: {args.wallet_id}")
    return 0


def _cmd_remove_wallet(args: argparse.Namespace) -> int:
    db = get_database(get_database_url())
    removed = WalletRegistry(db).remove(args.wallet_id)
    print(f"{'removed' if removed else 'not active'}: {args.wallet_id}")
    return 0 if removed else 1


def _cmd_status(args: argparse.Namespace) -> int:
    db = get_database(get_database_url())
    registry = WalletRegistry(db)
    ledger = EventLedger(db)
    wallets = registry.list_active()
    cursors = CursorStore()
    cursors.rehydrate(ledger, wallets)
    out = []
    for w in wallets:
        cursor = cursors.get(w.wallet_id)
        entry: dict[str, Any] = {
            "wallet_id": w.wallet_id,
            "address": w.address,
            "label": w.label,
            "event_count": ledger.count_events(w.wallet_id),
            "last_signature": cursor.last_signature if cursor else None,
            "last_slot": cursor.last_slot if cursor else None,
        }
        if args.events:
            entry["recent_events"] = [e.to_dict() for e in ledger.list_events(w.wallet_id, args.events)]
        out.append(entry)
    _print_json({"wallet_count": len(wallets), "total_events": ledger.count_events(), "wallets": out})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="walletsync", description="Solana wallet activity sync.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_run = sub.add_parser("run", help="Run the sync loop until interrupted.")
    p_run.set_defaults(func=_cmd_run)

    p_sync = sub.add_parser("sync", help="Sync once and exit.")
    p_sync.add_argument("--wallet", default=None, help="Only this wallet id.")
    p_sync.add_argument("--resync", action="store_true", help="Drop cursors and backfill again.")
    p_sync.set_defaults(func=_cmd_sync)

    p_add = sub.add_parser("add-wallet", help="Register a wallet to monitor.")
    p_add.add_argument("wallet_id")
    p_add.add_argument("address")
    p_add.add_argument("--label", default=None)
    p_add.set_defaults(func=_cmd_add_wallet)

    p_remove = sub.add_parser("remove-wallet", help="Stop monitoring a wallet.")
    p_remove.add_argument("wallet_id")
    p_remove.set_defaults(func=_cmd_remove_wallet)

    p_status = sub.add_parser("status", help="Show wallets, cursors and event counts.")
    p_status.add_argument("--events", type=int, default=0, help="Include the N most recent events per wallet.")
    p_status.set_defaults(func=_cmd_status)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except ConfigurationError as e:
        logger.error("cli_config_error", error=str(e))
        return 1
    except InvalidWalletError as e:
        logger.error("cli_invalid_wallet", error=str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("cli_interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
