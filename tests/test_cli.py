"""
Tests for the command-line entrypoint (registry and status commands; no network).
"""

from __future__ import annotations

import json

from conftest import OTHER_WALLET, WALLET

from backend_walletsync.cli import build_parser, main


def test_wallet_commands_and_status(db_url, capsys):
    assert main(["add-wallet", "treasury", WALLET, "--label", "Treasury"]) == 0
    assert main(["add-wallet", "ops", OTHER_WALLET]) == 0
    assert "added: ops" in capsys.readouterr().out

    assert main(["status"]) == 0
    status = json.loads(capsys.readouterr().out)
    assert status["wallet_count"] == 2
    assert status["total_events"] == 0
    assert status["wallets"][0]["wallet_id"] == "treasury"
    assert status["wallets"][0]["label"] == "Treasury"
    assert status["wallets"][0]["last_signature"] is None

    assert main(["remove-wallet", "ops"]) == 0
    assert main(["remove-wallet", "ops"]) == 1
    capsys.readouterr()
    assert main(["status"]) == 0
    assert json.loads(capsys.readouterr().out)["wallet_count"] == 1


def test_invalid_wallet_exits_nonzero(db_url):
    assert main(["add-wallet", "bad", "not-a-pubkey"]) == 1


def test_sync_without_rpc_config_is_fatal(db_url, monkeypatch):
    monkeypatch.delenv("SOLANA_RPC_URL", raising=False)
    monkeypatch.delenv("HELIUS_API_KEY", raising=False)
    assert main(["sync"]) == 1


def test_parser_commands():
    parser = build_parser()
    args = parser.parse_args(["sync", "--wallet", "w1", "--resync"])
    assert (args.command, args.wallet, args.resync) == ("sync", "w1", True)
    args = parser.parse_args(["status", "--events", "3"])
    assert args.events == 3
