"""
Backend WalletSync: Solana wallet ledger synchronization.

Polls the ledger for monitored wallets, resolves transactions, classifies them
into send / receive / swap / burn / close events, and stores them in an
append-only event ledger.
"""
