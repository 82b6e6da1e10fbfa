"""
Structured logging for Backend WalletSync.

JSON logs with timestamp, wallet_id, event_type.
Use get_logger() in all modules for aggregation-friendly output.
"""

from backend_walletsync.walletsync_logging.logger import bind_wallet, get_logger

__all__ = ["bind_wallet", "get_logger"]
