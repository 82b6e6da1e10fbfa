# Outbound call throttling shared by RPC, price, and metadata clients.

from backend_walletsync.ingestion.rate_limiter import RequestScheduler

__all__ = ["RequestScheduler"]
