"""Address helpers shared by the registry, the CLI and the classifier."""

from solders.pubkey import Pubkey


def is_valid_wallet(address: str) -> bool:
    """True if address parses as a Solana public key."""
    try:
        Pubkey.from_string((address or "").strip())
        return True
    except Exception:
        return False


def short_address(address: str, width: int = 8) -> str:
    """Abbreviated address for log lines: first and last width chars."""
    if len(address) <= 2 * width + 3:
        return address
    return f"{address[:width]}...{address[-width:]}"
