"""
Venue detection: which exchange program, if any, a transaction routed through.

Candidate program ids come from three evidence sources, strongest first: top-level
instruction programs, inner-instruction programs, then the full account-key list.
Every venue with a match is collected and a fixed priority table picks the winner,
aggregators first, since an aggregator trade also touches the pools it routes through.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from backend_walletsync.solana_listener.models import RawTransaction
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger(__name__)

UNKNOWN_VENUE = "Unknown"
TOKEN_PROGRAM_VENUE = "Token Program"

# First id per venue is its primary program (used as swap counterparty).
VENUE_PROGRAMS: dict[str, tuple[str, ...]] = {
    "Pump.fun": (
        "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P",
        "pAMMBay6oceH9fJKBRHGP5D4bD4sWpmSwMn52FMfXEA",
        "CE5QSoHhzGGUE8MAfgkWWdDKzKwMDZjCFfvyMDEiKWdj",
        "pumpkn6GrJ5X1KTiRhPWToxrv7wbgx6x7QrePfqzgKA",
    ),
    "Raydium": (
        "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8",  # AMM v4
        "EhYXQPv92L6EUrDBkLyMtq5e1yvfbGzT3H7qUaLDqhd8",
        "CPMMoo8L3F4NbTegBCKVNunggL7H1ZpdTHKxQB5qKP1C",  # CPMM
        "27haf8L6oxUeXrHrgEgsexjSY5hbVUWEmvv9Nyxg8vQv",
        "9W959DqEETiGZocYWCQPaJ6sBmUzgfxXfqGeTEdp3aQP",
    ),
    "Jupiter": (
        "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4",  # v6
        "JUP4Fb2cqiRUcaTHdrPC8h2gNsA2ETXiPDD33WcGuJB",  # v4
        "j1o2qRpjcyUwEvwtcfhEQefh773ZgjxcVRry7LDqg5X",
    ),
    "Serum": (
        "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin",
        "BJ3jrUzddfuSrZHXSCxMbUuqUUaG23jxjE6tLy6QeL2k",
        "EUqojwWA2rd19FZrzeBncJsm38Jm1hEhE3zsmX3bRc2o",
    ),
    "Orca": (
        "DjVE6JNiYqPL2QXyCUUh8rNjHrbz9hXHNYt99MQ59qw1",
        "9W959DqEETiGZocYWCQPaJ6sBmUzgfxXfqGeTEdp3aQP",
        "82yxjeMsvaURa4MbZZ7WZZHfobirZYkH1zF8fmeGtyaQ",
    ),
    "Meteora": (
        "Eo7WjKq67rjJQSZxS6z3YkapzY3eMj6Xy8X5EQVn5UaB",
        "LBUZKhRxPF3XUpBCjp4YzTKgLccjZhTSDM9YuVaPwxo",
    ),
    "Phoenix": ("PhoeNiXZ8ByJGLkxNfZRnkUfjvmuYqLR89jjFHGqdXY",),
    "Lifinity": ("EewxydAPCCVuNEyrVN68PuSYdQ7wKn27V9Gjeoi8dy3S",),
}

# Highest priority first; every key of VENUE_PROGRAMS must appear exactly once.
VENUE_PRIORITY: tuple[str, ...] = (
    "Jupiter",
    "Raydium",
    "Orca",
    "Serum",
    "Meteora",
    "Phoenix",
    "Lifinity",
    "Pump.fun",
)

_PROGRAM_TO_VENUES: dict[str, frozenset[str]] = {}
for _venue, _ids in VENUE_PROGRAMS.items():
    for _pid in _ids:
        _PROGRAM_TO_VENUES[_pid] = _PROGRAM_TO_VENUES.get(_pid, frozenset()) | {_venue}


@dataclass(frozen=True)
class VenueMatch:
    venue: str
    program_id: str
    source: str


def _top_level_programs(tx: RawTransaction) -> Iterable[str]:
    return (ix.program_id for ix in tx.instructions if ix.program_id)


def _inner_programs(tx: RawTransaction) -> Iterable[str]:
    return (ix.program_id for ix in tx.inner_instructions if ix.program_id)


def _account_keys(tx: RawTransaction) -> Iterable[str]:
    return (k for k in tx.account_keys if k)


# Evidence sources, strongest signal first.
EVIDENCE_SOURCES: tuple[tuple[str, Callable[[RawTransaction], Iterable[str]]], ...] = (
    ("instructions", _top_level_programs),
    ("inner_instructions", _inner_programs),
    ("account_keys", _account_keys),
)


def find_matches(tx: RawTransaction) -> list[VenueMatch]:
    """Every (venue, program id) pair found in the transaction, strongest evidence first."""
    matches: list[VenueMatch] = []
    seen: set[tuple[str, str]] = set()
    for source, collect in EVIDENCE_SOURCES:
        for program_id in collect(tx):
            for venue in sorted(_PROGRAM_TO_VENUES.get(program_id, ())):
                if (venue, program_id) in seen:
                    continue
                seen.add((venue, program_id))
                matches.append(VenueMatch(venue=venue, program_id=program_id, source=source))
    return matches


def select_venue(venues: Iterable[str]) -> str:
    """Highest-priority venue among venues; UNKNOWN_VENUE when empty."""
    found = set(venues)
    for venue in VENUE_PRIORITY:
        if venue in found:
            return venue
    return UNKNOWN_VENUE


def detect(tx: RawTransaction) -> str:
    matches = find_matches(tx)
    venue = select_venue(m.venue for m in matches)
    if matches:
        logger.debug(
            "venue_detected",
            signature=tx.signature,
            venue=venue,
            candidates=sorted({m.venue for m in matches}),
        )
    return venue


def primary_program_id(venue: str) -> str:
    programs = VENUE_PROGRAMS.get(venue)
    return programs[0] if programs else UNKNOWN_VENUE
