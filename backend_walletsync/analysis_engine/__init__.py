"""
Analysis engine: venue detection and event classification.

Deterministic rules only; consumes RawTransaction + BalanceDelta from the
listener and produces WalletEvents for the ledger.
"""

from backend_walletsync.analysis_engine.classifier import (
    EventClassifier,
    EventDraft,
    plan_events,
)
from backend_walletsync.analysis_engine.venues import (
    UNKNOWN_VENUE,
    VENUE_PRIORITY,
    VENUE_PROGRAMS,
    detect,
)

__all__ = [
    "UNKNOWN_VENUE",
    "VENUE_PRIORITY",
    "VENUE_PROGRAMS",
    "EventClassifier",
    "EventDraft",
    "detect",
    "plan_events",
]
