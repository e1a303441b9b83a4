"""Storage modules for Miyomi."""

from miyomi.storage.state_store import JsonFileStateStore, MemoryStateStore, StateStore
from miyomi.storage.pick_ledger import PerformanceStatus, PickLedger, compute_performance
from miyomi.storage.shortlinks import Engagement, Shortlink, ShortlinkTracker

__all__ = [
    "StateStore",
    "MemoryStateStore",
    "JsonFileStateStore",
    "PickLedger",
    "PerformanceStatus",
    "compute_performance",
    "Engagement",
    "Shortlink",
    "ShortlinkTracker",
]
