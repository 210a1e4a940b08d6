"""Incremental synchronisation of the index with the content provider."""

from pagemind.sync.engine import SyncEngine
from pagemind.sync.scheduler import SyncScheduler
from pagemind.sync.state import CycleReport, SyncFailure, SyncPhase, SyncState, SyncStateStore

__all__ = [
    "CycleReport",
    "SyncEngine",
    "SyncFailure",
    "SyncPhase",
    "SyncScheduler",
    "SyncState",
    "SyncStateStore",
]
