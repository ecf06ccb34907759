"""
Sync Module - Resumable per-tenant LMS sync.
============================================

- state: SyncProgress record and its transition-checked state machine
- progress_store: Persisted progress, one JSON file per tenant
- runner: Background sync that walks, stores and reports progress
"""

from studysync.sync.state import (
    CourseIngestSummary,
    SyncProgress,
    SyncResult,
    SyncStateMachine,
    SyncStatus,
)
from studysync.sync.progress_store import SyncProgressRepository
from studysync.sync.runner import SyncHandle, SyncRunner

__all__ = [
    # State
    "CourseIngestSummary",
    "SyncProgress",
    "SyncResult",
    "SyncStateMachine",
    "SyncStatus",
    # Persistence
    "SyncProgressRepository",
    # Runner
    "SyncHandle",
    "SyncRunner",
]
