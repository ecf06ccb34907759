"""
Sync State Module - Progress record and its state machine.
==========================================================

A tenant's sync moves through four statuses:

    idle ──start──▶ running ──complete──▶ completed
                      │  ▲                    │
                      │  └──start/resume──────┤
                      ├──fail──▶ failed ──────┤
                      └──cancel──▶ idle ◀─reset┘

Every change goes through SyncStateMachine, which checks it against an
explicit transition table and raises InvalidTransitionError for anything
else. Progress updates are only accepted while running, so a cancelled
sync cannot be written back to life by a late update.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from studysync.shared.errors import InvalidTransitionError
from studysync.shared.utils import utc_now


class SyncStatus(str, Enum):
    """Lifecycle status of a tenant's sync."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


VALID_TRANSITIONS: dict[SyncStatus, frozenset[SyncStatus]] = {
    SyncStatus.IDLE: frozenset({SyncStatus.RUNNING}),
    SyncStatus.RUNNING: frozenset(
        {SyncStatus.RUNNING, SyncStatus.COMPLETED, SyncStatus.FAILED, SyncStatus.IDLE}
    ),
    SyncStatus.COMPLETED: frozenset({SyncStatus.IDLE, SyncStatus.RUNNING}),
    SyncStatus.FAILED: frozenset({SyncStatus.IDLE, SyncStatus.RUNNING}),
}


# ─────────────────────────────────────────────────────────────────────────────
# Progress Models
# ─────────────────────────────────────────────────────────────────────────────


class CourseIngestSummary(BaseModel):
    """What one course contributed to a sync."""

    course_id: str
    name: str = ""
    materials_stored: int = 0
    chunks_created: int = 0
    materials_skipped: int = 0
    materials_failed: int = 0


class SyncResult(BaseModel):
    """Snapshot stored with a completed sync."""

    courses: list[dict[str, Any]] = Field(default_factory=list)
    assignments: list[dict[str, Any]] = Field(default_factory=list)
    ingest: list[CourseIngestSummary] = Field(default_factory=list)


class SyncProgress(BaseModel):
    """Persisted progress of one tenant's sync, as observers see it."""

    tenant_id: str
    status: SyncStatus = SyncStatus.IDLE
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    phase: Optional[str] = None
    course_index: int = 0
    course_total: int = 0
    materials_stored: int = 0
    chunks_created: int = 0
    current_course_materials: int = 0
    current_course_chunks: int = 0
    message: Optional[str] = None
    error: Optional[str] = None
    result: Optional[SyncResult] = None
    updated_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self.status == SyncStatus.RUNNING

    def is_resumable(self, max_age: timedelta, now: Optional[datetime] = None) -> bool:
        """
        True for a running sync started less than ``max_age`` ago.

        An older running row is left over from a process that died; it is
        restarted from scratch instead of resumed.
        """
        if not self.is_running or self.started_at is None:
            return False
        now = now or utc_now()
        return now - self.started_at <= max_age


# ─────────────────────────────────────────────────────────────────────────────
# State Machine
# ─────────────────────────────────────────────────────────────────────────────


class SyncStateMachine:
    """
    Applies lifecycle operations to a SyncProgress.

    Operates on the record in place and performs no I/O; the progress
    repository persists the result.

    Example:
        >>> machine = SyncStateMachine(SyncProgress(tenant_id="t1"))
        >>> machine.start(course_total=10)
        >>> machine.begin_course(0, "Algorithms")
        >>> machine.progress.phase
        'ingest'
        >>> machine.complete(SyncResult())
        >>> machine.progress.status
        <SyncStatus.COMPLETED: 'completed'>
    """

    def __init__(self, progress: SyncProgress):
        self.progress = progress

    @property
    def status(self) -> SyncStatus:
        return self.progress.status

    @staticmethod
    def can_transition(current: SyncStatus, target: SyncStatus) -> bool:
        return target in VALID_TRANSITIONS[current]

    def _transition(self, target: SyncStatus) -> None:
        if not self.can_transition(self.status, target):
            raise InvalidTransitionError(self.status.value, target.value)
        self.progress.status = target
        self._touch()

    def _require_running(self, operation: str) -> None:
        if not self.progress.is_running:
            raise InvalidTransitionError(self.status.value, operation)

    def _touch(self) -> None:
        self.progress.updated_at = utc_now()

    # ── Lifecycle ───────────────────────────────────────────────────────────

    def start(self, course_total: int) -> None:
        """Begin a fresh sync with zeroed counters."""
        self._transition(SyncStatus.RUNNING)
        p = self.progress
        p.started_at = utc_now()
        p.completed_at = None
        p.phase = "starting"
        p.course_index = 0
        p.course_total = course_total
        p.materials_stored = 0
        p.chunks_created = 0
        p.current_course_materials = 0
        p.current_course_chunks = 0
        p.message = "Starting sync…"
        p.error = None
        p.result = None

    def resume(self, course_total: int) -> None:
        """Continue an interrupted sync; counters, index and start time are kept."""
        if not self.progress.is_running:
            raise InvalidTransitionError(self.status.value, "resume")
        self._transition(SyncStatus.RUNNING)
        p = self.progress
        p.phase = "ingest"
        p.course_total = course_total
        p.message = "Resuming sync…"
        p.error = None

    def begin_course(self, index: int, name: str) -> None:
        """Mark the start of course ``index``; per-course counters reset."""
        self._require_running("begin_course")
        p = self.progress
        p.phase = "ingest"
        p.course_index = index
        p.message = f"Ingesting {name}…"
        p.current_course_materials = 0
        p.current_course_chunks = 0
        self._touch()

    def record_progress(
        self,
        materials_stored: Optional[int] = None,
        chunks_created: Optional[int] = None,
        current_course_materials: Optional[int] = None,
        current_course_chunks: Optional[int] = None,
    ) -> None:
        """Set cumulative and per-course counters; None leaves a value as is."""
        self._require_running("record_progress")
        p = self.progress
        if materials_stored is not None:
            p.materials_stored = materials_stored
        if chunks_created is not None:
            p.chunks_created = chunks_created
        if current_course_materials is not None:
            p.current_course_materials = current_course_materials
        if current_course_chunks is not None:
            p.current_course_chunks = current_course_chunks
        self._touch()

    def narrate(self, message: str) -> None:
        """Replace the human-readable progress message."""
        self._require_running("narrate")
        self.progress.message = message
        self._touch()

    def complete(self, result: SyncResult) -> None:
        self._transition(SyncStatus.COMPLETED)
        p = self.progress
        p.completed_at = utc_now()
        p.phase = "done"
        p.message = "Sync complete"
        p.error = None
        p.result = result

    def fail(self, error: str) -> None:
        self._transition(SyncStatus.FAILED)
        p = self.progress
        p.completed_at = utc_now()
        p.message = error
        p.error = error

    def cancel(self) -> None:
        """Stop a running sync; the runner notices before its next course."""
        self._require_running("cancel")
        self._clear()

    def reset(self) -> None:
        """Return a finished (or cancelled) sync to idle."""
        if self.status == SyncStatus.IDLE:
            return
        self._clear()

    def _clear(self) -> None:
        self._transition(SyncStatus.IDLE)
        p = self.progress
        p.started_at = None
        p.completed_at = None
        p.phase = None
        p.course_index = 0
        p.course_total = 0
        p.materials_stored = 0
        p.chunks_created = 0
        p.current_course_materials = 0
        p.current_course_chunks = 0
        p.message = None
        p.error = None
        p.result = None
