"""
Sync Runner Module - Resumable, cancellable course sync.
========================================================

Runs a tenant's full sync:

1. List courses and assignments from the LMS
2. Resume a recent interrupted sync at its course index (counters kept),
   or start fresh
3. For each course, in order: re-read the status (a cancel stops the loop
   here), walk the course and store its materials
4. Record a result snapshot and mark the sync completed

Within a course the walker runs in its own thread and hands Materials to
this thread through a bounded queue, so storing never waits for the walk
to finish and a slow store applies back-pressure to the walk.

Errors in one course are logged and the next course runs. Rejected LMS or
embedding credentials fail the whole sync.
"""

import queue
import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from studysync.indexing.material_store import MaterialStore
from studysync.ingestion.lms_client import (
    CanvasClient,
    LMSAssignment,
    LMSCourse,
    LMSCredentials,
)
from studysync.ingestion.walker import ContentWalker
from studysync.shared.config import get_settings
from studysync.shared.errors import (
    EmbeddingAuthenticationError,
    LMSAuthenticationError,
    LMSError,
    SyncAlreadyRunningError,
    SyncError,
    WalkAbortedError,
)
from studysync.shared.logging import get_logger
from studysync.shared.schemas import Material
from studysync.sync.progress_store import SyncProgressRepository
from studysync.sync.state import (
    CourseIngestSummary,
    SyncProgress,
    SyncResult,
    SyncStateMachine,
    SyncStatus,
)

logger = get_logger(__name__)

ClientFactory = Callable[[LMSCredentials], CanvasClient]

FATAL_ERRORS = (LMSAuthenticationError, EmbeddingAuthenticationError)

# Marks the end of a course's material stream
_WALK_DONE = object()

_PUT_POLL_SECONDS = 0.5


@dataclass
class SyncHandle:
    """Returned by start_sync once the sync is accepted."""

    tenant_id: str
    course_total: int
    start_index: int
    resumed: bool
    thread: Optional[threading.Thread] = None

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until a background sync finishes. Returns False on timeout."""
        if self.thread is None:
            return True
        self.thread.join(timeout)
        return not self.thread.is_alive()


@dataclass
class _Totals:
    materials_stored: int = 0
    chunks_created: int = 0


class SyncRunner:
    """
    Orchestrates syncs for any number of tenants, one at a time per tenant.

    Example:
        >>> runner = SyncRunner()
        >>> handle = runner.start_sync("t1", credentials)
        >>> runner.get_status("t1").status
        <SyncStatus.RUNNING: 'running'>
        >>> runner.cancel_sync("t1")
        True
    """

    def __init__(
        self,
        repository: Optional[SyncProgressRepository] = None,
        walker: Optional[ContentWalker] = None,
        material_store: Optional[MaterialStore] = None,
        client_factory: Optional[ClientFactory] = None,
        staleness_minutes: Optional[int] = None,
        queue_size: Optional[int] = None,
    ):
        """
        Initialize the runner.

        Args:
            repository: Progress persistence
            walker: Course walker (shares ``client_factory`` if built here)
            material_store: Incremental store for walked materials
            client_factory: Builds an LMS client from credentials
            staleness_minutes: A running sync older than this is restarted
                instead of resumed
            queue_size: Materials buffered between walker and store
        """
        sync_config = get_settings().sync

        self.client_factory = client_factory or CanvasClient
        self.repository = repository or SyncProgressRepository()
        self.walker = walker or ContentWalker(client_factory=self.client_factory)
        self._material_store = material_store
        self.staleness = timedelta(
            minutes=staleness_minutes if staleness_minutes is not None
            else sync_config.staleness_minutes
        )
        self.queue_size = queue_size or sync_config.queue_size

        self._threads: dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

    @property
    def material_store(self) -> MaterialStore:
        if self._material_store is None:
            self._material_store = MaterialStore()
        return self._material_store

    # ── Public API ──────────────────────────────────────────────────────────

    def start_sync(
        self,
        tenant_id: str,
        credentials: LMSCredentials,
        background: bool = True,
    ) -> SyncHandle:
        """
        Start (or resume) a sync for a tenant.

        Args:
            tenant_id: Whose sync this is
            credentials: LMS base URL and token
            background: Run in a daemon thread and return at once

        Returns:
            SyncHandle describing the accepted sync

        Raises:
            SyncAlreadyRunningError: A sync for the tenant is active in this process
            LMSError: Courses or assignments could not be listed
        """
        with self._threads_lock:
            self._ensure_not_running(tenant_id)
        courses, assignments = self._list_courses(credentials)
        course_total = len(courses)

        with self._threads_lock:
            # Checked again: another start may have won while courses were listed
            self._ensure_not_running(tenant_id)

            previous = self.repository.load(tenant_id)
            if previous.is_resumable(self.staleness):
                start_index = min(previous.course_index, course_total)
                self.repository.apply(tenant_id, lambda m: m.resume(course_total))
                logger.info(
                    f"Resuming sync for {tenant_id} at course {start_index + 1}/{course_total} "
                    f"({previous.materials_stored} materials, {previous.chunks_created} chunks so far)"
                )
                resumed = True
            else:
                if previous.is_running:
                    logger.warning(f"Discarding stale sync for {tenant_id} from {previous.started_at}")
                start_index = 0
                self.repository.apply(tenant_id, lambda m: m.start(course_total))
                logger.info(f"Starting sync for {tenant_id}: {course_total} courses")
                resumed = False

            handle = SyncHandle(
                tenant_id=tenant_id,
                course_total=course_total,
                start_index=start_index,
                resumed=resumed,
            )

            if background:
                thread = threading.Thread(
                    target=self._run,
                    args=(tenant_id, credentials, courses, assignments, start_index),
                    name=f"sync-{tenant_id}",
                    daemon=True,
                )
                self._threads[tenant_id] = thread
                handle.thread = thread
                thread.start()
                return handle

        self._run(tenant_id, credentials, courses, assignments, start_index)
        return handle

    def cancel_sync(self, tenant_id: str) -> bool:
        """
        Ask a running sync to stop before its next course.

        Returns:
            True if a running sync was cancelled
        """
        try:
            self.repository.apply(tenant_id, lambda m: m.cancel())
        except SyncError:
            return False
        logger.info(f"Sync cancelled for {tenant_id}")
        return True

    def get_status(self, tenant_id: str) -> SyncProgress:
        """Read-only snapshot of a tenant's progress."""
        return self.repository.load(tenant_id)

    def acknowledge(self, tenant_id: str) -> SyncProgress:
        """
        Reset a completed or failed sync to idle once its result was seen.

        A running sync is left alone.
        """
        progress = self.repository.load(tenant_id)
        if progress.is_running:
            return progress
        return self.repository.apply(tenant_id, lambda m: m.reset())

    def is_active(self, tenant_id: str) -> bool:
        """True while this process runs a sync thread for the tenant."""
        thread = self._threads.get(tenant_id)
        return thread is not None and thread.is_alive()

    # ── Sync Loop ───────────────────────────────────────────────────────────

    def _ensure_not_running(self, tenant_id: str) -> None:
        """Caller holds ``_threads_lock``."""
        active = self._threads.get(tenant_id)
        if active is not None and active.is_alive():
            raise SyncAlreadyRunningError(tenant_id)

    def _list_courses(
        self, credentials: LMSCredentials
    ) -> tuple[list[LMSCourse], list[LMSAssignment]]:
        with self.client_factory(credentials) as client:
            courses = client.list_courses()
            assignments: list[LMSAssignment] = []
            for course in courses:
                try:
                    listed = client.list_assignments(course.id)
                except LMSAuthenticationError:
                    raise
                except LMSError as e:
                    logger.warning(f"Could not list assignments for course {course.id}: {e}")
                    continue
                assignments.extend(
                    a if a.course_id is not None else a.model_copy(update={"course_id": course.id})
                    for a in listed
                )
        return courses, assignments

    def _update(self, tenant_id: str, operation: Callable[[SyncStateMachine], None]) -> bool:
        """Apply a progress update; False if the sync is no longer running."""
        try:
            self.repository.apply(tenant_id, operation)
            return True
        except SyncError as e:
            logger.debug(f"Progress update for {tenant_id} ignored: {e}")
            return False

    def _run(
        self,
        tenant_id: str,
        credentials: LMSCredentials,
        courses: list[LMSCourse],
        assignments: list[LMSAssignment],
        start_index: int,
    ) -> None:
        progress = self.repository.load(tenant_id)
        totals = _Totals(progress.materials_stored, progress.chunks_created)
        ingest: list[CourseIngestSummary] = []

        try:
            for index in range(start_index, len(courses)):
                if self.repository.load(tenant_id).status != SyncStatus.RUNNING:
                    logger.info(f"Sync for {tenant_id} stopped before course {index + 1}")
                    return

                course = courses[index]
                self._update(tenant_id, lambda m: m.begin_course(index, course.name))
                try:
                    ingest.append(self._sync_course(tenant_id, credentials, course, totals))
                except FATAL_ERRORS:
                    raise
                except Exception as e:
                    logger.warning(f"Ingest failed for course {course.id} ({course.name}): {e}")

            result = SyncResult(
                courses=[
                    {"id": c.id, "name": c.name, "course_code": c.course_code}
                    for c in courses
                ],
                assignments=[
                    {
                        "id": a.id,
                        "name": a.name,
                        "description": a.description,
                        "due_at": a.due_at,
                        "course_id": a.course_id,
                    }
                    for a in assignments
                ],
                ingest=ingest,
            )
            if self._update(tenant_id, lambda m: m.complete(result)):
                logger.info(
                    f"Sync complete for {tenant_id}: {totals.materials_stored} materials, "
                    f"{totals.chunks_created} chunks"
                )
        except Exception as e:
            logger.error(f"Sync failed for {tenant_id}: {e}")
            self._update(tenant_id, lambda m: m.fail(str(e) or type(e).__name__))
        finally:
            with self._threads_lock:
                if self._threads.get(tenant_id) is threading.current_thread():
                    del self._threads[tenant_id]

    def _sync_course(
        self,
        tenant_id: str,
        credentials: LMSCredentials,
        course: LMSCourse,
        totals: _Totals,
    ) -> CourseIngestSummary:
        """Walk one course in a producer thread and store what it yields."""
        course_id = str(course.id)
        summary = CourseIngestSummary(course_id=course_id, name=course.name)
        materials: "queue.Queue[object]" = queue.Queue(maxsize=self.queue_size)
        stop = threading.Event()
        walk_errors: list[BaseException] = []

        def enqueue(material: Material) -> None:
            while not stop.is_set():
                try:
                    materials.put(material, timeout=_PUT_POLL_SECONDS)
                    return
                except queue.Full:
                    continue
            raise WalkAbortedError(f"Storing stopped for course {course_id}")

        def on_item_read(message: str, index: int, total: int) -> None:
            if stop.is_set():
                raise WalkAbortedError(f"Storing stopped for course {course_id}")
            self._update(
                tenant_id,
                lambda m: m.narrate(f"Ingesting {course.name}: {message} ({index}/{total})"),
            )

        def produce() -> None:
            try:
                self.walker.walk(
                    course_id,
                    credentials,
                    on_item_read=on_item_read,
                    on_material_ingested=enqueue,
                )
            except BaseException as e:
                walk_errors.append(e)
            finally:
                materials.put(_WALK_DONE)

        producer = threading.Thread(target=produce, name=f"walk-{course_id}", daemon=True)
        producer.start()

        try:
            while True:
                item = materials.get()
                if item is _WALK_DONE:
                    break
                self._store_material(tenant_id, course_id, item, summary, totals)
        finally:
            stop.set()
            # Unblock a producer waiting on a full queue
            while producer.is_alive():
                try:
                    materials.get(timeout=_PUT_POLL_SECONDS)
                except queue.Empty:
                    pass
            producer.join()

        if walk_errors:
            raise walk_errors[0]

        logger.info(
            f"Course {course.name}: {summary.materials_stored} materials stored, "
            f"{summary.chunks_created} chunks, {summary.materials_skipped} unchanged"
        )
        return summary

    def _store_material(
        self,
        tenant_id: str,
        course_id: str,
        material: Material,
        summary: CourseIngestSummary,
        totals: _Totals,
    ) -> None:
        result = self.material_store.store(course_id, [material])

        summary.materials_stored += result.materials_stored
        summary.chunks_created += result.chunks_created
        summary.materials_skipped += result.materials_skipped
        summary.materials_failed += result.materials_failed
        totals.materials_stored += result.materials_stored
        totals.chunks_created += result.chunks_created

        self._update(
            tenant_id,
            lambda m: m.record_progress(
                materials_stored=totals.materials_stored,
                chunks_created=totals.chunks_created,
                current_course_materials=summary.materials_stored,
                current_course_chunks=summary.chunks_created,
            ),
        )
