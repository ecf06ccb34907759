"""
Progress Store Module - Persisted sync progress per tenant.
===========================================================

One JSON file per tenant under ``paths.progress_dir``. Writes replace the
file atomically, and every read-modify-write happens under a lock, so a
cancel from one thread and a progress update from another cannot lose
each other's changes.
"""

import threading
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError

from studysync.shared.config import get_settings
from studysync.shared.logging import get_logger
from studysync.shared.utils import ensure_directory, load_json, safe_file_stem, save_json
from studysync.sync.state import SyncProgress, SyncStateMachine

logger = get_logger(__name__)


class SyncProgressRepository:
    """
    Loads and saves SyncProgress records.

    Example:
        >>> repo = SyncProgressRepository()
        >>> repo.apply("t1", lambda m: m.start(course_total=3)).status
        <SyncStatus.RUNNING: 'running'>
        >>> repo.load("t1").course_total
        3
    """

    def __init__(self, progress_dir: Optional[Path] = None):
        self.progress_dir = Path(progress_dir or get_settings().resolved_paths.progress_dir)
        ensure_directory(self.progress_dir)
        self._lock = threading.RLock()

    def _path(self, tenant_id: str) -> Path:
        return self.progress_dir / f"{safe_file_stem(tenant_id)}.json"

    def load(self, tenant_id: str) -> SyncProgress:
        """Current progress for a tenant; a fresh idle record if none is stored."""
        path = self._path(tenant_id)
        with self._lock:
            if not path.exists():
                return SyncProgress(tenant_id=tenant_id)
            try:
                return SyncProgress.model_validate(load_json(path))
            except (ValueError, ValidationError) as e:
                logger.warning(f"Unreadable sync progress for {tenant_id}, treating as idle: {e}")
                return SyncProgress(tenant_id=tenant_id)

    def save(self, progress: SyncProgress) -> None:
        with self._lock:
            save_json(self._path(progress.tenant_id), progress.model_dump(mode="json"))

    def apply(self, tenant_id: str, operation: Callable[[SyncStateMachine], None]) -> SyncProgress:
        """
        Load, apply one state machine operation, save.

        Raises:
            InvalidTransitionError: If the operation is not allowed from the
                stored status; nothing is saved
        """
        with self._lock:
            machine = SyncStateMachine(self.load(tenant_id))
            operation(machine)
            self.save(machine.progress)
            return machine.progress

    def delete(self, tenant_id: str) -> bool:
        with self._lock:
            path = self._path(tenant_id)
            if not path.exists():
                return False
            path.unlink()
            return True
