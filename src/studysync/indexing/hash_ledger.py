"""
Hash Ledger Module - Content hashes of fully embedded materials.
================================================================

Remembers, per (course, material), the hash of the text whose chunks were
all embedded and stored. The material store compares incoming text against
this ledger to skip unchanged materials.

One JSON file per course under ``paths.hashes_dir``:

    {"page-42-7": {"hash": "ab12...", "updated_at": "2026-01-01T00:00:00+00:00"}}
"""

import threading
from pathlib import Path
from typing import Optional

from studysync.shared.config import get_settings
from studysync.shared.logging import get_logger
from studysync.shared.schemas import ContentHashRecord
from studysync.shared.utils import ensure_directory, load_json, safe_file_stem, save_json, utc_now

logger = get_logger(__name__)


class ContentHashLedger:
    """
    File-backed store of content hashes.

    Example:
        >>> ledger = ContentHashLedger()
        >>> ledger.get("42", "page-42-7") is None
        True
        >>> ledger.set("42", "page-42-7", "ab12")
        >>> ledger.get("42", "page-42-7").hash
        'ab12'
    """

    def __init__(self, hashes_dir: Optional[Path] = None):
        self.hashes_dir = Path(hashes_dir or get_settings().resolved_paths.hashes_dir)
        ensure_directory(self.hashes_dir)
        self._lock = threading.Lock()

        logger.debug(f"Hash ledger initialized: {self.hashes_dir}")

    def _course_path(self, course_id: str) -> Path:
        return self.hashes_dir / f"{safe_file_stem(course_id)}.json"

    def _load_course(self, course_id: str) -> dict[str, dict]:
        path = self._course_path(course_id)
        if not path.exists():
            return {}
        try:
            data = load_json(path)
        except ValueError as e:
            logger.warning(f"Hash ledger for course {course_id} is unreadable, starting over: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, course_id: str, material_item_id: str) -> Optional[ContentHashRecord]:
        """Stored hash record for a material, or None."""
        with self._lock:
            entry = self._load_course(course_id).get(material_item_id)
        if not entry:
            return None
        return ContentHashRecord(course_id=course_id, material_item_id=material_item_id, **entry)

    def set(self, course_id: str, material_item_id: str, content_hash: str) -> ContentHashRecord:
        """Record the hash of a material whose chunks are all stored."""
        record = ContentHashRecord(
            course_id=course_id,
            material_item_id=material_item_id,
            hash=content_hash,
            updated_at=utc_now(),
        )
        with self._lock:
            data = self._load_course(course_id)
            data[material_item_id] = {
                "hash": record.hash,
                "updated_at": record.updated_at.isoformat(),
            }
            save_json(self._course_path(course_id), data)
        return record

    def delete(self, course_id: str, material_item_id: str) -> bool:
        """Forget a material's hash. Returns True if one was stored."""
        with self._lock:
            data = self._load_course(course_id)
            if material_item_id not in data:
                return False
            del data[material_item_id]
            save_json(self._course_path(course_id), data)
        return True

    def list_course(self, course_id: str) -> list[ContentHashRecord]:
        """All hash records for a course."""
        with self._lock:
            data = self._load_course(course_id)
        return [
            ContentHashRecord(course_id=course_id, material_item_id=item_id, **entry)
            for item_id, entry in sorted(data.items())
        ]

    def clear_course(self, course_id: str) -> int:
        """Forget every hash for a course. Returns how many were removed."""
        with self._lock:
            path = self._course_path(course_id)
            if not path.exists():
                return 0
            count = len(self._load_course(course_id))
            path.unlink()
        logger.info(f"Cleared {count} content hashes for course {course_id}")
        return count
