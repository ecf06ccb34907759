"""
Blob Storage Module - Persist original file binaries.
=====================================================

Keeps the original PDF/PPTX/DOCX bytes next to the extracted text so a
consumer can offer the source document for download. Storage failures are
reported to the caller, who logs them and carries on; they never block
text extraction or chunk storage.
"""

import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from studysync.shared.config import get_settings
from studysync.shared.logging import get_logger
from studysync.shared.utils import compute_bytes_hash, ensure_parent_directory

logger = get_logger(__name__)

ALLOWED_EXTENSIONS = {"pdf", "docx", "pptx"}
MAX_FILE_NAME_LENGTH = 200


def safe_storage_file_name(name: Optional[str], data: bytes = b"") -> str:
    """
    Make a file name safe for use as a storage key.

    Keeps ``[A-Za-z0-9._-]``, collapses underscores, limits the length and
    restricts the extension to known document types (others become
    ``.bin``). Falls back to ``file_{sha256[:12]}`` when nothing usable is
    left.

    Example:
        >>> safe_storage_file_name("Week 1: Intro (v2).PDF")
        'Week_1_Intro_v2.pdf'
    """
    raw = (name or "").strip()
    stem, dot, ext = raw.rpartition(".")
    if not dot:
        stem, ext = raw, ""

    ext = ext.lower()
    if ext not in ALLOWED_EXTENSIONS:
        ext = "bin"

    stem = re.sub(r"[^A-Za-z0-9._-]", "_", stem)
    stem = re.sub(r"_+", "_", stem).strip("._")
    if not stem:
        stem = f"file_{compute_bytes_hash(data or raw.encode('utf-8'))[:12]}"

    max_stem = MAX_FILE_NAME_LENGTH - len(ext) - 1
    return f"{stem[:max_stem]}.{ext}"


def storage_path_for(course_id: str, item_id: str, file_name: Optional[str], data: bytes = b"") -> str:
    """Storage key for a material's original file."""
    return f"{course_id}/{item_id}/{safe_storage_file_name(file_name, data)}"


# ─────────────────────────────────────────────────────────────────────────────
# Storage Backends
# ─────────────────────────────────────────────────────────────────────────────


class BlobStorage(ABC):
    """Interface for storing original file binaries."""

    @abstractmethod
    def upload(self, data: bytes, path: str) -> str:
        """
        Store bytes under a storage key.

        Returns:
            The key the bytes were stored under
        """

    @abstractmethod
    def exists(self, path: str) -> bool:
        """True when a blob is stored under the key."""


class LocalBlobStorage(BlobStorage):
    """Stores blobs as files under a root directory."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root or get_settings().resolved_paths.blobs_dir)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValueError(f"Storage path escapes blob root: {path}")
        return target

    def upload(self, data: bytes, path: str) -> str:
        target = ensure_parent_directory(self._resolve(path))
        target.write_bytes(data)
        logger.debug(f"Stored {len(data)} bytes at {path}")
        return path

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()
