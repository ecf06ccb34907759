"""
Chunker Module - Overlapping text chunking for embedding.
=========================================================

Splits a material's text into fixed-size, overlapping chunks:
- Target size and overlap in characters
- Chunk ends snapped back to the nearest preceding whitespace so words
  are never cut in half
- Deterministic: the same text always yields the same chunks, which keeps
  chunk ids stable across syncs
"""

from dataclasses import dataclass
from typing import Optional

from studysync.shared.config import get_settings
from studysync.shared.logging import get_logger
from studysync.shared.schemas import Chunk, Material

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Chunking Configuration
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class ChunkerConfig:
    """Configuration for text chunking."""

    chunk_size: int = 1000
    chunk_overlap: int = 100

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError("chunk_overlap must be in [0, chunk_size)")

    @classmethod
    def from_settings(cls) -> "ChunkerConfig":
        """Build from the ``chunking`` settings section."""
        cfg = get_settings().chunking
        return cls(chunk_size=cfg.chunk_size, chunk_overlap=cfg.chunk_overlap)


# ─────────────────────────────────────────────────────────────────────────────
# Text Splitter
# ─────────────────────────────────────────────────────────────────────────────


class TextSplitter:
    """
    Splits text into overlapping chunks on whitespace boundaries.

    Each chunk covers at most ``chunk_size`` characters. When a chunk would
    end inside a word, its end moves back to just after the last whitespace
    in the window. The next chunk starts ``chunk_overlap`` characters before
    the previous end.

    Example:
        >>> splitter = TextSplitter(ChunkerConfig(chunk_size=20, chunk_overlap=5))
        >>> splitter.split("the quick brown fox jumps over the lazy dog")
        ['the quick brown fox', 'fox jumps over the', 'the lazy dog']
    """

    def __init__(self, config: Optional[ChunkerConfig] = None):
        self.config = config or ChunkerConfig.from_settings()

    def split(self, text: str) -> list[str]:
        """
        Split text into chunks.

        Args:
            text: Text to split

        Returns:
            Non-empty, stripped chunks in order
        """
        if not text or not text.strip():
            return []

        size = self.config.chunk_size
        overlap = self.config.chunk_overlap
        length = len(text)

        chunks: list[str] = []
        start = 0
        while start < length:
            end = min(start + size, length)
            if end < length:
                boundary = self._last_whitespace(text, start, end)
                if boundary > start:
                    end = boundary + 1

            piece = text[start:end].strip()
            if piece:
                chunks.append(piece)

            if end >= length:
                break

            next_start = end - overlap
            start = next_start if next_start > start else end

        return chunks

    @staticmethod
    def _last_whitespace(text: str, start: int, end: int) -> int:
        """Index of the last whitespace in text[start:end + 1], or -1."""
        for i in range(min(end, len(text) - 1), start, -1):
            if text[i].isspace():
                return i
        return -1


# ─────────────────────────────────────────────────────────────────────────────
# Material Chunking
# ─────────────────────────────────────────────────────────────────────────────


def chunk_material(
    course_id: str,
    material: Material,
    splitter: Optional[TextSplitter] = None,
) -> list[Chunk]:
    """
    Cut a material into chunks (without embeddings).

    Chunk indexes are dense from 0, and every chunk carries a copy of the
    material's metadata.
    """
    splitter = splitter or TextSplitter()
    pieces = splitter.split(material.text)

    return [
        Chunk(
            course_id=course_id,
            material_item_id=material.item_id,
            chunk_index=index,
            text=piece,
            content_type=material.content_type,
            metadata=material.metadata.model_copy(),
        )
        for index, piece in enumerate(pieces)
    ]
