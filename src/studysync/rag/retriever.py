"""
Retriever Module - Semantic retrieval of course material chunks.
================================================================

Embeds a topic as a query and returns the closest stored chunks of one
course:
- Topic trimmed and capped before embedding
- Result count clamped to a configured range
- Results sorted by similarity, highest first
"""

from typing import Optional

from studysync.indexing.chunk_store import ChromaChunkStore, get_chunk_store
from studysync.indexing.embeddings_base import EmbeddingProvider, get_embedding_provider
from studysync.shared.config import get_settings
from studysync.shared.logging import get_logger
from studysync.shared.schemas import RetrievedMaterial

logger = get_logger(__name__)


class Retriever:
    """
    Retrieves relevant chunks of a course from the chunk store.

    Example:
        >>> retriever = Retriever()
        >>> for material in retriever.retrieve("42", "binary search trees"):
        ...     print(f"{material.title}: {material.score:.3f}")
    """

    def __init__(
        self,
        chunk_store: Optional[ChromaChunkStore] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
    ):
        """
        Initialize the retriever.

        Args:
            chunk_store: Chunk store to search (shared store if None)
            embedding_provider: Provider for query embeddings (configured default if None)
        """
        settings = get_settings()
        self.config = settings.retrieval
        self._chunk_store = chunk_store
        self._embedding_provider = embedding_provider

    @property
    def chunk_store(self) -> ChromaChunkStore:
        if self._chunk_store is None:
            self._chunk_store = get_chunk_store()
        return self._chunk_store

    @property
    def embedding_provider(self) -> EmbeddingProvider:
        if self._embedding_provider is None:
            self._embedding_provider = get_embedding_provider()
        return self._embedding_provider

    def clamp_limit(self, limit: Optional[int]) -> int:
        """Clamp a requested result count to ``[1, max_limit]``."""
        if limit is None:
            limit = self.config.default_limit
        return min(max(limit, 1), self.config.max_limit)

    def clean_topic(self, topic: str) -> str:
        """Trim a topic and cap its length."""
        return (topic or "").strip()[: self.config.max_topic_chars]

    def retrieve(
        self,
        course_id: str,
        topic: str,
        limit: Optional[int] = None,
    ) -> list[RetrievedMaterial]:
        """
        Retrieve the chunks of a course closest to a topic.

        Args:
            course_id: Course to search
            topic: Free-text topic
            limit: Number of results (default 8, clamped to 1..20)

        Returns:
            RetrievedMaterial list sorted by score (highest first); empty
            for an empty topic

        Raises:
            EmbeddingError: If the topic could not be embedded
        """
        cleaned = self.clean_topic(topic)
        if not cleaned:
            return []

        limit = self.clamp_limit(limit)
        query_vector = self.embedding_provider.embed_query(cleaned)
        materials = self.chunk_store.query(course_id, query_vector, top_k=limit)
        materials.sort(key=lambda m: m.score, reverse=True)

        top = materials[0].score if materials else 0.0
        logger.debug(
            f"Retrieved {len(materials)} chunks for course {course_id} (top score {top:.3f})"
        )
        return materials


# ─────────────────────────────────────────────────────────────────────────────
# Convenience Functions
# ─────────────────────────────────────────────────────────────────────────────


def retrieve(course_id: str, topic: str, limit: Optional[int] = None) -> list[RetrievedMaterial]:
    """Retrieve with a default Retriever."""
    return Retriever().retrieve(course_id, topic, limit)
