"""
Material Store Module - Incremental chunk, embed and store.
===========================================================

Turns walked materials into stored, embedded chunks, doing as little work
as possible on a re-sync:

- Unchanged text (same content hash as last time): skipped
- Changed text: every old chunk of the material deleted, then re-inserted
- New or previously interrupted material: chunks already stored with the
  same text are kept, the rest embedded and inserted, stale ids removed
- Chunks embedded in sub-batches and inserted as soon as each is embedded
- The content hash recorded only once every chunk is stored, so an
  interrupted material is picked up again next time
"""

from typing import Callable, Optional

from studysync.indexing.chunk_store import ChromaChunkStore, get_chunk_store
from studysync.indexing.embeddings_base import (
    EmbeddingProvider,
    embedding_error_summary,
    get_embedding_provider,
)
from studysync.indexing.hash_ledger import ContentHashLedger
from studysync.ingestion.chunker import TextSplitter, chunk_material
from studysync.shared.errors import EmbeddingAuthenticationError, EmbeddingError
from studysync.shared.logging import get_logger
from studysync.shared.schemas import Chunk, Material, StoreResult
from studysync.shared.utils import compute_hash

logger = get_logger(__name__)

# (materials processed in this course so far, chunks created so far)
StoreProgressCallback = Callable[[int, int], None]

STORED = "stored"
SKIPPED = "skipped"
FAILED = "failed"


class MaterialStore:
    """
    Incremental store for course materials.

    Example:
        >>> store = MaterialStore()
        >>> result = store.store("42", materials)
        >>> result.chunks_created
        37
        >>> store.store("42", materials).chunks_created  # nothing changed
        0
    """

    def __init__(
        self,
        embedding_provider: Optional[EmbeddingProvider] = None,
        chunk_store: Optional[ChromaChunkStore] = None,
        hash_ledger: Optional[ContentHashLedger] = None,
        splitter: Optional[TextSplitter] = None,
    ):
        self._embedding_provider = embedding_provider
        self.chunk_store = chunk_store or get_chunk_store()
        self.hash_ledger = hash_ledger or ContentHashLedger()
        self.splitter = splitter or TextSplitter()

    @property
    def embedding_provider(self) -> EmbeddingProvider:
        """Embedding provider, created from settings on first use."""
        if self._embedding_provider is None:
            self._embedding_provider = get_embedding_provider()
        return self._embedding_provider

    def store(
        self,
        course_id: str,
        materials: list[Material],
        on_progress: Optional[StoreProgressCallback] = None,
    ) -> StoreResult:
        """
        Store a batch of materials for one course.

        Args:
            course_id: Owning course
            materials: Materials to store
            on_progress: Called after each material with the running
                material and chunk counts for this call

        Returns:
            StoreResult with stored, skipped and failed counts

        Raises:
            EmbeddingAuthenticationError: Credentials rejected; no point going on
        """
        result = StoreResult()

        for processed, material in enumerate(materials, start=1):
            outcome, created = self._store_material(course_id, material)

            result.chunks_created += created
            if outcome == STORED:
                result.materials_stored += 1
            elif outcome == SKIPPED:
                result.materials_skipped += 1
            else:
                result.materials_failed += 1

            if on_progress:
                on_progress(processed, result.chunks_created)

        logger.info(
            f"Course {course_id}: stored {result.materials_stored} materials "
            f"({result.chunks_created} chunks), skipped {result.materials_skipped}, "
            f"failed {result.materials_failed}"
        )
        return result

    def _store_material(self, course_id: str, material: Material) -> tuple[str, int]:
        """Store one material. Returns (outcome, chunks created)."""
        if material.is_empty:
            return SKIPPED, 0

        content_hash = compute_hash(material.text)
        prior = self.hash_ledger.get(course_id, material.item_id)
        if prior is not None and prior.hash == content_hash:
            logger.debug(f"Unchanged, skipping: {material.item_id}")
            return SKIPPED, 0

        chunks = chunk_material(course_id, material, self.splitter)
        if not chunks:
            return SKIPPED, 0

        if prior is not None:
            removed = self.chunk_store.delete_material_chunks(course_id, material.item_id)
            logger.debug(f"Content changed, replaced {removed} chunks: {material.item_id}")
            pending = chunks
        else:
            pending = self._reconcile_existing(course_id, material.item_id, chunks)

        created, error = self._embed_and_insert(pending)
        if error is not None:
            logger.warning(
                f"Embedding failed for {material.item_id} after {created} new chunks, "
                f"will retry next sync: {embedding_error_summary(error)}"
            )
            return FAILED, created

        self.hash_ledger.set(course_id, material.item_id, content_hash)
        return STORED, created

    def _reconcile_existing(
        self, course_id: str, material_item_id: str, chunks: list[Chunk]
    ) -> list[Chunk]:
        """
        Keep rows left by an interrupted run and return the chunks still to store.

        Rows with the same id and text are kept. Rows with a different text,
        or past the new chunk count, are deleted.
        """
        existing = self.chunk_store.get_material_chunks(course_id, material_item_id)
        if not existing:
            return chunks

        wanted = {chunk.chunk_id: chunk for chunk in chunks}
        stale = [
            chunk_id
            for chunk_id, text in existing.items()
            if chunk_id not in wanted or wanted[chunk_id].text != text
        ]
        self.chunk_store.delete_chunks(stale)

        kept = set(existing) - set(stale)
        if kept:
            logger.debug(f"Reusing {len(kept)} stored chunks for {material_item_id}")
        return [chunk for chunk in chunks if chunk.chunk_id not in kept]

    def _embed_and_insert(self, chunks: list[Chunk]) -> tuple[int, Optional[EmbeddingError]]:
        """
        Embed and insert chunks one sub-batch at a time.

        Stops at the first failed sub-batch; what was inserted before it
        stays stored.

        Returns:
            (rows inserted, the error that stopped it or None)

        Raises:
            EmbeddingAuthenticationError: Credentials rejected
        """
        created = 0
        batch_size = max(1, self.embedding_provider.config.batch_size)

        for i in range(0, len(chunks), batch_size):
            batch = chunks[i : i + batch_size]
            try:
                vectors = self.embedding_provider.embed_batch([chunk.text for chunk in batch])
            except EmbeddingAuthenticationError:
                raise
            except EmbeddingError as e:
                return created, e

            for chunk, vector in zip(batch, vectors):
                chunk.embedding = vector
            created += self.chunk_store.add_chunks(batch).inserted

        return created, None

    def clear_course(self, course_id: str) -> int:
        """Remove every chunk and content hash of a course."""
        removed = self.chunk_store.delete_course(course_id)
        self.hash_ledger.clear_course(course_id)
        return removed
