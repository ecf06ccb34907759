"""
Chunk Store Module - ChromaDB storage for embedded chunks.
==========================================================

Provides a high-level interface to ChromaDB for:
- Persistent vector storage, one collection for all courses
- Chunk rows keyed by ``{material_item_id}-chunk-{i}``
- Per-course similarity search (cosine space, score = 1 - distance)
- Per-material and per-course deletion

Embeddings are computed by the caller; the store never embeds.
"""

from pathlib import Path
from typing import Any, NamedTuple, Optional

import chromadb
from chromadb.config import Settings as ChromaSettings

from studysync.shared.config import get_settings
from studysync.shared.logging import get_logger
from studysync.shared.schemas import Chunk, RetrievedMaterial

logger = get_logger(__name__)

# ChromaDB rejects very large single writes
WRITE_BATCH_SIZE = 500


class AddResult(NamedTuple):
    """Outcome of an insert: new rows and rows that already existed."""

    inserted: int
    duplicates: int


def _material_where(course_id: str, material_item_id: str) -> dict[str, Any]:
    return {"$and": [{"course_id": course_id}, {"material_item_id": material_item_id}]}


class ChromaChunkStore:
    """
    ChromaDB wrapper for chunk storage and retrieval.

    Example:
        >>> store = ChromaChunkStore()
        >>> store.add_chunks(chunks)
        AddResult(inserted=12, duplicates=0)
        >>> hits = store.query("42", query_vector, top_k=5)
    """

    def __init__(
        self,
        collection_name: Optional[str] = None,
        persist_directory: Optional[Path] = None,
    ):
        """
        Initialize the chunk store.

        Args:
            collection_name: Name of the ChromaDB collection
            persist_directory: Directory for persistent storage
        """
        settings = get_settings()

        self.collection_name = collection_name or settings.paths.collection_name
        self.persist_directory = Path(persist_directory or settings.resolved_paths.index_dir)
        self.persist_directory.mkdir(parents=True, exist_ok=True)

        self._client = chromadb.PersistentClient(
            path=str(self.persist_directory),
            settings=ChromaSettings(
                anonymized_telemetry=False,
                allow_reset=True,
            ),
        )

        # Embeddings are supplied by us, so no embedding function is attached
        self._collection = self._client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
        )

        logger.info(
            f"Chunk store initialized: collection={self.collection_name}, "
            f"persist_dir={self.persist_directory}, "
            f"existing_count={self._collection.count()}"
        )

    def count(self, course_id: Optional[str] = None) -> int:
        """Number of stored chunks, optionally for one course."""
        if course_id is None:
            return self._collection.count()
        results = self._collection.get(where={"course_id": course_id}, include=["metadatas"])
        return len(results["ids"])

    def existing_ids(self, chunk_ids: list[str]) -> set[str]:
        """The subset of ids already stored."""
        if not chunk_ids:
            return set()
        results = self._collection.get(ids=chunk_ids, include=["metadatas"])
        return set(results["ids"])

    def add_chunks(self, chunks: list[Chunk]) -> AddResult:
        """
        Insert embedded chunks.

        Rows whose id already exists are left untouched and counted as
        duplicates; inserting the same chunk twice is not an error.

        Raises:
            ValueError: If a chunk has no embedding
        """
        if not chunks:
            return AddResult(0, 0)

        missing = [chunk.chunk_id for chunk in chunks if not chunk.embedding]
        if missing:
            raise ValueError(f"Chunks without embeddings: {', '.join(missing[:5])}")

        already = self.existing_ids([chunk.chunk_id for chunk in chunks])
        fresh: dict[str, Chunk] = {}
        for chunk in chunks:
            if chunk.chunk_id not in already:
                fresh.setdefault(chunk.chunk_id, chunk)
        new_chunks = list(fresh.values())

        for i in range(0, len(new_chunks), WRITE_BATCH_SIZE):
            batch = new_chunks[i : i + WRITE_BATCH_SIZE]
            self._collection.add(
                ids=[chunk.chunk_id for chunk in batch],
                embeddings=[chunk.embedding for chunk in batch],
                documents=[chunk.text for chunk in batch],
                metadatas=[chunk.to_metadata_dict() for chunk in batch],
            )

        duplicates = len(chunks) - len(new_chunks)
        if duplicates:
            logger.debug(f"Skipped {duplicates} chunks that were already stored")
        return AddResult(len(new_chunks), duplicates)

    def get_material_chunks(self, course_id: str, material_item_id: str) -> dict[str, str]:
        """Map of chunk id to text for every stored chunk of a material."""
        results = self._collection.get(
            where=_material_where(course_id, material_item_id),
            include=["documents"],
        )
        documents = results.get("documents") or [""] * len(results["ids"])
        return dict(zip(results["ids"], documents))

    def delete_chunks(self, chunk_ids: list[str]) -> int:
        """Delete chunks by id. Returns how many ids were requested."""
        if not chunk_ids:
            return 0
        self._collection.delete(ids=chunk_ids)
        logger.debug(f"Deleted {len(chunk_ids)} chunks")
        return len(chunk_ids)

    def delete_material_chunks(self, course_id: str, material_item_id: str) -> int:
        """Delete every chunk of a material. Returns how many were removed."""
        ids = list(self.get_material_chunks(course_id, material_item_id))
        return self.delete_chunks(ids)

    def delete_course(self, course_id: str) -> int:
        """Delete every chunk of a course. Returns how many were removed."""
        ids = self._collection.get(where={"course_id": course_id}, include=["metadatas"])["ids"]
        if ids:
            self._collection.delete(ids=ids)
        logger.info(f"Deleted {len(ids)} chunks for course {course_id}")
        return len(ids)

    def query(
        self,
        course_id: str,
        embedding: list[float],
        top_k: int = 10,
    ) -> list[RetrievedMaterial]:
        """
        Nearest chunks of one course to a query vector.

        Returns:
            RetrievedMaterial list sorted by score (highest first)
        """
        available = self.count(course_id)
        if available == 0 or top_k <= 0:
            return []

        results = self._collection.query(
            query_embeddings=[embedding],
            n_results=min(top_k, available),
            where={"course_id": course_id},
            include=["documents", "metadatas", "distances"],
        )
        return self._results_to_materials(results)

    def _results_to_materials(self, results: dict) -> list[RetrievedMaterial]:
        """Convert ChromaDB query results to RetrievedMaterial objects."""
        if not results or not results.get("ids") or not results["ids"][0]:
            return []

        ids = results["ids"][0]
        documents = (results.get("documents") or [[]])[0]
        metadatas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        materials = []
        for i, chunk_id in enumerate(ids):
            # Cosine distance: similarity = 1 - distance
            distance = distances[i] if distances else 1.0
            score = min(1.0, max(0.0, 1.0 - distance))
            materials.append(
                RetrievedMaterial(
                    chunk_id=chunk_id,
                    text=documents[i] if documents else "",
                    score=score,
                    metadata=dict(metadatas[i] or {}) if metadatas else {},
                )
            )

        materials.sort(key=lambda m: m.score, reverse=True)
        return materials

    def get_stats(self) -> dict[str, Any]:
        """Get statistics about the store."""
        return {
            "collection_name": self.collection_name,
            "total_chunks": self.count(),
            "persist_directory": str(self.persist_directory),
        }


# ─────────────────────────────────────────────────────────────────────────────
# Singleton Access
# ─────────────────────────────────────────────────────────────────────────────


_chunk_store: Optional[ChromaChunkStore] = None


def get_chunk_store() -> ChromaChunkStore:
    """Get the shared chunk store for the configured index directory."""
    global _chunk_store
    if _chunk_store is None:
        _chunk_store = ChromaChunkStore()
    return _chunk_store
