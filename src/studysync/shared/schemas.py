"""
Schemas Module - Pydantic data models for the application.
==========================================================

Defines the data contracts shared across the pipeline:
- Materials discovered during a walk and the chunks cut from them
- Content hash records for incremental sync
- Retrieval results and the fallback orchestrator's output
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class ContentType(str, Enum):
    """Kind of source content a material was extracted from."""

    PAGE = "page"
    ASSIGNMENT = "assignment"
    FILE = "file"
    CRAWLED_PAGE = "crawled-page"


class MaterialSource(str, Enum):
    """Provenance of a material."""

    NATIVE = "native"
    LINKED = "linked"


class FallbackTier(str, Enum):
    """Confidence tier picked by the fallback orchestrator."""

    NONE = "none"
    PARTIAL = "partial"
    WEB_SEARCH = "web_search"
    GENERAL = "general"


# ─────────────────────────────────────────────────────────────────────────────
# Material Models
# ─────────────────────────────────────────────────────────────────────────────


class MaterialMetadata(BaseModel):
    """Descriptive metadata carried by a material and copied onto its chunks."""

    title: str = Field(default="", description="Human readable title")
    url: Optional[str] = Field(default=None, description="Origin URL")
    module_name: Optional[str] = Field(default=None, description="LMS module name")
    source: MaterialSource = Field(default=MaterialSource.NATIVE, description="native or linked")
    source_canvas_item_id: Optional[str] = Field(
        default=None, description="Item id of the material that linked to this one"
    )
    created_at: Optional[str] = Field(default=None, description="LMS creation timestamp")
    updated_at: Optional[str] = Field(default=None, description="LMS update timestamp")
    author: Optional[str] = Field(default=None, description="Author display name")
    storage_path: Optional[str] = Field(default=None, description="Blob path of the original file")

    model_config = {"use_enum_values": True}


class Material(BaseModel):
    """
    One unit of source content discovered during a walk.

    ``item_id`` is unique within a course. Materials whose text is empty
    are discarded before they reach the store.
    """

    item_id: str = Field(..., description="Stable identifier unique within a course")
    content_type: ContentType = Field(..., description="page, assignment, file or crawled-page")
    text: str = Field(..., description="Extracted plain text")
    metadata: MaterialMetadata = Field(default_factory=MaterialMetadata)

    model_config = {"use_enum_values": True}

    @property
    def is_empty(self) -> bool:
        """True when there is no text worth storing."""
        return not self.text or not self.text.strip()


# ─────────────────────────────────────────────────────────────────────────────
# Chunk Models
# ─────────────────────────────────────────────────────────────────────────────


class Chunk(BaseModel):
    """
    A bounded slice of a material's text with its embedding.

    Chunk ids for a material form the dense sequence
    ``{material_item_id}-chunk-0 .. -chunk-{k-1}``.
    """

    course_id: str = Field(..., description="Owning course")
    material_item_id: str = Field(..., description="Parent material item id")
    chunk_index: int = Field(..., ge=0, description="Position within the material")
    text: str = Field(..., description="Chunk text")
    content_type: ContentType = Field(..., description="Parent content type")
    metadata: MaterialMetadata = Field(default_factory=MaterialMetadata)
    embedding: list[float] = Field(default_factory=list, description="Embedding vector")

    model_config = {"use_enum_values": True}

    @computed_field
    @property
    def chunk_id(self) -> str:
        """Stable chunk identifier."""
        return make_chunk_id(self.material_item_id, self.chunk_index)

    def to_metadata_dict(self) -> dict[str, Any]:
        """Convert to a flat metadata dict for the vector store."""
        meta: dict[str, Any] = {
            "course_id": self.course_id,
            "material_item_id": self.material_item_id,
            "chunk_index": self.chunk_index,
            "content_type": self.content_type,
        }
        # ChromaDB metadata values must be scalars and not None
        for key, value in self.metadata.model_dump().items():
            if value is not None:
                meta[key] = value
        return meta


def make_chunk_id(material_item_id: str, chunk_index: int) -> str:
    """
    Build a chunk id.

    Example:
        >>> make_chunk_id("page-42-7", 3)
        'page-42-7-chunk-3'
    """
    return f"{material_item_id}-chunk-{chunk_index}"


class ContentHashRecord(BaseModel):
    """Hash of the text last embedded completely for a material."""

    course_id: str
    material_item_id: str
    hash: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StoreResult(BaseModel):
    """Outcome of storing a batch of materials for one course."""

    materials_stored: int = 0
    chunks_created: int = 0
    materials_skipped: int = 0
    materials_failed: int = 0

    def merge(self, other: "StoreResult") -> "StoreResult":
        """Return the sum of two results."""
        return StoreResult(
            materials_stored=self.materials_stored + other.materials_stored,
            chunks_created=self.chunks_created + other.chunks_created,
            materials_skipped=self.materials_skipped + other.materials_skipped,
            materials_failed=self.materials_failed + other.materials_failed,
        )


# ─────────────────────────────────────────────────────────────────────────────
# Retrieval Models
# ─────────────────────────────────────────────────────────────────────────────


class RetrievedMaterial(BaseModel):
    """
    A stored chunk returned by the retrieval service.

    Score is a similarity in [0, 1], higher is closer.
    """

    chunk_id: str = Field(..., description="Chunk identifier")
    text: str = Field(..., description="Chunk text content")
    score: float = Field(..., ge=0.0, le=1.0, description="Similarity score (0-1)")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Chunk metadata")

    @property
    def title(self) -> str:
        """Get the material title from metadata."""
        return self.metadata.get("title") or "Course material"

    @property
    def url(self) -> Optional[str]:
        """Get the origin URL from metadata."""
        return self.metadata.get("url") or None

    @property
    def material_item_id(self) -> str:
        """Get the parent material id from metadata."""
        return self.metadata.get("material_item_id", "")


class WebSearchResult(BaseModel):
    """A single result from the secondary web search."""

    title: str
    url: str
    snippet: str = ""
    relevance: float = Field(default=0.8, ge=0.0, le=1.0)


class Source(BaseModel):
    """Normalized provenance entry rendered by the consumer."""

    title: str
    url: Optional[str] = None
    relevance: float = Field(default=0.0, ge=0.0, le=1.0)


class ResolvedContext(BaseModel):
    """Context chosen for lesson generation, with its tier and disclosure."""

    content: str = Field(..., description="Context text handed to the generator")
    sources: list[Source] = Field(default_factory=list)
    fallback_tier: FallbackTier = Field(..., description="Which tier fired")
    disclaimer: Optional[str] = Field(default=None, description="Notice shown to the consumer")
    retrieval_score: Optional[float] = Field(default=None, description="Top similarity score")
    response_prefix: Optional[str] = Field(
        default=None, description="Text the generated response must open with"
    )

    model_config = {"use_enum_values": True}

    @computed_field
    @property
    def source_count(self) -> int:
        """Number of sources behind the context."""
        return len(self.sources)
