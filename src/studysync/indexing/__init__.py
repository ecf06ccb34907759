"""
Indexing Module - Embeddings and incremental material storage.
==============================================================

This module turns extracted materials into searchable chunks:

- embeddings_base: Provider interface, retry, fallback and factory
- embeddings_sbert: SBERT (sentence-transformers) local embeddings
- embeddings_gemini: Gemini API embeddings
- embeddings_openai: OpenAI-compatible HTTP embeddings
- hash_ledger: Content hashes of stored materials
- chunk_store: ChromaDB wrapper for chunk rows
- material_store: Change-aware chunk, embed and insert

Provider abstraction allows switching embedding backends without
changing storage or retrieval logic.
"""

from studysync.indexing.embeddings_base import (
    EmbeddingConfig,
    EmbeddingPurpose,
    EmbeddingProvider,
    FallbackEmbeddingProvider,
    build_provider,
    clear_provider_cache,
    create_provider,
    get_embedding_provider,
    validate_vectors,
)
from studysync.indexing.embeddings_sbert import SBERTEmbeddingProvider
from studysync.indexing.embeddings_gemini import GeminiEmbeddingProvider
from studysync.indexing.embeddings_openai import (
    OpenAIEmbeddingProvider,
    decode_embedding_response,
)
from studysync.indexing.hash_ledger import ContentHashLedger
from studysync.indexing.chunk_store import AddResult, ChromaChunkStore, get_chunk_store
from studysync.indexing.material_store import MaterialStore

__all__ = [
    # Base
    "EmbeddingConfig",
    "EmbeddingPurpose",
    "EmbeddingProvider",
    "FallbackEmbeddingProvider",
    "build_provider",
    "clear_provider_cache",
    "create_provider",
    "get_embedding_provider",
    "validate_vectors",
    # Providers
    "SBERTEmbeddingProvider",
    "GeminiEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "decode_embedding_response",
    # Storage
    "ContentHashLedger",
    "AddResult",
    "ChromaChunkStore",
    "get_chunk_store",
    "MaterialStore",
]
