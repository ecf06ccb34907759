"""
Shared Module - Common utilities, configuration, schemas, and logging.
======================================================================

This module provides foundational components used across all other modules:

- config: Configuration loading and management
- logging: Logging setup
- errors: Exception hierarchy
- schemas: Pydantic data models
- utils: Utility functions (hashing, file I/O, etc.)
"""

from studysync.shared.config import get_settings, reload_settings, Settings
from studysync.shared.logging import get_logger, setup_logging
from studysync.shared.errors import (
    StudySyncError,
    LMSError,
    LMSAPIError,
    LMSAuthenticationError,
    EmbeddingError,
    EmbeddingRateLimitError,
    EmbeddingTransientError,
    EmbeddingAuthenticationError,
    EmbeddingShapeError,
    SyncError,
    InvalidTransitionError,
    SyncAlreadyRunningError,
    WalkAbortedError,
)
from studysync.shared.schemas import (
    ContentType,
    MaterialSource,
    FallbackTier,
    Material,
    MaterialMetadata,
    Chunk,
    ContentHashRecord,
    StoreResult,
    RetrievedMaterial,
    WebSearchResult,
    Source,
    ResolvedContext,
)
from studysync.shared.utils import (
    compute_hash,
    ensure_directory,
    load_json,
    save_json,
)

__all__ = [
    # Config
    "get_settings",
    "reload_settings",
    "Settings",
    # Logging
    "get_logger",
    "setup_logging",
    # Errors
    "StudySyncError",
    "LMSError",
    "LMSAPIError",
    "LMSAuthenticationError",
    "EmbeddingError",
    "EmbeddingRateLimitError",
    "EmbeddingTransientError",
    "EmbeddingAuthenticationError",
    "EmbeddingShapeError",
    "SyncError",
    "InvalidTransitionError",
    "SyncAlreadyRunningError",
    "WalkAbortedError",
    # Schemas
    "ContentType",
    "MaterialSource",
    "FallbackTier",
    "Material",
    "MaterialMetadata",
    "Chunk",
    "ContentHashRecord",
    "StoreResult",
    "RetrievedMaterial",
    "WebSearchResult",
    "Source",
    "ResolvedContext",
    # Utils
    "compute_hash",
    "ensure_directory",
    "load_json",
    "save_json",
]
