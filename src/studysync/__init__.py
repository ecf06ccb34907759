"""
StudySync - LMS Ingestion and Retrieval for Course-Grounded Lessons
===================================================================

Pulls a student's courses out of a Canvas LMS, extracts text from pages,
assignments, files and linked web resources, embeds it into a per-course
vector index, and resolves the context a lesson is generated from:

- ingestion: LMS client, content walker, document extractor, link crawler
- indexing: embedding providers, hash ledger, chunk store, material store
- sync: resumable per-tenant sync with persisted progress
- rag: retrieval, web search and tiered fallback context resolution

Re-syncing only re-embeds materials whose content changed.
"""

__version__ = "0.1.0"
__author__ = "StudySync Team"
__license__ = "MIT"

# Public API - lazy imports to avoid circular dependencies and speed up startup
__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Main modules (imported on demand)
    "shared",
    "ingestion",
    "indexing",
    "sync",
    "rag",
    "cli",
]
