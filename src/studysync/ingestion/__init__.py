"""
Ingestion Module - Walk the LMS and extract course materials.
=============================================================

This module handles everything between the LMS and plain text:

- lms_client: Canvas REST client with pagination and retries
- extractor: Text from HTML, PDF and PPTX documents
- crawler: Bounded breadth-first crawl of linked pages
- walker: Course walk yielding one Material per content item
- blob_storage: Storage for original uploaded files
- chunker: Sentence-aware text splitting

Pipeline flow:
    LMS → Walker → (Extractor, Crawler) → Materials → Chunker → Chunks
"""

from studysync.ingestion.lms_client import (
    CanvasClient,
    LMSAssignment,
    LMSCourse,
    LMSCredentials,
    LMSFile,
    LMSModule,
    LMSModuleItem,
    LMSPage,
)
from studysync.ingestion.extractor import (
    DocumentExtractor,
    ExtractorConfig,
    extract_links,
    extract_text,
    get_extractor,
    normalize_url,
)
from studysync.ingestion.crawler import CrawlStats, LinkCrawler, LinkedPage
from studysync.ingestion.walker import ContentWalker
from studysync.ingestion.blob_storage import BlobStorage, LocalBlobStorage
from studysync.ingestion.chunker import ChunkerConfig, TextSplitter, chunk_material

__all__ = [
    # LMS
    "CanvasClient",
    "LMSAssignment",
    "LMSCourse",
    "LMSCredentials",
    "LMSFile",
    "LMSModule",
    "LMSModuleItem",
    "LMSPage",
    # Extractor
    "DocumentExtractor",
    "ExtractorConfig",
    "extract_links",
    "extract_text",
    "get_extractor",
    "normalize_url",
    # Crawler
    "CrawlStats",
    "LinkCrawler",
    "LinkedPage",
    # Walker
    "ContentWalker",
    # Blob storage
    "BlobStorage",
    "LocalBlobStorage",
    # Chunker
    "ChunkerConfig",
    "TextSplitter",
    "chunk_material",
]
