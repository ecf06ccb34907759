"""
RAG Module - Retrieval and lesson context resolution.
=====================================================

This module decides what a lesson is generated from:

- retriever: Query embedding and chunk retrieval for one course
- web_search: SerpAPI web search for topics the course lacks
- context: Context assembly with a character budget
- fallback: Tiered choice between course, web and general context

Flow:
    Topic → Retriever → Scored Chunks → Tier Decision → ResolvedContext
"""

from studysync.rag.retriever import Retriever, retrieve
from studysync.rag.web_search import SerpAPIWebSearch, build_search_query, get_web_search
from studysync.rag.context import (
    augment_with_web_content,
    format_web_context,
    prepare_context,
)
from studysync.rag.fallback import FallbackOrchestrator, resolve_context

__all__ = [
    # Retriever
    "Retriever",
    "retrieve",
    # Web search
    "SerpAPIWebSearch",
    "build_search_query",
    "get_web_search",
    # Context
    "augment_with_web_content",
    "format_web_context",
    "prepare_context",
    # Fallback
    "FallbackOrchestrator",
    "resolve_context",
]
