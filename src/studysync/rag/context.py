"""
Context Module - Format retrieved material for a text generator.
================================================================

Turns retrieved chunks and web search results into context strings, each
block headed by its source, under a fixed character budget.
"""

from typing import Optional

from studysync.shared.config import get_settings
from studysync.shared.schemas import RetrievedMaterial, Source, WebSearchResult

NO_MATERIALS_CONTEXT = "No course materials were found for this topic."
WEB_SOURCES_SEPARATOR = "\n\n--- Additional web sources ---\n"

# Room left for the truncation marker when a block is cut
_TRUNCATION_MARGIN = 50


def _source_header(title: str, url: Optional[str]) -> str:
    return f"--- Source: {title}{f' ({url})' if url else ''} ---"


def prepare_context(
    materials: list[RetrievedMaterial],
    max_chars: Optional[int] = None,
) -> str:
    """
    Join retrieved chunks into one context string.

    Blocks are added in order until the budget is reached; the block that
    crosses it is cut short and marked with ``...``.

    Example:
        >>> print(prepare_context([material]))
        --- Source: Week 3 Notes (https://lms.example.edu/courses/42/pages/week-3) ---
        Binary search trees keep keys ordered...
        ---
    """
    if not materials:
        return NO_MATERIALS_CONTEXT

    if max_chars is None:
        max_chars = get_settings().retrieval.max_context_chars

    total = 0
    parts: list[str] = []
    for material in materials:
        header = _source_header(material.title, material.url)
        block = f"{header}\n{material.text}\n---\n"
        if total + len(block) > max_chars:
            remaining = max_chars - total - _TRUNCATION_MARGIN
            if remaining > 0:
                parts.append(f"{header}\n{material.text[:remaining]}...\n---\n")
            break
        parts.append(block)
        total += len(block)

    return "\n".join(parts).strip() or NO_MATERIALS_CONTEXT


def format_web_context(
    results: list[WebSearchResult],
    max_chars: Optional[int] = None,
) -> str:
    """Join web search results into a context string, capped at ``max_chars``."""
    if max_chars is None:
        max_chars = get_settings().retrieval.max_web_context_chars
    text = "\n\n".join(f"--- {r.title} ({r.url}) ---\n{r.snippet}" for r in results)
    return text[:max_chars]


def augment_with_web_content(base_context: str, web_context: str) -> str:
    """Append web context after course context, course material first."""
    if not base_context.strip():
        return web_context
    if not web_context.strip():
        return base_context
    return f"{base_context}{WEB_SOURCES_SEPARATOR}{web_context}"


def sources_from_materials(materials: list[RetrievedMaterial]) -> list[Source]:
    return [
        Source(title=m.title, url=m.url, relevance=m.score)
        for m in materials
    ]


def sources_from_web(results: list[WebSearchResult]) -> list[Source]:
    return [
        Source(title=r.title, url=r.url, relevance=r.relevance)
        for r in results
    ]
