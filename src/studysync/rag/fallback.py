"""
Fallback Module - Tiered context resolution for lesson generation.
==================================================================

Decides what context a lesson is generated from, based on how well the
course materials match the topic (``s`` is the top similarity score):

- ``none``: s >= 0.70, course materials as-is
- ``partial``: 0.40 <= s < 0.70, course materials with a disclaimer
- ``web_search``: weak or no materials, web search configured and
  returning results; weak local context kept ahead of the web context
- ``general``: nothing usable; a fixed instruction to teach from general
  academic knowledge without inventing course details

Every tier carries normalized sources and its disclaimer. Failures in
retrieval or web search are logged and fall through to the next tier;
resolving a context never raises.
"""

from typing import Optional

from studysync.rag.context import (
    augment_with_web_content,
    format_web_context,
    prepare_context,
    sources_from_materials,
    sources_from_web,
)
from studysync.rag.retriever import Retriever
from studysync.rag.web_search import SerpAPIWebSearch, get_web_search
from studysync.shared.config import get_settings
from studysync.shared.logging import get_logger
from studysync.shared.schemas import (
    FallbackTier,
    ResolvedContext,
    RetrievedMaterial,
    WebSearchResult,
)

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Tier Texts
# ─────────────────────────────────────────────────────────────────────────────

PARTIAL_DISCLAIMER = "Partial match found. Lesson may be augmented with general knowledge."

WEB_SEARCH_DISCLAIMER = (
    "Course materials not found. Some content from web sources. "
    "Verify with your course materials."
)

GENERAL_DISCLAIMER = "No course materials found. This lesson uses general academic knowledge."

GENERAL_RESPONSE_PREFIX = (
    "Note: No specific course materials were found. "
    "This lesson uses general academic knowledge."
)

GENERAL_KNOWLEDGE_CONTEXT = f"""No course materials were found for this topic.

Use your general academic knowledge to teach this topic. Be accurate and educationally sound. Use standard academic explanations and examples from common textbooks where relevant.

IMPORTANT: Do not make up course-specific details, assignment requirements, or professor policies.
Start your response with exactly: "{GENERAL_RESPONSE_PREFIX}\""""


# ─────────────────────────────────────────────────────────────────────────────
# Orchestrator
# ─────────────────────────────────────────────────────────────────────────────


class FallbackOrchestrator:
    """
    Picks the context tier for a topic.

    Example:
        >>> orchestrator = FallbackOrchestrator()
        >>> resolved = orchestrator.resolve_context("42", "binary search trees")
        >>> resolved.fallback_tier
        'none'
    """

    def __init__(
        self,
        retriever: Optional[Retriever] = None,
        web_search: Optional[SerpAPIWebSearch] = None,
        enable_web_search: bool = True,
        strong_threshold: Optional[float] = None,
        partial_threshold: Optional[float] = None,
        top_k: Optional[int] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            retriever: Retriever for course materials (default if None)
            web_search: Web search backend (configured one if None)
            enable_web_search: False skips the web search tier entirely
            strong_threshold: Score at or above which materials are used as-is
            partial_threshold: Score at or above which materials are used with a disclaimer
            top_k: Number of chunks to retrieve
        """
        cfg = get_settings().retrieval

        self.retriever = retriever or Retriever()
        self.web_search = web_search
        if self.web_search is None and enable_web_search:
            self.web_search = get_web_search()

        self.strong_threshold = cfg.strong_threshold if strong_threshold is None else strong_threshold
        self.partial_threshold = (
            cfg.partial_threshold if partial_threshold is None else partial_threshold
        )
        self.top_k = top_k or cfg.top_k

        if not 0.0 <= self.partial_threshold <= self.strong_threshold <= 1.0:
            raise ValueError(
                "Thresholds must satisfy 0 <= partial_threshold <= strong_threshold <= 1"
            )

    def resolve_context(
        self,
        course_id: str,
        topic: str,
        user_id: Optional[str] = None,
        context_hint: Optional[str] = None,
    ) -> ResolvedContext:
        """
        Resolve the context to generate a lesson from.

        Args:
            course_id: Course whose materials are searched
            topic: Lesson topic
            user_id: Requesting user, for logging
            context_hint: Extra text appended to the retrieval query

        Returns:
            ResolvedContext with content, sources, tier and disclaimer
        """
        query_topic = f"{topic}. {context_hint}" if context_hint else topic
        materials = self._retrieve(course_id, query_topic)
        top_score = materials[0].score if materials else 0.0

        logger.info(
            f"Resolving context: course={course_id}, user={user_id or '-'}, "
            f"chunks={len(materials)}, top_score={top_score:.3f}"
        )

        if materials and top_score >= self.strong_threshold:
            return ResolvedContext(
                content=prepare_context(materials),
                sources=sources_from_materials(materials),
                fallback_tier=FallbackTier.NONE,
                retrieval_score=top_score,
            )

        if materials and top_score >= self.partial_threshold:
            return ResolvedContext(
                content=prepare_context(materials),
                sources=sources_from_materials(materials),
                fallback_tier=FallbackTier.PARTIAL,
                disclaimer=PARTIAL_DISCLAIMER,
                retrieval_score=top_score,
            )

        web_results = self._search_web(topic)
        if web_results:
            web_context = format_web_context(web_results)
            content = (
                augment_with_web_content(prepare_context(materials), web_context)
                if materials
                else web_context
            )
            return ResolvedContext(
                content=content,
                sources=sources_from_web(web_results),
                fallback_tier=FallbackTier.WEB_SEARCH,
                disclaimer=WEB_SEARCH_DISCLAIMER,
                retrieval_score=top_score,
            )

        return ResolvedContext(
            content=GENERAL_KNOWLEDGE_CONTEXT,
            sources=[],
            fallback_tier=FallbackTier.GENERAL,
            disclaimer=GENERAL_DISCLAIMER,
            retrieval_score=top_score,
            response_prefix=GENERAL_RESPONSE_PREFIX,
        )

    def _retrieve(self, course_id: str, topic: str) -> list[RetrievedMaterial]:
        try:
            return self.retriever.retrieve(course_id, topic, limit=self.top_k)
        except Exception as e:
            logger.warning(f"Retrieval failed for course {course_id}, falling back: {e}")
            return []

    def _search_web(self, topic: str) -> list[WebSearchResult]:
        if self.web_search is None:
            return []
        try:
            return self.web_search.search(topic) or []
        except Exception as e:
            logger.warning(f"Web search failed, falling back to general knowledge: {e}")
            return []


# ─────────────────────────────────────────────────────────────────────────────
# Convenience Functions
# ─────────────────────────────────────────────────────────────────────────────


def resolve_context(
    course_id: str,
    topic: str,
    user_id: Optional[str] = None,
    context_hint: Optional[str] = None,
) -> ResolvedContext:
    """Resolve a lesson context with a default orchestrator."""
    return FallbackOrchestrator().resolve_context(course_id, topic, user_id, context_hint)
