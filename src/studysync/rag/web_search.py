"""
Web Search Module - Optional secondary source for the fallback tiers.
=====================================================================

Looks a topic up on a web search API (SerpAPI) when course materials are
missing or weak. Entirely optional: without SEARCH_API_KEY there is no
web search and the fallback goes straight to general knowledge.
"""

from typing import Optional

import requests

from studysync.shared.config import Settings, get_settings
from studysync.shared.logging import get_logger
from studysync.shared.schemas import WebSearchResult

logger = get_logger(__name__)

MAX_QUERY_CHARS = 200


def build_search_query(topic: str) -> str:
    """
    Query string sent to the search API.

    Example:
        >>> build_search_query("binary search trees")
        'binary search trees explained university lecture'
    """
    return f"{topic.strip()} explained university lecture"[:MAX_QUERY_CHARS]


class SerpAPIWebSearch:
    """
    Web search through SerpAPI's JSON endpoint.

    Returns None (not an empty list) when the request fails, so callers
    can tell "no results" from "search unavailable".
    """

    def __init__(
        self,
        api_key: str,
        endpoint: str = "https://serpapi.com/search.json",
        timeout: int = 10,
        max_results: int = 5,
        relevance: float = 0.8,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self.max_results = max_results
        self.relevance = relevance
        self.session = session or requests.Session()

    def search(self, topic: str) -> Optional[list[WebSearchResult]]:
        """
        Search the web for educational content on a topic.

        Returns:
            Up to ``max_results`` results, or None if the search failed
        """
        query = build_search_query(topic)
        try:
            response = self.session.get(
                self.endpoint,
                params={"q": query, "api_key": self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Web search failed: {e}")
            return None

        if not response.ok:
            logger.warning(f"Web search returned HTTP {response.status_code}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Web search returned a non-JSON body")
            return None

        organic = (data.get("organic_results") or []) if isinstance(data, dict) else []
        results = [
            WebSearchResult(
                title=item.get("title") or "Source",
                url=item.get("link") or "#",
                snippet=item.get("snippet") or "",
                relevance=self.relevance,
            )
            for item in organic[: self.max_results]
            if isinstance(item, dict)
        ]
        logger.debug(f"Web search for '{query}' returned {len(results)} results")
        return results


def get_web_search(settings: Optional[Settings] = None) -> Optional[SerpAPIWebSearch]:
    """Web search configured from settings, or None when no key is set."""
    settings = settings or get_settings()
    if not settings.search_api_key:
        return None

    cfg = settings.web_search
    return SerpAPIWebSearch(
        api_key=settings.search_api_key,
        endpoint=cfg.endpoint,
        timeout=cfg.timeout,
        max_results=cfg.max_results,
        relevance=cfg.relevance,
    )
