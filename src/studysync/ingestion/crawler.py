"""
Crawler Module - Bounded breadth-first link crawling.
=====================================================

Follows hyperlinks found in LMS content to pick up external readings,
lecture notes and linked documents:
- FIFO traversal with a depth limit and a page budget
- Visited set over normalized URLs (never fetches a URL twice)
- Per-page fan-out cap
- HTML pages and PDF/PPTX documents handed to the DocumentExtractor
- Unreachable, slow or unsupported pages are skipped, never fatal
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

import requests

from studysync.ingestion.extractor import (
    DocumentExtractor,
    declared_charset,
    decode_html,
    extract_links,
    is_document_url,
    is_html,
    is_pdf,
    is_pptx,
    normalize_url,
    title_from_url,
)
from studysync.shared.config import get_settings
from studysync.shared.logging import get_logger

logger = get_logger(__name__)

# Hard ceilings regardless of caller input
MAX_PAGES_CEILING = 50
MAX_DEPTH_CEILING = 3

MAX_HTML_BYTES = 5 * 1024 * 1024
_CHUNK_BYTES = 64 * 1024


# ─────────────────────────────────────────────────────────────────────────────
# Data Classes
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class LinkedPage:
    """A page or document reached by the crawler."""

    url: str
    title: str
    text: str
    depth: int
    content_type: str = "text/html"
    file_bytes: Optional[bytes] = field(default=None, repr=False)
    file_name: Optional[str] = None
    lms_item_id: Optional[str] = None
    lms_content_type: Optional[str] = None
    html: Optional[str] = field(default=None, repr=False)

    @property
    def is_document(self) -> bool:
        """True for PDF/PPTX results that carry a binary."""
        return self.file_bytes is not None


@dataclass
class CrawlStats:
    """Statistics for one crawl."""

    fetched: int = 0
    extracted: int = 0
    skipped: int = 0
    failed: int = 0


# Maps an LMS-internal URL to a page fetched through the API, or None
LinkResolver = Callable[[str, int], Optional[LinkedPage]]


# ─────────────────────────────────────────────────────────────────────────────
# Link Crawler
# ─────────────────────────────────────────────────────────────────────────────


class LinkCrawler:
    """
    Breadth-first crawler over outbound links.

    Example:
        >>> crawler = LinkCrawler()
        >>> pages = crawler.crawl(["https://example.edu/reading"], max_pages=10)
        >>> for page in pages:
        ...     print(page.depth, page.url, len(page.text))
    """

    def __init__(
        self,
        extractor: Optional[DocumentExtractor] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[int] = None,
        max_links_per_page: Optional[int] = None,
        max_seed_urls: Optional[int] = None,
        rate_limit: Optional[float] = None,
        documents_only: Optional[bool] = None,
        user_agent: Optional[str] = None,
    ):
        """
        Initialize the crawler.

        Args:
            extractor: Document extractor (shared default if None)
            session: requests session to fetch with
            timeout: Per-request timeout in seconds
            max_links_per_page: Links enqueued from any single page
            max_seed_urls: Seeds used per crawl
            rate_limit: Minimum seconds between requests
            documents_only: Only follow document links from nested pages
            user_agent: User agent string
        """
        crawler_config = get_settings().crawler

        self.extractor = extractor or DocumentExtractor()
        self.timeout = timeout if timeout is not None else crawler_config.timeout
        self.max_links_per_page = (
            max_links_per_page if max_links_per_page is not None else crawler_config.max_links_per_page
        )
        self.max_seed_urls = max_seed_urls if max_seed_urls is not None else crawler_config.max_seed_urls
        self.rate_limit = rate_limit if rate_limit is not None else crawler_config.rate_limit
        self.documents_only = (
            documents_only if documents_only is not None else crawler_config.documents_only
        )
        self.user_agent = user_agent or crawler_config.user_agent

        self._session = session
        self._last_request_time: Optional[float] = None
        self.stats = CrawlStats()

    @property
    def session(self) -> requests.Session:
        """Get or create the requests session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update(
                {
                    "User-Agent": self.user_agent,
                    "Accept": "text/html,application/xhtml+xml,application/pdf,*/*;q=0.8",
                }
            )
        return self._session

    def _wait_for_rate_limit(self) -> None:
        """Wait if necessary to respect the politeness delay."""
        if self._last_request_time is not None and self.rate_limit > 0:
            elapsed = time.time() - self._last_request_time
            if elapsed < self.rate_limit:
                time.sleep(self.rate_limit - elapsed)

    def crawl(
        self,
        seed_urls: list[str],
        max_pages: Optional[int] = None,
        max_depth: Optional[int] = None,
        resolver: Optional[LinkResolver] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> list[LinkedPage]:
        """
        Crawl outward from seed URLs.

        Args:
            seed_urls: Starting URLs (depth 0)
            max_pages: Budget of successfully extracted pages
            max_depth: Deepest level whose links are still followed
            resolver: Optional hook that handles LMS-internal URLs
            headers: Extra headers for every fetch

        Returns:
            Extracted pages in visit order, at most ``max_pages``
        """
        crawler_config = get_settings().crawler
        max_pages = min(max_pages if max_pages is not None else crawler_config.max_pages, MAX_PAGES_CEILING)
        max_depth = min(max_depth if max_depth is not None else crawler_config.max_depth, MAX_DEPTH_CEILING)

        results: list[LinkedPage] = []
        if max_pages <= 0:
            return results

        visited: set[str] = set()
        queued: set[str] = set()
        queue: deque[tuple[str, int]] = deque()

        for url in seed_urls[: self.max_seed_urls]:
            normalized = normalize_url(url)
            if normalized and normalized not in queued:
                queued.add(normalized)
                queue.append((normalized, 0))

        while queue and len(results) < max_pages:
            url, depth = queue.popleft()
            if url in visited:
                continue
            visited.add(url)

            page, raw_html = self._visit(url, depth, resolver, headers)
            if page is None:
                self.stats.skipped += 1
                continue

            results.append(page)
            self.stats.extracted += 1

            if raw_html is None or depth >= max_depth:
                continue

            added = 0
            for link in extract_links(raw_html, url):
                if added >= self.max_links_per_page:
                    break
                if link in queued or link in visited:
                    continue
                if self.documents_only and not is_document_url(link):
                    continue
                queued.add(link)
                queue.append((link, depth + 1))
                added += 1

        logger.debug(
            f"Crawl finished: {len(results)} pages from {len(seed_urls)} seeds "
            f"({len(visited)} visited)"
        )
        return results

    def _visit(
        self,
        url: str,
        depth: int,
        resolver: Optional[LinkResolver],
        headers: Optional[dict[str, str]],
    ) -> tuple[Optional[LinkedPage], Optional[str]]:
        """Fetch and extract one URL. Returns (page, raw_html_for_links)."""
        if resolver is not None:
            try:
                resolved = resolver(url, depth)
            except Exception as e:
                logger.debug(f"Resolver failed for {url}: {e}")
                self.stats.failed += 1
                return None, None
            if resolved is not None:
                if not resolved.text.strip():
                    return None, None
                return resolved, resolved.html

        try:
            self._wait_for_rate_limit()
            self._last_request_time = time.time()
            response = self.session.get(
                url, timeout=self.timeout, headers=headers, stream=True, allow_redirects=True
            )
        except requests.RequestException as e:
            logger.debug(f"Fetch failed for {url}: {e}")
            self.stats.failed += 1
            return None, None

        self.stats.fetched += 1
        try:
            if not response.ok:
                logger.debug(f"Skipping {url}: HTTP {response.status_code}")
                return None, None

            content_type = response.headers.get("Content-Type", "")
            final_url = response.url or url

            if is_pdf(content_type, final_url) or is_pptx(content_type, final_url):
                return self._visit_document(response, url, depth, content_type), None

            if is_html(content_type):
                raw = self._read_capped(response, MAX_HTML_BYTES)
                if raw is None:
                    return None, None
                html = decode_html(raw, declared_charset(content_type))
                extracted = self.extractor.extract_html_page(html, final_url)
                if extracted is None:
                    return None, None
                page = LinkedPage(
                    url=url,
                    title=extracted.title,
                    text=extracted.text,
                    depth=depth,
                    content_type="text/html",
                )
                return page, html

            logger.debug(f"Skipping {url}: unsupported content type {content_type!r}")
            return None, None
        except requests.RequestException as e:
            logger.debug(f"Read failed for {url}: {e}")
            self.stats.failed += 1
            return None, None
        finally:
            response.close()

    def _visit_document(
        self,
        response: requests.Response,
        url: str,
        depth: int,
        content_type: str,
    ) -> Optional[LinkedPage]:
        """Download and extract a PDF/PPTX."""
        cap = (
            self.extractor.config.max_pdf_bytes
            if is_pdf(content_type, url)
            else self.extractor.config.max_pptx_bytes
        )
        data = self._read_capped(response, cap)
        if data is None:
            logger.debug(f"Skipping {url}: document larger than {cap} bytes")
            return None

        text = self.extractor.extract(data, content_type, url)
        if not text:
            return None

        file_name = title_from_url(url)
        return LinkedPage(
            url=url,
            title=file_name,
            text=text,
            depth=depth,
            content_type=content_type.split(";")[0].strip() or "application/octet-stream",
            file_bytes=data,
            file_name=file_name,
        )

    @staticmethod
    def _read_capped(response: requests.Response, cap: int) -> Optional[bytes]:
        """Read a streamed body, giving up once it exceeds ``cap`` bytes."""
        declared = response.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > cap:
            return None

        buffer = bytearray()
        for piece in response.iter_content(chunk_size=_CHUNK_BYTES):
            if not piece:
                continue
            buffer.extend(piece)
            if len(buffer) > cap:
                return None
        return bytes(buffer)

    def close(self) -> None:
        """Close the crawler session."""
        if self._session:
            self._session.close()
            self._session = None

    def __enter__(self) -> "LinkCrawler":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        self.close()
