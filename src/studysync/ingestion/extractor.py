"""
Extractor Module - Turn HTML, PDF and PPTX into plain text.
===========================================================

Converts fetched documents into normalized plain text:
- HTML: BeautifulSoup (lxml) with script/style/nav/footer removed
- PDF: pypdf text layer, page by page, with input and output caps
- PPTX: slide XML parts read straight from the zip archive

Extraction never raises to the caller. A document that cannot be parsed
yields None, which the walker and crawler treat as "no material".
"""

import io
import re
import zipfile
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup, UnicodeDammit
from lxml import etree
from pypdf import PdfReader

from studysync.shared.config import get_settings
from studysync.shared.logging import get_logger
from studysync.shared.utils import collapse_whitespace, truncate_text

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────────────────────

# Elements that carry layout chrome rather than content
NOISE_TAGS = ["script", "style", "nav", "footer", "noscript"]

SLIDE_PART = re.compile(r"^ppt/slides/slide(\d+)\.xml$")
DRAWINGML_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"

DOCUMENT_EXTENSIONS = (".pdf", ".pptx")
CHARSET_PARAM = re.compile(r"charset=[\"']?([\w.:-]+)", re.IGNORECASE)
MAX_LINK_LENGTH = 500
SKIPPED_LINK_PREFIXES = ("#", "mailto:", "javascript:", "tel:")


@dataclass
class ExtractorConfig:
    """Limits applied while extracting text."""

    min_html_chars: int = 50
    max_html_chars: int = 100_000
    min_pptx_chars: int = 20
    max_output_chars: int = 150_000
    max_pdf_bytes: int = 50 * 1024 * 1024
    max_pptx_bytes: int = 30 * 1024 * 1024

    @classmethod
    def from_settings(cls) -> "ExtractorConfig":
        """Build from the ``extraction`` settings section."""
        cfg = get_settings().extraction
        return cls(
            min_html_chars=cfg.min_html_chars,
            max_html_chars=cfg.max_html_chars,
            min_pptx_chars=cfg.min_pptx_chars,
            max_output_chars=cfg.max_output_chars,
            max_pdf_bytes=cfg.max_pdf_bytes,
            max_pptx_bytes=cfg.max_pptx_bytes,
        )


@dataclass
class HTMLPage:
    """Text and title extracted from an HTML document."""

    title: str
    text: str


# ─────────────────────────────────────────────────────────────────────────────
# Content Type Detection
# ─────────────────────────────────────────────────────────────────────────────


def _url_path(url: str) -> str:
    try:
        return urlparse(url).path.lower()
    except ValueError:
        return ""


def is_pdf(content_type: Optional[str], url: str = "") -> bool:
    """True when the content type or URL suffix points to a PDF."""
    ct = (content_type or "").lower()
    return "application/pdf" in ct or _url_path(url).endswith(".pdf")


def is_pptx(content_type: Optional[str], url: str = "") -> bool:
    """True when the content type or URL suffix points to a PPTX deck."""
    ct = (content_type or "").lower()
    return "presentationml" in ct or _url_path(url).endswith(".pptx")


def is_html(content_type: Optional[str]) -> bool:
    """True for HTML and XHTML content types."""
    ct = (content_type or "").lower()
    return "text/html" in ct or "application/xhtml" in ct


def is_document_url(url: str) -> bool:
    """True when the URL path ends with a known document extension."""
    return _url_path(url).endswith(DOCUMENT_EXTENSIONS)


def declared_charset(content_type: Optional[str]) -> Optional[str]:
    """Charset named in a Content-Type header, if any."""
    match = CHARSET_PARAM.search(content_type or "")
    return match.group(1) if match else None


def decode_html(data: bytes, charset: Optional[str] = None) -> str:
    """
    Decode an HTML body to text.

    A charset from the Content-Type header wins. Without one, UTF-8 is
    tried first, then the document's own ``<meta charset>``, then
    detection.

    Example:
        >>> decode_html("<p>Café</p>".encode("utf-8"))
        '<p>Café</p>'
    """
    dammit = UnicodeDammit(
        data,
        known_definite_encodings=[charset] if charset else [],
        user_encodings=["utf-8"],
        is_html=True,
    )
    if dammit.unicode_markup is None:
        return data.decode("utf-8", errors="replace")
    return dammit.unicode_markup


# ─────────────────────────────────────────────────────────────────────────────
# URL Helpers
# ─────────────────────────────────────────────────────────────────────────────


def normalize_url(url: str) -> str:
    """
    Normalize a URL for visited-set membership.

    Keeps scheme, host and path (trailing slash removed) and the query
    string; drops the fragment.

    Example:
        >>> normalize_url("HTTPS://Example.com/a/b/?x=1#top")
        'https://example.com/a/b?x=1'
    """
    parsed = urlparse(url.strip())
    path = parsed.path.rstrip("/")
    return urlunparse(
        (parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, parsed.query, "")
    )


def extract_links(html: str, base_url: str) -> list[str]:
    """
    Extract outbound http(s) links from raw HTML.

    Args:
        html: Raw HTML
        base_url: URL the HTML was fetched from, for relative links

    Returns:
        Normalized, de-duplicated URLs in document order
    """
    if not html:
        return []

    soup = BeautifulSoup(html, "lxml")
    links: list[str] = []
    seen: set[str] = set()

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.lower().startswith(SKIPPED_LINK_PREFIXES):
            continue
        try:
            absolute = urljoin(base_url, href)
        except ValueError:
            continue
        if urlparse(absolute).scheme not in ("http", "https"):
            continue

        normalized = normalize_url(absolute)
        if len(normalized) > MAX_LINK_LENGTH or normalized in seen:
            continue
        seen.add(normalized)
        links.append(normalized)

    return links


def title_from_url(url: str) -> str:
    """Fallback title: last non-empty path segment, or the host."""
    parsed = urlparse(url)
    segments = [s for s in parsed.path.split("/") if s]
    if segments:
        return unquote(segments[-1])
    return parsed.netloc or url


# ─────────────────────────────────────────────────────────────────────────────
# Document Extractor
# ─────────────────────────────────────────────────────────────────────────────


class DocumentExtractor:
    """
    Converts HTML pages and PDF/PPTX binaries to plain text.

    Example:
        >>> extractor = DocumentExtractor()
        >>> extractor.extract(b"<html><body><p>...</p></body></html>", "text/html", url)
    """

    def __init__(self, config: Optional[ExtractorConfig] = None):
        self.config = config or ExtractorConfig.from_settings()

    def extract(
        self,
        data: bytes,
        content_type_hint: Optional[str],
        source_url: str = "",
    ) -> Optional[str]:
        """
        Extract plain text from a fetched document.

        Args:
            data: Raw response body
            content_type_hint: Content-Type header value, if known
            source_url: URL the bytes came from (used for suffix detection)

        Returns:
            Extracted text, or None if the document is unsupported,
            too large, unparseable, or too short to be useful
        """
        if not data:
            return None

        try:
            if is_pdf(content_type_hint, source_url):
                return self.extract_pdf(data)
            if is_pptx(content_type_hint, source_url):
                return self.extract_pptx(data)
            if is_html(content_type_hint) or not content_type_hint:
                html = decode_html(data, declared_charset(content_type_hint))
                page = self.extract_html_page(html, source_url)
                return page.text if page else None
        except Exception as e:
            logger.debug(f"Extraction failed for {source_url or 'document'}: {e}")
            return None

        logger.debug(f"Unsupported content type {content_type_hint!r} for {source_url}")
        return None

    # ── HTML ────────────────────────────────────────────────────────────────

    def html_to_text(self, html: str) -> str:
        """
        Strip markup from an HTML fragment.

        Used for LMS page bodies and assignment descriptions, which are
        trusted content and are kept even when short.
        """
        if not html:
            return ""
        soup = BeautifulSoup(html, "lxml")
        for tag in soup(NOISE_TAGS):
            tag.decompose()
        return collapse_whitespace(soup.get_text(" "))

    def extract_html_page(self, html: str, source_url: str = "") -> Optional[HTMLPage]:
        """
        Extract text and title from a full HTML page.

        Returns None when the remaining text is shorter than the noise
        threshold (login walls, redirects, empty shells).
        """
        try:
            soup = BeautifulSoup(html, "lxml")
            title_tag = soup.find("title")
            title = collapse_whitespace(title_tag.get_text()) if title_tag else ""

            # The title is reported separately, so keep it out of the text
            for tag in soup(NOISE_TAGS + ["title"]):
                tag.decompose()
            text = collapse_whitespace(soup.get_text(" "))
        except Exception as e:
            logger.debug(f"HTML parse failed for {source_url}: {e}")
            return None

        if len(text) < self.config.min_html_chars:
            return None

        return HTMLPage(
            title=(title or title_from_url(source_url))[:500],
            text=truncate_text(text, self.config.max_html_chars),
        )

    # ── PDF ─────────────────────────────────────────────────────────────────

    def extract_pdf(self, data: bytes) -> Optional[str]:
        """Extract the PDF text layer page by page."""
        if len(data) > self.config.max_pdf_bytes:
            logger.debug(f"PDF skipped: {len(data)} bytes exceeds limit")
            return None

        try:
            reader = PdfReader(io.BytesIO(data))
            parts: list[str] = []
            total = 0
            for page in reader.pages:
                page_text = page.extract_text() or ""
                page_text = collapse_whitespace(page_text)
                if not page_text:
                    continue
                parts.append(page_text)
                total += len(page_text) + 1
                if total >= self.config.max_output_chars:
                    break
        except Exception as e:
            logger.debug(f"PDF parse failed: {e}")
            return None

        text = truncate_text("\n".join(parts).strip(), self.config.max_output_chars)
        return text or None

    # ── PPTX ────────────────────────────────────────────────────────────────

    def extract_pptx(self, data: bytes) -> Optional[str]:
        """Extract text runs from every slide, one paragraph per slide."""
        if len(data) > self.config.max_pptx_bytes:
            logger.debug(f"PPTX skipped: {len(data)} bytes exceeds limit")
            return None

        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                slides = []
                for name in archive.namelist():
                    match = SLIDE_PART.match(name)
                    if match:
                        slides.append((int(match.group(1)), name))
                slides.sort()

                slide_texts: list[str] = []
                for _, name in slides:
                    root = etree.fromstring(archive.read(name))
                    runs = root.iter(f"{{{DRAWINGML_NS}}}t")
                    slide_text = collapse_whitespace(" ".join(run.text or "" for run in runs))
                    if slide_text:
                        slide_texts.append(slide_text)
        except Exception as e:
            logger.debug(f"PPTX parse failed: {e}")
            return None

        text = "\n\n".join(slide_texts)
        if len(text) < self.config.min_pptx_chars:
            return None
        return truncate_text(text, self.config.max_output_chars)


# ─────────────────────────────────────────────────────────────────────────────
# Convenience Functions
# ─────────────────────────────────────────────────────────────────────────────

_extractor: Optional[DocumentExtractor] = None


def get_extractor() -> DocumentExtractor:
    """Get or create the shared extractor instance."""
    global _extractor
    if _extractor is None:
        _extractor = DocumentExtractor()
    return _extractor


def extract_text(data: bytes, content_type: Optional[str], source_url: str = "") -> Optional[str]:
    """Quick extraction using the shared extractor."""
    return get_extractor().extract(data, content_type, source_url)
