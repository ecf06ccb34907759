"""
Tests for Ingestion Module.
===========================

Tests for:
- DocumentExtractor: HTML, PDF and PPTX text extraction
- LinkCrawler: Bounded breadth-first crawling
- TextSplitter: Overlapping chunking
- CanvasClient: Pagination and error mapping
- ContentWalker: Course walk, link attribution, de-duplication
- Blob storage: Safe file names and local storage
"""

from unittest.mock import MagicMock, Mock

import pytest

from tests.conftest import (
    LMS_BASE_URL,
    FakeLMSClient,
    FakeResponse,
    FakeSession,
    html_page,
    make_pptx,
)

PPTX_TYPE = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
FILLER = "This paragraph exists so the page clears the minimum text threshold easily."


# ─────────────────────────────────────────────────────────────────────────────
# Extractor Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestExtractor:
    """Tests for DocumentExtractor."""

    def test_html_strips_layout_chrome(self, sample_html: str):
        """Navigation, scripts and footers are dropped."""
        from studysync.ingestion.extractor import DocumentExtractor

        text = DocumentExtractor().extract(sample_html.encode(), "text/html", "https://x.test/w3")

        assert "binary search tree keeps its keys in sorted order" in text
        assert "Home | Courses" not in text
        assert "trackPageView" not in text
        assert "Copyright" not in text

    def test_html_page_title(self, sample_html: str):
        """Page title comes from the title tag."""
        from studysync.ingestion.extractor import DocumentExtractor

        page = DocumentExtractor().extract_html_page(sample_html, "https://x.test/w3")

        assert page.title == "Week 3 - Binary Search Trees"

    def test_html_title_not_repeated_in_text(self):
        """The title is reported once, outside the body text."""
        from studysync.ingestion.extractor import DocumentExtractor

        html = (
            "<html><head><title>Graph Traversal</title></head><body>"
            "<p>Breadth first search visits every vertex at distance one before "
            "any vertex at distance two.</p></body></html>"
        )
        page = DocumentExtractor().extract_html_page(html, "https://x.test/graphs")

        assert page.title == "Graph Traversal"
        assert page.text.startswith("Breadth first search")
        assert "Graph Traversal" not in page.text

    def test_decode_html_prefers_header_charset(self):
        from studysync.ingestion.extractor import declared_charset, decode_html

        assert declared_charset("text/html; charset=ISO-8859-1") == "ISO-8859-1"
        assert declared_charset("text/html") is None
        assert decode_html("Résumé".encode("latin-1"), "iso-8859-1") == "Résumé"
        assert decode_html("Résumé".encode("utf-8")) == "Résumé"

    def test_short_html_is_noise(self):
        """Pages below the minimum length yield nothing."""
        from studysync.ingestion.extractor import DocumentExtractor

        html = b"<html><body><p>Please log in.</p></body></html>"

        assert DocumentExtractor().extract(html, "text/html", "https://x.test/login") is None

    def test_html_fragment_kept_when_short(self):
        """LMS bodies are trusted and kept regardless of length."""
        from studysync.ingestion.extractor import DocumentExtractor

        assert DocumentExtractor().html_to_text("<p>Read  chapter\n2.</p>") == "Read chapter 2."

    def test_pptx_slides_in_order(self):
        """Slide text is joined in slide-number order, not archive order."""
        from studysync.ingestion.extractor import DocumentExtractor

        slides = [f"Slide number {n} explains something useful" for n in range(1, 12)]
        text = DocumentExtractor().extract(make_pptx(slides), PPTX_TYPE, "deck.pptx")

        parts = text.split("\n\n")
        assert len(parts) == 11
        assert parts[1].startswith("Slide number 2 ")
        assert parts[10].startswith("Slide number 11 ")

    def test_pptx_detected_by_suffix(self, pptx_bytes: bytes):
        """A .pptx URL is enough to pick the PPTX path."""
        from studysync.ingestion.extractor import DocumentExtractor

        text = DocumentExtractor().extract(pptx_bytes, "application/octet-stream", "https://x.test/l1.pptx")

        assert "Recursion breaks a problem" in text

    def test_invalid_pdf_returns_none(self):
        """Corrupt PDFs never raise."""
        from studysync.ingestion.extractor import DocumentExtractor

        assert DocumentExtractor().extract(b"%PDF-1.4 garbage", "application/pdf", "a.pdf") is None

    def test_oversized_pdf_returns_none(self):
        """PDFs over the byte cap are skipped."""
        from studysync.ingestion.extractor import DocumentExtractor, ExtractorConfig

        extractor = DocumentExtractor(ExtractorConfig(max_pdf_bytes=10))

        assert extractor.extract(b"%PDF-" + b"0" * 100, "application/pdf", "a.pdf") is None

    def test_unsupported_type_returns_none(self):
        """Images and other binaries yield nothing."""
        from studysync.ingestion.extractor import DocumentExtractor

        assert DocumentExtractor().extract(b"\x89PNG....", "image/png", "a.png") is None

    def test_empty_input_returns_none(self):
        from studysync.ingestion.extractor import DocumentExtractor

        assert DocumentExtractor().extract(b"", "text/html") is None


class TestLinkHelpers:
    """Tests for URL normalization and link extraction."""

    def test_normalize_url(self):
        from studysync.ingestion.extractor import normalize_url

        assert normalize_url("HTTPS://Example.com/a/b/?x=1#top") == "https://example.com/a/b?x=1"

    def test_extract_links_filters_and_resolves(self):
        """Relative links resolve; mailto, fragments and duplicates are dropped."""
        from studysync.ingestion.extractor import extract_links

        html = """
            <a href="/notes/1">Notes</a>
            <a href="https://other.test/read#part2">Read</a>
            <a href="https://other.test/read">Read again</a>
            <a href="mailto:prof@x.test">Mail</a>
            <a href="#top">Top</a>
            <a href="javascript:void(0)">JS</a>
            <a href="ftp://files.test/a">FTP</a>
        """
        links = extract_links(html, "https://x.test/course/page")

        assert links == ["https://x.test/notes/1", "https://other.test/read"]

    def test_document_url_detection(self):
        from studysync.ingestion.extractor import is_document_url

        assert is_document_url("https://x.test/files/Lecture.PDF")
        assert is_document_url("https://x.test/deck.pptx?download=1")
        assert not is_document_url("https://x.test/page.html")
        assert not is_document_url("https://x.test/essay.docx")

    def test_only_pptx_counts_as_a_deck(self):
        """Legacy binary .ppt is not treated as an extractable deck."""
        from studysync.ingestion.extractor import is_pptx

        assert is_pptx(PPTX_TYPE)
        assert is_pptx(None, "https://x.test/deck.pptx")
        assert not is_pptx("application/vnd.ms-powerpoint", "https://x.test/deck.ppt")


# ─────────────────────────────────────────────────────────────────────────────
# Crawler Tests
# ─────────────────────────────────────────────────────────────────────────────


def _graph_site(size: int = 200, fan_out: int = 20) -> FakeSession:
    """Pages 0..size-1; page i links to the next ``fan_out`` pages, wrapping."""
    pages = {}
    for i in range(size):
        url = f"https://site.test/p/{i}"
        links = tuple(f"https://site.test/p/{(i + k) % size}" for k in range(1, fan_out + 1))
        pages[url] = html_page(url, f"Page {i}", f"Page {i}. {FILLER}", links)
    return FakeSession(pages)


class TestLinkCrawler:
    """Tests for LinkCrawler."""

    def test_page_budget_respected_without_revisits(self):
        """A large connected graph stops at the budget and never refetches."""
        from studysync.ingestion.crawler import LinkCrawler

        session = _graph_site()
        crawler = LinkCrawler(session=session, rate_limit=0)

        pages = crawler.crawl(["https://site.test/p/0"], max_pages=25, max_depth=3)

        assert len(pages) == 25
        assert len({p.url for p in pages}) == 25
        assert len(session.requested) == len(set(session.requested))
        assert all(p.depth <= 3 for p in pages)

    def test_breadth_first_order(self):
        """Depth never decreases along the result list."""
        from studysync.ingestion.crawler import LinkCrawler

        crawler = LinkCrawler(session=_graph_site(), rate_limit=0)
        pages = crawler.crawl(["https://site.test/p/0"], max_pages=30, max_depth=2)

        depths = [p.depth for p in pages]
        assert depths == sorted(depths)
        assert depths[0] == 0

    def test_hard_ceilings(self):
        """Caller limits above the ceilings are clamped."""
        from studysync.ingestion.crawler import MAX_PAGES_CEILING, LinkCrawler

        crawler = LinkCrawler(session=_graph_site(), rate_limit=0)
        pages = crawler.crawl(["https://site.test/p/0"], max_pages=500, max_depth=10)

        assert len(pages) == MAX_PAGES_CEILING
        assert max(p.depth for p in pages) <= 3

    def test_depth_zero_fetches_only_seeds(self):
        from studysync.ingestion.crawler import LinkCrawler

        session = _graph_site()
        pages = LinkCrawler(session=session, rate_limit=0).crawl(
            ["https://site.test/p/0", "https://site.test/p/100"], max_pages=10, max_depth=0
        )

        assert [p.url for p in pages] == ["https://site.test/p/0", "https://site.test/p/100"]
        assert len(session.requested) == 2

    def test_failed_pages_are_skipped(self):
        """A 404 seed does not stop the crawl."""
        from studysync.ingestion.crawler import LinkCrawler

        good = "https://site.test/good"
        session = FakeSession({good: html_page(good, "Good", f"Good page. {FILLER}")})
        crawler = LinkCrawler(session=session, rate_limit=0)

        pages = crawler.crawl(["https://site.test/missing", good], max_pages=5)

        assert [p.url for p in pages] == [good]
        assert crawler.stats.skipped == 1

    def test_utf8_page_without_charset_header(self):
        """A bare text/html header does not turn UTF-8 text into mojibake."""
        from studysync.ingestion.crawler import LinkCrawler

        url = "https://site.test/cafe"
        body = (
            "<html><head><title>Café notes</title></head><body>"
            "<p>Résumé of the naïve café model for queueing. " + FILLER + "</p>"
            "</body></html>"
        ).encode("utf-8")
        response = FakeResponse(url, body, "text/html")
        response.encoding = "ISO-8859-1"
        session = FakeSession({url: response})

        pages = LinkCrawler(session=session, rate_limit=0).crawl([url], max_pages=1)

        assert pages[0].title == "Café notes"
        assert "Résumé of the naïve café" in pages[0].text
        assert "Ã" not in pages[0].text

    def test_documents_are_extracted(self, pptx_bytes: bytes):
        """PPTX links become document pages carrying their bytes."""
        from studysync.ingestion.crawler import LinkCrawler

        index = "https://site.test/index"
        deck = "https://site.test/files/week1.pptx"
        session = FakeSession(
            {
                index: html_page(index, "Index", f"Course index. {FILLER}", (deck,)),
                deck: FakeResponse(deck, pptx_bytes, PPTX_TYPE),
            }
        )

        pages = LinkCrawler(session=session, rate_limit=0).crawl([index], max_pages=5, max_depth=1)

        assert len(pages) == 2
        document = pages[1]
        assert document.is_document
        assert document.file_name == "week1.pptx"
        assert "Recursion" in document.text

    def test_documents_only_skips_html_links(self, pptx_bytes: bytes):
        from studysync.ingestion.crawler import LinkCrawler

        index = "https://site.test/index"
        deck = "https://site.test/deck.pptx"
        other = "https://site.test/other"
        session = FakeSession(
            {
                index: html_page(index, "Index", f"Course index. {FILLER}", (other, deck)),
                deck: FakeResponse(deck, pptx_bytes, PPTX_TYPE),
                other: html_page(other, "Other", f"Other page. {FILLER}"),
            }
        )

        pages = LinkCrawler(session=session, rate_limit=0, documents_only=True).crawl(
            [index], max_pages=5, max_depth=1
        )

        assert [p.url for p in pages] == [index, deck]
        assert other not in session.requested

    def test_resolver_short_circuits_fetch(self):
        """URLs the resolver handles are never fetched over HTTP."""
        from studysync.ingestion.crawler import LinkCrawler, LinkedPage

        session = FakeSession()

        def resolver(url, depth):
            return LinkedPage(url=url, title="Resolved", text="Resolved through the API", depth=depth)

        pages = LinkCrawler(session=session, rate_limit=0).crawl(
            ["https://lms.test/courses/1/pages/a"], resolver=resolver
        )

        assert pages[0].title == "Resolved"
        assert session.requested == []


# ─────────────────────────────────────────────────────────────────────────────
# Chunker Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestChunker:
    """Tests for TextSplitter and chunk_material."""

    def test_split_on_whitespace_with_overlap(self):
        from studysync.ingestion.chunker import ChunkerConfig, TextSplitter

        splitter = TextSplitter(ChunkerConfig(chunk_size=20, chunk_overlap=5))

        assert splitter.split("the quick brown fox jumps over the lazy dog") == [
            "the quick brown fox",
            "fox jumps over the",
            "the lazy dog",
        ]

    def test_short_text_single_chunk(self):
        from studysync.ingestion.chunker import ChunkerConfig, TextSplitter

        splitter = TextSplitter(ChunkerConfig(chunk_size=100, chunk_overlap=10))

        assert splitter.split("  short text  ") == ["short text"]
        assert splitter.split("   ") == []

    def test_chunks_respect_size(self):
        from studysync.ingestion.chunker import ChunkerConfig, TextSplitter

        text = " ".join(f"token{i}" for i in range(500))
        chunks = TextSplitter(ChunkerConfig(chunk_size=120, chunk_overlap=20)).split(text)

        assert len(chunks) > 1
        assert all(len(c) <= 120 for c in chunks)

    def test_invalid_overlap_rejected(self):
        from studysync.ingestion.chunker import ChunkerConfig

        with pytest.raises(ValueError):
            ChunkerConfig(chunk_size=100, chunk_overlap=100)

    def test_chunk_material_ids_are_dense(self, small_splitter):
        from studysync.ingestion.chunker import chunk_material
        from tests.conftest import make_material, numbered_words

        material = make_material("page-42-7", numbered_words(6), title="Week 7")
        chunks = chunk_material("42", material, small_splitter)

        assert [c.chunk_id for c in chunks] == [
            "page-42-7-chunk-0",
            "page-42-7-chunk-1",
            "page-42-7-chunk-2",
        ]
        assert all(c.metadata.title == "Week 7" for c in chunks)
        assert chunk_material("42", material, small_splitter)[1].text == chunks[1].text


# ─────────────────────────────────────────────────────────────────────────────
# LMS Client Tests
# ─────────────────────────────────────────────────────────────────────────────


def _api_response(data, status: int = 200, next_url=None):
    response = Mock()
    response.status_code = status
    response.ok = status < 400
    response.json.return_value = data
    response.links = {"next": {"url": next_url}} if next_url else {}
    response.text = "error body"
    return response


class TestCanvasClient:
    """Tests for CanvasClient with a mocked session."""

    def test_pagination_follows_next_links(self, credentials):
        from studysync.ingestion.lms_client import CanvasClient

        session = MagicMock()
        session.get.side_effect = [
            _api_response(
                [{"id": 1, "name": "Algorithms"}, {"id": 2, "name": "Old", "workflow_state": "deleted"}],
                next_url=f"{LMS_BASE_URL}/api/v1/courses?page=2",
            ),
            _api_response([{"id": 3, "name": "Databases", "workflow_state": "available"}]),
        ]
        client = CanvasClient(credentials, session=session, timeout=5, per_page=50)

        courses = client.list_courses()

        assert [c.id for c in courses] == [1, 3]
        first, second = session.get.call_args_list
        assert first.args[0] == f"{LMS_BASE_URL}/api/v1/courses"
        assert first.kwargs["params"] == {"per_page": 50, "enrollment_state": "active"}
        assert second.args[0] == f"{LMS_BASE_URL}/api/v1/courses?page=2"
        assert second.kwargs["params"] is None

    def test_bearer_token_header(self, credentials):
        from studysync.ingestion.lms_client import CanvasClient

        session = MagicMock()
        CanvasClient(credentials, session=session)

        headers = session.headers.update.call_args.args[0]
        assert headers["Authorization"] == "Bearer token"

    def test_unauthorized_raises_auth_error(self, credentials):
        from studysync.ingestion.lms_client import CanvasClient
        from studysync.shared.errors import LMSAuthenticationError

        session = MagicMock()
        session.get.return_value = _api_response({}, status=401)

        with pytest.raises(LMSAuthenticationError):
            CanvasClient(credentials, session=session).list_modules(1)

    def test_missing_front_page_is_none(self, credentials):
        from studysync.ingestion.lms_client import CanvasClient

        session = MagicMock()
        session.get.return_value = _api_response({}, status=404)

        assert CanvasClient(credentials, session=session).get_front_page(1) is None

    def test_server_error_raises(self, credentials):
        from studysync.ingestion.lms_client import CanvasClient
        from studysync.shared.errors import LMSAPIError

        session = MagicMock()
        session.get.return_value = _api_response({}, status=500)

        with pytest.raises(LMSAPIError) as exc_info:
            CanvasClient(credentials, session=session).get_page(1, "intro")
        assert exc_info.value.status_code == 500

    def test_oversized_download_skipped(self, credentials):
        from studysync.ingestion.lms_client import CanvasClient, LMSFile

        session = MagicMock()
        lms_file = LMSFile(id=9, url="https://lms.test/files/9", size=1000)

        assert CanvasClient(credentials, session=session).download_file(lms_file, max_bytes=10) is None
        session.get.assert_not_called()

    def test_file_content_type_alias(self):
        from studysync.ingestion.lms_client import LMSFile

        lms_file = LMSFile.model_validate({"id": 1, "content-type": "application/pdf"})

        assert lms_file.content_type == "application/pdf"


# ─────────────────────────────────────────────────────────────────────────────
# Walker Tests
# ─────────────────────────────────────────────────────────────────────────────

READING = "https://ext.test/reading"
OTHER = "https://ext.test/other"


def _algorithms_course() -> FakeLMSClient:
    """One course whose items all link to the same external reading."""
    course = {
        "front_page": {
            "page_id": 1,
            "url": "home",
            "title": "Home",
            "body": (
                f'<p>Welcome to Algorithms. Start with the <a href="{READING}">reading</a> '
                f'and <a href="{LMS_BASE_URL}/courses/42/pages/week-2">week 2</a>. '
                f'Discuss in <a href="{LMS_BASE_URL}/courses/42/discussion_topics/3">the forum</a>.</p>'
            ),
            "html_url": f"{LMS_BASE_URL}/courses/42/pages/home",
        },
        "modules": [
            {
                "id": 5,
                "name": "Week 1",
                "items": [
                    {"id": 11, "title": "Week 1 notes", "type": "Page", "page_url": "week-1"},
                    {"id": 12, "title": "Homework 1", "type": "Assignment", "content_id": 7},
                    {"id": 13, "title": "Quiz 1", "type": "Quiz", "content_id": 8},
                    {"id": 14, "title": "Slides", "type": "File", "content_id": 9},
                    {"id": 15, "title": "Further reading", "type": "ExternalUrl", "external_url": OTHER},
                ],
            }
        ],
        "pages": {
            "week-1": {
                "page_id": 2,
                "url": "week-1",
                "title": "Week 1 notes",
                "body": f'<p>Sorting algorithms. See <a href="{READING}">the reading</a>.</p>',
                "html_url": f"{LMS_BASE_URL}/courses/42/pages/week-1",
            },
            "week-2": {
                "page_id": 3,
                "url": "week-2",
                "title": "Week 2 notes",
                "body": "<p>Graph traversal with breadth-first search.</p>",
                "html_url": f"{LMS_BASE_URL}/courses/42/pages/week-2",
            },
        },
        "assignments": {
            7: {
                "id": 7,
                "name": "Homework 1",
                "description": f'<p>Read <a href="{READING}">this</a> before implementing merge sort.</p>',
                "html_url": f"{LMS_BASE_URL}/courses/42/assignments/7",
            }
        },
        "files": {
            9: {
                "id": 9,
                "display_name": "Slides.pptx",
                "filename": "slides.pptx",
                "url": f"{LMS_BASE_URL}/files/9/download",
                "content-type": PPTX_TYPE,
                "data": make_pptx(["Merge sort divides the input in half recursively"]),
            }
        },
    }
    return FakeLMSClient([{"id": 42, "name": "Algorithms"}], {"42": course})


def _external_site() -> FakeSession:
    return FakeSession(
        {
            READING: html_page(READING, "Reading", f"An external reading on sorting. {FILLER}"),
            OTHER: html_page(OTHER, "Other", f"More material on graphs. {FILLER}"),
        }
    )


class TestContentWalker:
    """Tests for ContentWalker."""

    def _walker(self, lms, session, blob_storage=None):
        from studysync.ingestion.crawler import LinkCrawler
        from studysync.ingestion.walker import ContentWalker

        return ContentWalker(
            client_factory=lms,
            crawler=LinkCrawler(session=session, rate_limit=0),
            blob_storage=blob_storage,
            max_pages=10,
            max_depth=1,
        )

    def test_walk_emits_every_item_once(self, credentials):
        from studysync.shared.utils import generate_link_item_id

        session = _external_site()
        emitted = []
        materials = self._walker(_algorithms_course(), session).walk(
            42, credentials, on_material_ingested=emitted.append
        )

        assert [m.item_id for m in materials] == [
            "page-42-1",
            generate_link_item_id("42", READING),
            "page-42-3",
            "page-42-2",
            "assignment-42-7",
            "file-42-9",
            generate_link_item_id("42", OTHER),
        ]
        assert emitted == materials

    def test_shared_link_crawled_once_and_attributed_to_first_parent(self, credentials):
        from studysync.shared.utils import generate_link_item_id

        session = _external_site()
        materials = self._walker(_algorithms_course(), session).walk(42, credentials)

        assert session.requested.count(READING) == 1
        reading = next(m for m in materials if m.item_id == generate_link_item_id("42", READING))
        assert reading.content_type == "crawled-page"
        assert reading.metadata.source == "linked"
        assert reading.metadata.source_canvas_item_id == "page-42-1"

    def test_lms_links_resolved_through_api(self, credentials):
        """LMS pages are read via the API; other LMS URLs are never scraped."""
        session = _external_site()
        materials = self._walker(_algorithms_course(), session).walk(42, credentials)

        week_2 = next(m for m in materials if m.item_id == "page-42-3")
        assert week_2.content_type == "page"
        assert week_2.metadata.source == "linked"
        assert "breadth-first search" in week_2.text
        assert not any(url.startswith(LMS_BASE_URL) for url in session.requested)

    def test_item_progress_reported(self, credentials):
        calls = []
        self._walker(_algorithms_course(), _external_site()).walk(
            42, credentials, on_item_read=lambda msg, i, n: calls.append((i, n))
        )

        assert calls == [(1, 5), (2, 5), (3, 5), (4, 5), (5, 5)]

    def test_failing_item_is_skipped(self, credentials):
        lms = _algorithms_course()
        del lms.content["42"]["assignments"][7]

        materials = self._walker(lms, _external_site()).walk(42, credentials)
        ids = [m.item_id for m in materials]

        assert "assignment-42-7" not in ids
        assert "file-42-9" in ids

    def test_auth_error_aborts_walk(self, credentials):
        from studysync.shared.errors import LMSAuthenticationError

        lms = _algorithms_course()
        lms.errors["42"] = LMSAuthenticationError("expired", status_code=401)

        with pytest.raises(LMSAuthenticationError):
            self._walker(lms, _external_site()).walk(42, credentials)

    def test_client_closed_after_walk(self, credentials):
        from studysync.shared.errors import LMSAuthenticationError

        lms = _algorithms_course()
        self._walker(lms, _external_site()).walk(42, credentials)

        assert (lms.opened, lms.closed) == (1, 1)

        lms.errors["42"] = LMSAuthenticationError("expired", status_code=401)
        with pytest.raises(LMSAuthenticationError):
            self._walker(lms, _external_site()).walk(42, credentials)

        assert (lms.opened, lms.closed) == (2, 2)

    def test_callback_abort_ends_walk(self, credentials):
        """WalkAbortedError from a callback is not treated as a failing item."""
        from studysync.shared.errors import WalkAbortedError

        emitted = []

        def stop_after_two(material):
            if len(emitted) == 2:
                raise WalkAbortedError("stop")
            emitted.append(material)

        session = _external_site()
        with pytest.raises(WalkAbortedError):
            self._walker(_algorithms_course(), session).walk(
                42, credentials, on_material_ingested=stop_after_two
            )

        assert len(emitted) == 2
        assert OTHER not in session.requested

    def test_file_binary_uploaded(self, credentials, temp_dir):
        from studysync.ingestion.blob_storage import LocalBlobStorage

        storage = LocalBlobStorage(temp_dir)
        materials = self._walker(_algorithms_course(), _external_site(), storage).walk(42, credentials)

        slides = next(m for m in materials if m.item_id == "file-42-9")
        assert slides.metadata.storage_path == "42/file-42-9/slides.pptx"
        assert storage.exists("42/file-42-9/slides.pptx")
        assert "Merge sort" in slides.text


# ─────────────────────────────────────────────────────────────────────────────
# Blob Storage Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestBlobStorage:
    """Tests for storage file names and LocalBlobStorage."""

    def test_safe_file_name(self):
        from studysync.ingestion.blob_storage import safe_storage_file_name

        assert safe_storage_file_name("Week 1: Intro (v2).PDF") == "Week_1_Intro_v2.pdf"
        assert safe_storage_file_name("archive.zip") == "archive.bin"

    def test_nameless_file_uses_content_hash(self):
        from studysync.ingestion.blob_storage import safe_storage_file_name
        from studysync.shared.utils import compute_bytes_hash

        name = safe_storage_file_name("", b"payload")

        assert name == f"file_{compute_bytes_hash(b'payload')[:12]}.bin"

    def test_path_escape_rejected(self, temp_dir):
        from studysync.ingestion.blob_storage import LocalBlobStorage

        with pytest.raises(ValueError):
            LocalBlobStorage(temp_dir).upload(b"x", "../outside.pdf")
