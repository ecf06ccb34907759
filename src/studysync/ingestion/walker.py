"""
Walker Module - Enumerate a course and emit Materials.
======================================================

Walks one LMS course end to end:
1. The front page (if any), first
2. Every module and every module item (pages, assignments, files,
   external URLs)
3. Hyperlinks inside page bodies and assignment descriptions, crawled
   with the LinkCrawler and attributed back to the originating item

Each new Material is handed to ``on_material_ingested`` as soon as it is
found, so the caller can store incrementally. A failing item is logged
and skipped; the walk itself only fails when the course cannot be
enumerated or has to stop (a rejected token, or WalkAbortedError from a
callback).
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Optional
from urllib.parse import urlparse

from studysync.ingestion.blob_storage import BlobStorage, storage_path_for
from studysync.ingestion.crawler import LinkCrawler, LinkedPage
from studysync.ingestion.extractor import DocumentExtractor, extract_links, normalize_url
from studysync.ingestion.lms_client import (
    CanvasClient,
    LMSCredentials,
    LMSModuleItem,
    LMSPage,
)
from studysync.shared.config import get_settings
from studysync.shared.errors import LMSAuthenticationError, WalkAbortedError
from studysync.shared.logging import get_logger
from studysync.shared.schemas import ContentType, Material, MaterialMetadata, MaterialSource
from studysync.shared.utils import generate_link_item_id

logger = get_logger(__name__)

ItemReadCallback = Callable[[str, int, int], None]
MaterialCallback = Callable[[Material], None]
ClientFactory = Callable[[LMSCredentials], CanvasClient]

LMS_PAGE_PATH = re.compile(r"^/courses/(\d+)/pages/([^/?#]+)")
LMS_FILE_PATH = re.compile(r"^/courses/(\d+)/files/(\d+)")

FRONT_PAGE_MODULE = "Front Page"

# Errors that end the walk instead of skipping an item
ABORT_ERRORS = (LMSAuthenticationError, WalkAbortedError)


# ─────────────────────────────────────────────────────────────────────────────
# Item Ids
# ─────────────────────────────────────────────────────────────────────────────


def page_item_id(course_id: str, page: LMSPage) -> str:
    return f"page-{course_id}-{page.stable_id}"


def assignment_item_id(course_id: str, assignment_id: int | str) -> str:
    return f"assignment-{course_id}-{assignment_id}"


def file_item_id(course_id: str, file_id: int | str) -> str:
    return f"file-{course_id}-{file_id}"


def module_item_id(course_id: str, item_id: int | str) -> str:
    return f"item-{course_id}-{item_id}"


# ─────────────────────────────────────────────────────────────────────────────
# Walk State
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class _Walk:
    """Mutable state for one walk of one course."""

    course_id: str
    client: CanvasClient
    on_material_ingested: Optional[MaterialCallback]
    seen_ids: set[str] = field(default_factory=set)
    crawled_urls: set[str] = field(default_factory=set)
    materials: list[Material] = field(default_factory=list)
    items_failed: int = 0


# ─────────────────────────────────────────────────────────────────────────────
# Content Walker
# ─────────────────────────────────────────────────────────────────────────────


class ContentWalker:
    """
    Turns one LMS course into a stream of Materials.

    Example:
        >>> walker = ContentWalker()
        >>> materials = walker.walk("1234", credentials,
        ...                         on_material_ingested=store_one)
    """

    def __init__(
        self,
        client_factory: Optional[ClientFactory] = None,
        crawler: Optional[LinkCrawler] = None,
        extractor: Optional[DocumentExtractor] = None,
        blob_storage: Optional[BlobStorage] = None,
        max_pages: Optional[int] = None,
        max_depth: Optional[int] = None,
    ):
        """
        Initialize the walker.

        Args:
            client_factory: Builds an LMS client from credentials
            crawler: Link crawler for hyperlinks found in item bodies
            extractor: Extractor for bodies and downloaded files
            blob_storage: Where original file binaries go (optional)
            max_pages: Crawl page budget per originating item
            max_depth: Crawl depth per originating item
        """
        crawler_config = get_settings().crawler

        self.client_factory = client_factory or CanvasClient
        self.extractor = extractor or DocumentExtractor()
        self.crawler = crawler or LinkCrawler(extractor=self.extractor)
        self.blob_storage = blob_storage
        self.max_pages = max_pages if max_pages is not None else crawler_config.max_pages
        self.max_depth = max_depth if max_depth is not None else crawler_config.max_depth

    def walk(
        self,
        course_id: int | str,
        credentials: LMSCredentials,
        on_item_read: Optional[ItemReadCallback] = None,
        on_material_ingested: Optional[MaterialCallback] = None,
    ) -> list[Material]:
        """
        Walk a course and collect its Materials.

        Args:
            course_id: LMS course id
            credentials: LMS base URL and token
            on_item_read: Called as (message, index, total) per module item
            on_material_ingested: Called once per new, non-empty Material

        Returns:
            Every Material emitted, in discovery order

        Raises:
            LMSError: If the course's modules cannot be listed
            WalkAbortedError: If a callback asked the walk to stop
        """
        course_id = str(course_id)
        with self.client_factory(credentials) as client:
            walk = _Walk(course_id=course_id, client=client, on_material_ingested=on_material_ingested)

            self._walk_front_page(walk, credentials)

            items = self._collect_items(walk)
            total = len(items)
            for index, (module_name, item) in enumerate(items, 1):
                if on_item_read:
                    on_item_read(f"Reading {item.type or 'item'}: {item.title}", index, total)
                try:
                    self._walk_item(walk, credentials, module_name, item)
                except ABORT_ERRORS:
                    raise
                except Exception as e:
                    walk.items_failed += 1
                    logger.warning(f"Skipping item {item.id} ({item.title!r}) in course {course_id}: {e}")

        logger.info(
            f"Walked course {course_id}: {len(walk.materials)} materials from {total} items "
            f"({walk.items_failed} failed)"
        )
        return walk.materials

    # ── Enumeration ─────────────────────────────────────────────────────────

    def _collect_items(self, walk: _Walk) -> list[tuple[str, LMSModuleItem]]:
        """List (module name, item) pairs across all modules."""
        pairs: list[tuple[str, LMSModuleItem]] = []
        for module in walk.client.list_modules(walk.course_id):
            items = module.items
            if items is None:
                try:
                    items = walk.client.list_module_items(walk.course_id, module.id)
                except LMSAuthenticationError:
                    raise
                except Exception as e:
                    logger.warning(f"Could not list items of module {module.name!r}: {e}")
                    continue
            pairs.extend((module.name, item) for item in items)
        return pairs

    def _walk_front_page(self, walk: _Walk, credentials: LMSCredentials) -> None:
        try:
            page = walk.client.get_front_page(walk.course_id)
        except LMSAuthenticationError:
            raise
        except Exception as e:
            logger.warning(f"Could not read front page of course {walk.course_id}: {e}")
            return
        if page is None:
            return

        material = self._page_material(walk, page, FRONT_PAGE_MODULE)
        self._emit(walk, material)
        self._crawl_links(walk, credentials, page.body or "", page.html_url or "", material.item_id)

    def _walk_item(
        self,
        walk: _Walk,
        credentials: LMSCredentials,
        module_name: str,
        item: LMSModuleItem,
    ) -> None:
        item_type = item.type

        if item_type == "Page" and item.page_url:
            page = walk.client.get_page(walk.course_id, item.page_url)
            material = self._page_material(walk, page, module_name)
            self._emit(walk, material)
            self._crawl_links(walk, credentials, page.body or "", page.html_url or "", material.item_id)

        elif item_type == "Assignment" and item.content_id is not None:
            assignment = walk.client.get_assignment(walk.course_id, item.content_id)
            body = assignment.description or ""
            material = Material(
                item_id=assignment_item_id(walk.course_id, assignment.id),
                content_type=ContentType.ASSIGNMENT,
                text=self.extractor.html_to_text(body),
                metadata=MaterialMetadata(
                    title=assignment.name or item.title,
                    url=assignment.html_url or item.html_url,
                    module_name=module_name,
                    created_at=assignment.created_at,
                    updated_at=assignment.updated_at,
                ),
            )
            self._emit(walk, material)
            self._crawl_links(walk, credentials, body, assignment.html_url or "", material.item_id)

        elif item_type == "File" and item.content_id is not None:
            self._walk_file(walk, module_name, item)

        elif item_type == "ExternalUrl" and item.external_url:
            self._crawl_seeds(
                walk, credentials, [item.external_url], module_item_id(walk.course_id, item.id)
            )

        else:
            logger.debug(f"Ignoring module item {item.id} of type {item_type!r}")

    def _walk_file(self, walk: _Walk, module_name: str, item: LMSModuleItem) -> None:
        lms_file = walk.client.get_file(walk.course_id, item.content_id)
        limits = self.extractor.config
        data = walk.client.download_file(
            lms_file, max_bytes=max(limits.max_pdf_bytes, limits.max_pptx_bytes)
        )
        if not data:
            logger.debug(f"File {lms_file.id} has no downloadable content")
            return

        name = lms_file.filename or lms_file.display_name
        text = self.extractor.extract(data, lms_file.content_type, name)
        if not text:
            logger.debug(f"No text extracted from file {name!r}")
            return

        item_id = file_item_id(walk.course_id, lms_file.id)
        material = Material(
            item_id=item_id,
            content_type=ContentType.FILE,
            text=text,
            metadata=MaterialMetadata(
                title=lms_file.display_name or item.title,
                url=item.html_url or lms_file.url,
                module_name=module_name,
                created_at=lms_file.created_at,
                updated_at=lms_file.updated_at,
                storage_path=self._upload(walk.course_id, item_id, name, data),
            ),
        )
        self._emit(walk, material)

    # ── Link Crawling ───────────────────────────────────────────────────────

    def _crawl_links(
        self,
        walk: _Walk,
        credentials: LMSCredentials,
        html: str,
        base_url: str,
        parent_item_id: str,
    ) -> None:
        if not html:
            return
        links = extract_links(html, base_url or credentials.base_url)
        if links:
            self._crawl_seeds(walk, credentials, links, parent_item_id)

    def _crawl_seeds(
        self,
        walk: _Walk,
        credentials: LMSCredentials,
        seeds: list[str],
        parent_item_id: str,
    ) -> None:
        fresh = [url for url in map(normalize_url, seeds) if url not in walk.crawled_urls]
        if not fresh:
            return

        try:
            pages = self.crawler.crawl(
                fresh,
                max_pages=self.max_pages,
                max_depth=self.max_depth,
                resolver=self._make_resolver(walk, credentials),
            )
        except Exception as e:
            logger.warning(f"Link crawl from {parent_item_id} failed: {e}")
            return

        for page in pages:
            walk.crawled_urls.add(page.url)
            try:
                self._emit(walk, self._linked_material(walk, page, parent_item_id))
            except WalkAbortedError:
                raise
            except Exception as e:
                logger.warning(f"Skipping linked page {page.url}: {e}")

    def _make_resolver(self, walk: _Walk, credentials: LMSCredentials):
        """Resolve links back into the LMS through the API instead of scraping."""
        lms_host = urlparse(credentials.base_url).netloc.lower()

        def resolve(url: str, depth: int) -> Optional[LinkedPage]:
            parsed = urlparse(url)
            if parsed.netloc.lower() != lms_host:
                return None

            page_match = LMS_PAGE_PATH.match(parsed.path)
            if page_match and page_match.group(1) == walk.course_id:
                page = walk.client.get_page(walk.course_id, page_match.group(2))
                return LinkedPage(
                    url=url,
                    title=page.title,
                    text=self.extractor.html_to_text(page.body or ""),
                    depth=depth,
                    lms_item_id=page_item_id(walk.course_id, page),
                    lms_content_type=ContentType.PAGE.value,
                    html=page.body,
                )

            file_match = LMS_FILE_PATH.match(parsed.path)
            if file_match and file_match.group(1) == walk.course_id:
                lms_file = walk.client.get_file(walk.course_id, file_match.group(2))
                limits = self.extractor.config
                data = walk.client.download_file(
                    lms_file, max_bytes=max(limits.max_pdf_bytes, limits.max_pptx_bytes)
                )
                name = lms_file.filename or lms_file.display_name
                text = self.extractor.extract(data or b"", lms_file.content_type, name)
                return LinkedPage(
                    url=url,
                    title=lms_file.display_name or name,
                    text=text or "",
                    depth=depth,
                    content_type=lms_file.content_type or "application/octet-stream",
                    file_bytes=data,
                    file_name=name,
                    lms_item_id=file_item_id(walk.course_id, lms_file.id),
                    lms_content_type=ContentType.FILE.value,
                )

            # Other LMS URLs need a session cookie; scraping them yields login pages
            return LinkedPage(url=url, title="", text="", depth=depth, lms_item_id="")

        return resolve

    def _linked_material(self, walk: _Walk, page: LinkedPage, parent_item_id: str) -> Material:
        if page.lms_item_id:
            item_id = page.lms_item_id
            content_type = ContentType(page.lms_content_type or ContentType.PAGE.value)
        else:
            item_id = generate_link_item_id(walk.course_id, page.url)
            content_type = ContentType.CRAWLED_PAGE

        storage_path = None
        if page.is_document and page.text and item_id not in walk.seen_ids:
            storage_path = self._upload(walk.course_id, item_id, page.file_name, page.file_bytes)

        return Material(
            item_id=item_id,
            content_type=content_type,
            text=page.text,
            metadata=MaterialMetadata(
                title=page.title,
                url=page.url,
                source=MaterialSource.LINKED,
                source_canvas_item_id=parent_item_id,
                storage_path=storage_path,
            ),
        )

    # ── Helpers ─────────────────────────────────────────────────────────────

    def _page_material(self, walk: _Walk, page: LMSPage, module_name: str) -> Material:
        return Material(
            item_id=page_item_id(walk.course_id, page),
            content_type=ContentType.PAGE,
            text=self.extractor.html_to_text(page.body or ""),
            metadata=MaterialMetadata(
                title=page.title,
                url=page.html_url,
                module_name=module_name,
                created_at=page.created_at,
                updated_at=page.updated_at,
                author=page.last_edited_by.display_name if page.last_edited_by else None,
            ),
        )

    def _upload(
        self,
        course_id: str,
        item_id: str,
        file_name: Optional[str],
        data: Optional[bytes],
    ) -> Optional[str]:
        """Store an original binary; failures are logged, never raised."""
        if self.blob_storage is None or not data:
            return None
        try:
            return self.blob_storage.upload(data, storage_path_for(course_id, item_id, file_name, data))
        except Exception as e:
            logger.warning(f"Blob upload failed for {item_id}: {e}")
            return None

    def _emit(self, walk: _Walk, material: Material) -> None:
        """Record a material once per walk and hand it to the callback."""
        if material.is_empty:
            logger.debug(f"Discarding empty material {material.item_id}")
            return
        if material.item_id in walk.seen_ids:
            return
        walk.seen_ids.add(material.item_id)
        walk.materials.append(material)
        if walk.on_material_ingested:
            walk.on_material_ingested(material)
