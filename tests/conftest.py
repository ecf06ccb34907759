"""
Pytest Configuration and Fixtures.
===================================

Shared fixtures for all test modules:
- Temporary directories
- A deterministic embedding provider with scriptable failures
- An in-memory chunk store
- A fake LMS client and an offline HTTP session for the crawler
"""

import hashlib
import tempfile
from pathlib import Path
from typing import Any, Generator, Optional

import pytest


# ─────────────────────────────────────────────────────────────────────────────
# Path Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_path(project_root: Path) -> Path:
    """Get the config file path."""
    return project_root / "config" / "settings.yaml"


# ─────────────────────────────────────────────────────────────────────────────
# Sample Data Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def sample_html() -> str:
    """Sample HTML page with layout chrome around the content."""
    return """
    <!DOCTYPE html>
    <html>
    <head><title>Week 3 - Binary Search Trees</title></head>
    <body>
        <nav>Home | Courses | Grades</nav>
        <h1>Binary Search Trees</h1>
        <p>A binary search tree keeps its keys in sorted order, so lookup,
        insertion and deletion take time proportional to the height of the tree.</p>
        <script>trackPageView();</script>
        <footer>Copyright University</footer>
    </body>
    </html>
    """


def make_pptx(slides: list[str]) -> bytes:
    """Build a minimal PPTX archive whose slides each hold one text run."""
    import io
    import zipfile

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("[Content_Types].xml", "<Types/>")
        for number, text in enumerate(slides, start=1):
            archive.writestr(
                f"ppt/slides/slide{number}.xml",
                '<p:sld xmlns:p="http://schemas.openxmlformats.org/presentationml/2006/main" '
                'xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main">'
                f"<p:cSld><p:spTree><p:sp><p:txBody><a:p><a:r><a:t>{text}</a:t></a:r></a:p>"
                "</p:txBody></p:sp></p:spTree></p:cSld></p:sld>",
            )
    return buffer.getvalue()


@pytest.fixture
def pptx_bytes() -> bytes:
    """A two-slide deck."""
    return make_pptx(
        [
            "Recursion breaks a problem into smaller copies of itself",
            "Every recursive function needs a base case",
        ]
    )


def make_material(item_id: str, text: str, title: str = "Notes"):
    from studysync.shared.schemas import ContentType, Material, MaterialMetadata

    return Material(
        item_id=item_id,
        content_type=ContentType.PAGE,
        text=text,
        metadata=MaterialMetadata(title=title, url=f"https://lms.test/{item_id}"),
    )


def numbered_words(count: int, prefix: str = "word") -> str:
    """Words of nine characters each, e.g. ``word00001 word00002``."""
    return " ".join(f"{prefix}{i:05d}"[:9] for i in range(1, count + 1))


# ─────────────────────────────────────────────────────────────────────────────
# Embedding Fakes
# ─────────────────────────────────────────────────────────────────────────────

FAKE_DIMENSIONS = 8


def fake_vector(text: str, dimensions: int = FAKE_DIMENSIONS) -> list[float]:
    """Deterministic unit-ish vector derived from the text."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [(digest[i] + 1) / 256.0 for i in range(dimensions)]


def make_fake_provider(
    failures: Optional[dict[int, Exception]] = None,
    batch_size: int = 4,
    max_retries: int = 0,
    dimensions: int = FAKE_DIMENSIONS,
):
    """
    Build an EmbeddingProvider whose backend is a local function.

    ``failures`` maps a 1-based request number to the exception that
    request raises.
    """
    from studysync.indexing.embeddings_base import EmbeddingConfig, EmbeddingProvider

    class FakeEmbeddingProvider(EmbeddingProvider):
        def __init__(self, config: EmbeddingConfig):
            super().__init__(config)
            self.failures = dict(failures or {})
            self.requests: list[list[str]] = []

        @property
        def provider_name(self) -> str:
            return "fake"

        @property
        def embedded_texts(self) -> list[str]:
            return [text for batch in self.requests for text in batch]

        def _embed_request(self, texts, purpose):
            self.requests.append(list(texts))
            error = self.failures.get(len(self.requests))
            if error is not None:
                raise error
            return [fake_vector(text, dimensions) for text in texts]

    config = EmbeddingConfig(
        provider="fake",
        model_name="fake-model",
        dimensions=dimensions,
        batch_size=batch_size,
        max_retries=max_retries,
        retry_min_wait=0.0,
        retry_max_wait=0.0,
    )
    return FakeEmbeddingProvider(config)


@pytest.fixture
def fake_provider():
    """Deterministic provider that never fails."""
    return make_fake_provider()


# ─────────────────────────────────────────────────────────────────────────────
# Chunk Store Fake
# ─────────────────────────────────────────────────────────────────────────────


class InMemoryChunkStore:
    """Dict-backed stand-in for ChromaChunkStore."""

    def __init__(self):
        self.rows: dict[str, Any] = {}
        self.inserted_ids: list[str] = []

    def count(self, course_id: Optional[str] = None) -> int:
        if course_id is None:
            return len(self.rows)
        return sum(1 for c in self.rows.values() if c.course_id == course_id)

    def add_chunks(self, chunks):
        from studysync.indexing.chunk_store import AddResult

        inserted = 0
        for chunk in chunks:
            if not chunk.embedding:
                raise ValueError(f"Chunk without embedding: {chunk.chunk_id}")
            if chunk.chunk_id in self.rows:
                continue
            self.rows[chunk.chunk_id] = chunk.model_copy()
            self.inserted_ids.append(chunk.chunk_id)
            inserted += 1
        return AddResult(inserted, len(chunks) - inserted)

    def get_material_chunks(self, course_id: str, material_item_id: str) -> dict[str, str]:
        return {
            chunk_id: chunk.text
            for chunk_id, chunk in self.rows.items()
            if chunk.course_id == course_id and chunk.material_item_id == material_item_id
        }

    def delete_chunks(self, chunk_ids: list[str]) -> int:
        for chunk_id in chunk_ids:
            self.rows.pop(chunk_id, None)
        return len(chunk_ids)

    def delete_material_chunks(self, course_id: str, material_item_id: str) -> int:
        return self.delete_chunks(list(self.get_material_chunks(course_id, material_item_id)))

    def delete_course(self, course_id: str) -> int:
        ids = [i for i, c in self.rows.items() if c.course_id == course_id]
        return self.delete_chunks(ids)

    def material_ids(self, course_id: str, material_item_id: str) -> list[str]:
        return sorted(
            self.get_material_chunks(course_id, material_item_id),
            key=lambda chunk_id: int(chunk_id.rsplit("-", 1)[1]),
        )


@pytest.fixture
def chunk_store() -> InMemoryChunkStore:
    return InMemoryChunkStore()


@pytest.fixture
def hash_ledger(temp_dir: Path):
    from studysync.indexing.hash_ledger import ContentHashLedger

    return ContentHashLedger(temp_dir / "hashes")


@pytest.fixture
def small_splitter():
    """Splitter that turns ``numbered_words(2 * n)`` into n chunks."""
    from studysync.ingestion.chunker import ChunkerConfig, TextSplitter

    return TextSplitter(ChunkerConfig(chunk_size=20, chunk_overlap=0))


# ─────────────────────────────────────────────────────────────────────────────
# HTTP Fakes
# ─────────────────────────────────────────────────────────────────────────────


class FakeResponse:
    """The subset of requests.Response the crawler reads."""

    def __init__(
        self,
        url: str,
        body: bytes = b"",
        content_type: str = "text/html; charset=utf-8",
        status_code: int = 200,
    ):
        self.url = url
        self.status_code = status_code
        self.ok = status_code < 400
        self.headers = {"Content-Type": content_type}
        self.encoding = "utf-8"
        self._body = body

    def iter_content(self, chunk_size: int = 1):
        for i in range(0, len(self._body), chunk_size):
            yield self._body[i : i + chunk_size]

    def close(self) -> None:
        pass


class FakeSession:
    """Serves canned responses by URL; anything else is a 404."""

    def __init__(self, pages: Optional[dict[str, FakeResponse]] = None):
        self.pages = pages or {}
        self.requested: list[str] = []

    def get(self, url: str, **kwargs) -> FakeResponse:
        self.requested.append(url)
        return self.pages.get(url) or FakeResponse(url, status_code=404)

    def close(self) -> None:
        pass


def html_page(url: str, title: str, text: str, links: tuple[str, ...] = ()) -> FakeResponse:
    anchors = "".join(f'<a href="{link}">link</a> ' for link in links)
    body = f"<html><head><title>{title}</title></head><body><p>{text}</p>{anchors}</body></html>"
    return FakeResponse(url, body.encode("utf-8"))


# ─────────────────────────────────────────────────────────────────────────────
# LMS Fakes
# ─────────────────────────────────────────────────────────────────────────────

LMS_BASE_URL = "https://lms.test"


@pytest.fixture
def credentials():
    from studysync.ingestion.lms_client import LMSCredentials

    return LMSCredentials(base_url=LMS_BASE_URL, access_token="token")


class FakeLMSClient:
    """
    In-memory LMS keyed by course id.

    ``courses`` is a list of dicts with ``id`` and ``name``; ``content``
    maps a course id (str) to front page, modules, pages, assignments and
    files in LMS JSON form.
    """

    def __init__(self, courses: list[dict], content: Optional[dict[str, dict]] = None):
        self.courses = courses
        self.content = content or {}
        self.module_calls: list[str] = []
        self.errors: dict[str, Exception] = {}
        self.opened = 0
        self.closed = 0

    def __call__(self, credentials) -> "FakeLMSClient":
        return self

    def __enter__(self) -> "FakeLMSClient":
        self.opened += 1
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.closed += 1

    def _course(self, course_id) -> dict:
        return self.content.get(str(course_id), {})

    def list_courses(self):
        from studysync.ingestion.lms_client import LMSCourse

        return [LMSCourse.model_validate(c) for c in self.courses]

    def list_assignments(self, course_id):
        from studysync.ingestion.lms_client import LMSAssignment

        return [
            LMSAssignment.model_validate(a)
            for a in self._course(course_id).get("assignments", {}).values()
        ]

    def list_modules(self, course_id):
        from studysync.ingestion.lms_client import LMSModule

        self.module_calls.append(str(course_id))
        error = self.errors.get(str(course_id))
        if error is not None:
            raise error
        return [LMSModule.model_validate(m) for m in self._course(course_id).get("modules", [])]

    def list_module_items(self, course_id, module_id):
        return []

    def get_front_page(self, course_id):
        from studysync.ingestion.lms_client import LMSPage

        page = self._course(course_id).get("front_page")
        return LMSPage.model_validate(page) if page else None

    def get_page(self, course_id, page_url):
        from studysync.ingestion.lms_client import LMSPage
        from studysync.shared.errors import LMSAPIError

        page = self._course(course_id).get("pages", {}).get(page_url)
        if page is None:
            raise LMSAPIError("not found", status_code=404)
        return LMSPage.model_validate(page)

    def get_assignment(self, course_id, assignment_id):
        from studysync.ingestion.lms_client import LMSAssignment
        from studysync.shared.errors import LMSAPIError

        assignment = self._course(course_id).get("assignments", {}).get(int(assignment_id))
        if assignment is None:
            raise LMSAPIError("not found", status_code=404)
        return LMSAssignment.model_validate(assignment)

    def get_file(self, course_id, file_id):
        from studysync.ingestion.lms_client import LMSFile

        meta = self._course(course_id)["files"][int(file_id)]
        return LMSFile.model_validate({k: v for k, v in meta.items() if k != "data"})

    def download_file(self, file, max_bytes=None):
        for course in self.content.values():
            meta = course.get("files", {}).get(file.id)
            if meta is not None:
                return meta["data"]
        return None


def simple_course(course_id: int, pages: int = 2) -> dict:
    """Course content with one module of ``pages`` wiki pages."""
    page_records = {
        f"page-{n}": {
            "page_id": course_id * 100 + n,
            "url": f"page-{n}",
            "title": f"Lecture {n}",
            "body": f"<p>Lecture {n} of course {course_id} covers topic {n} in depth.</p>",
            "html_url": f"{LMS_BASE_URL}/courses/{course_id}/pages/page-{n}",
        }
        for n in range(1, pages + 1)
    }
    items = [
        {"id": course_id * 1000 + n, "title": f"Lecture {n}", "type": "Page", "page_url": f"page-{n}"}
        for n in range(1, pages + 1)
    ]
    return {
        "modules": [{"id": course_id, "name": "Week 1", "items": items}],
        "pages": page_records,
        "assignments": {
            course_id: {
                "id": course_id,
                "name": f"Homework {course_id}",
                "description": "<p>Solve the exercises.</p>",
                "due_at": "2026-11-01T23:59:00Z",
            }
        },
    }


@pytest.fixture
def fake_lms() -> FakeLMSClient:
    """Five courses with two lecture pages each."""
    courses = [{"id": cid, "name": f"Course {cid}", "course_code": f"C{cid}"} for cid in range(1, 6)]
    return FakeLMSClient(courses, {str(cid): simple_course(cid) for cid in range(1, 6)})


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "requires_api: marks tests that require API keys"
    )


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset global singletons between tests."""
    import studysync.indexing.chunk_store as chunk_store_module
    import studysync.indexing.embeddings_base as embeddings_module
    import studysync.ingestion.extractor as extractor_module
    from studysync.shared.config import get_settings

    chunk_store_module._chunk_store = None
    embeddings_module.clear_provider_cache()
    extractor_module._extractor = None
    get_settings.cache_clear()

    yield

    chunk_store_module._chunk_store = None
    embeddings_module.clear_provider_cache()
    extractor_module._extractor = None
    get_settings.cache_clear()
