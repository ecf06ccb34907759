"""
LMS Client Module - Canvas REST API client.
===========================================

Thin, typed client over the Canvas REST API (``{base}/api/v1``):
- Bearer-token authentication
- Transparent pagination via the ``Link: <...>; rel="next"`` header
- Typed pydantic records for courses, modules, items, pages,
  assignments and files
- A missing front page (404) is a normal "no front page" result

No retries happen here. Walker-level callers skip items that fail.
"""

from typing import Any, Optional

import requests
from pydantic import BaseModel, Field

from studysync.shared.config import get_settings
from studysync.shared.errors import LMSAPIError, LMSAuthenticationError
from studysync.shared.logging import get_logger

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Records
# ─────────────────────────────────────────────────────────────────────────────


class LMSCredentials(BaseModel):
    """Where the LMS lives and how to authenticate to it."""

    base_url: str
    access_token: str = Field(..., repr=False)

    @property
    def api_base(self) -> str:
        """Root of the versioned REST API."""
        return f"{self.base_url.rstrip('/')}/api/v1"


class _LMSRecord(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}


class LMSCourse(_LMSRecord):
    id: int
    name: str = ""
    course_code: Optional[str] = None
    workflow_state: Optional[str] = None


class LMSModuleItem(_LMSRecord):
    id: int
    title: str = ""
    type: str = ""
    content_id: Optional[int] = None
    page_url: Optional[str] = None
    external_url: Optional[str] = None
    html_url: Optional[str] = None
    url: Optional[str] = None


class LMSModule(_LMSRecord):
    id: int
    name: str = ""
    position: Optional[int] = None
    items: Optional[list[LMSModuleItem]] = None


class LMSUser(_LMSRecord):
    display_name: str = ""


class LMSPage(_LMSRecord):
    page_id: Optional[int] = None
    url: str = ""
    title: str = ""
    body: Optional[str] = None
    html_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    last_edited_by: Optional[LMSUser] = None

    @property
    def stable_id(self) -> str:
        """Numeric page id when known, otherwise the URL slug."""
        return str(self.page_id) if self.page_id is not None else self.url


class LMSAssignment(_LMSRecord):
    id: int
    name: str = ""
    course_id: Optional[int] = None
    description: Optional[str] = None
    html_url: Optional[str] = None
    due_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class LMSFile(_LMSRecord):
    id: int
    display_name: str = ""
    filename: str = ""
    url: Optional[str] = None
    content_type: Optional[str] = Field(default=None, alias="content-type")
    size: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ─────────────────────────────────────────────────────────────────────────────
# Client
# ─────────────────────────────────────────────────────────────────────────────


class CanvasClient:
    """
    Canvas REST API client.

    Example:
        >>> client = CanvasClient(LMSCredentials(base_url=url, access_token=token))
        >>> for module in client.list_modules(1234):
        ...     print(module.name, len(module.items or []))
    """

    def __init__(
        self,
        credentials: LMSCredentials,
        timeout: Optional[int] = None,
        per_page: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        lms_config = get_settings().lms

        self.credentials = credentials
        self.timeout = timeout if timeout is not None else lms_config.timeout
        self.per_page = per_page if per_page is not None else lms_config.per_page

        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {credentials.access_token}",
                "Accept": "application/json",
                "User-Agent": lms_config.user_agent,
            }
        )

    @property
    def auth_headers(self) -> dict[str, str]:
        """Headers that authenticate a raw download against the LMS."""
        return {"Authorization": f"Bearer {self.credentials.access_token}"}

    def _url(self, path: str) -> str:
        return f"{self.credentials.api_base}/{path.lstrip('/')}"

    def _request(self, url: str, params: Optional[dict[str, Any]] = None) -> requests.Response:
        """GET a URL and raise typed errors on failure."""
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise LMSAPIError(f"LMS request failed: {e}", url=url) from e

        if response.status_code == 401:
            raise LMSAuthenticationError(
                "LMS rejected the access token", status_code=401, url=url
            )
        if not response.ok:
            raise LMSAPIError(
                f"LMS API error {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                url=url,
            )
        return response

    def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        return self._request(self._url(path), params=params).json()

    def _get_all(self, path: str, params: Optional[dict[str, Any]] = None) -> list[Any]:
        """Fetch every page of a list endpoint by following ``rel="next"``."""
        query = {"per_page": self.per_page}
        if params:
            query.update(params)

        results: list[Any] = []
        url: Optional[str] = self._url(path)
        first = True
        while url:
            response = self._request(url, params=query if first else None)
            first = False
            page = response.json()
            if isinstance(page, list):
                results.extend(page)
            else:
                results.append(page)
            url = response.links.get("next", {}).get("url")
        return results

    # ── Courses ─────────────────────────────────────────────────────────────

    def list_courses(self) -> list[LMSCourse]:
        """Active or completed courses the token can see."""
        raw = self._get_all("courses", {"enrollment_state": "active"})
        courses = [LMSCourse.model_validate(c) for c in raw if isinstance(c, dict) and "id" in c]
        return [
            c for c in courses
            if c.workflow_state in (None, "available", "completed")
        ]

    def list_assignments(self, course_id: int | str) -> list[LMSAssignment]:
        """All assignments for a course."""
        raw = self._get_all(f"courses/{course_id}/assignments")
        return [LMSAssignment.model_validate(a) for a in raw]

    # ── Modules ─────────────────────────────────────────────────────────────

    def list_modules(self, course_id: int | str) -> list[LMSModule]:
        """Modules of a course, with items inlined when Canvas provides them."""
        raw = self._get_all(f"courses/{course_id}/modules", {"include[]": "items"})
        return [LMSModule.model_validate(m) for m in raw]

    def list_module_items(self, course_id: int | str, module_id: int | str) -> list[LMSModuleItem]:
        """Items of one module."""
        raw = self._get_all(f"courses/{course_id}/modules/{module_id}/items")
        return [LMSModuleItem.model_validate(i) for i in raw]

    # ── Content ─────────────────────────────────────────────────────────────

    def get_page(self, course_id: int | str, page_url: str) -> LMSPage:
        """A wiki page by slug or id."""
        return LMSPage.model_validate(self._get(f"courses/{course_id}/pages/{page_url}"))

    def get_front_page(self, course_id: int | str) -> Optional[LMSPage]:
        """The course front page, or None when the course has none."""
        try:
            return LMSPage.model_validate(self._get(f"courses/{course_id}/front_page"))
        except LMSAPIError as e:
            if e.status_code == 404:
                return None
            raise

    def get_assignment(self, course_id: int | str, assignment_id: int | str) -> LMSAssignment:
        """One assignment."""
        return LMSAssignment.model_validate(
            self._get(f"courses/{course_id}/assignments/{assignment_id}")
        )

    def get_file(self, course_id: int | str, file_id: int | str) -> LMSFile:
        """File metadata, including its signed download URL."""
        return LMSFile.model_validate(self._get(f"courses/{course_id}/files/{file_id}"))

    def download_file(self, file: LMSFile, max_bytes: Optional[int] = None) -> Optional[bytes]:
        """
        Download a file's bytes.

        Returns None when the file has no URL or exceeds ``max_bytes``.
        """
        if not file.url:
            return None
        if max_bytes is not None and file.size is not None and file.size > max_bytes:
            logger.debug(f"File {file.id} skipped: {file.size} bytes exceeds limit")
            return None

        response = self._request(file.url)
        data = response.content
        if max_bytes is not None and len(data) > max_bytes:
            return None
        return data

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()

    def __enter__(self) -> "CanvasClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        self.close()
