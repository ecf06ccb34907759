"""
Errors Module - Exception hierarchy for the ingestion pipeline.
===============================================================

Every error raised on purpose by StudySync derives from StudySyncError:

- LMSError: LMS API failures (HTTP errors, bad credentials)
- EmbeddingError: provider failures, split by how callers react to them
  (retry, fail over, abort, reject the batch)
- SyncError: sync state machine and runner misuse

Extraction and crawl failures never raise; they yield "no material".
"""

from typing import Optional


class StudySyncError(Exception):
    """Base exception for all StudySync errors."""

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


# ─────────────────────────────────────────────────────────────────────────────
# LMS Errors
# ─────────────────────────────────────────────────────────────────────────────


class LMSError(StudySyncError):
    """Raised when the LMS API cannot be used."""


class LMSAPIError(LMSError):
    """Raised when the LMS API returns a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: str = ""):
        super().__init__(message, detail=url or None)
        self.status_code = status_code
        self.url = url


class LMSAuthenticationError(LMSAPIError):
    """Raised when the LMS rejects the access token (401)."""


class WalkAbortedError(StudySyncError):
    """Raised from a walk callback to end the course walk at once."""


# ─────────────────────────────────────────────────────────────────────────────
# Embedding Errors
# ─────────────────────────────────────────────────────────────────────────────


class EmbeddingError(StudySyncError):
    """Base class for embedding provider failures."""

    def __init__(self, message: str, provider: str = "", detail: Optional[str] = None):
        super().__init__(message, detail=detail)
        self.provider = provider


class EmbeddingRateLimitError(EmbeddingError):
    """Provider signalled rate limiting (HTTP 429, RESOURCE_EXHAUSTED)."""


class EmbeddingTransientError(EmbeddingError):
    """Timeout, connection failure or 5xx from the provider."""


class EmbeddingAuthenticationError(EmbeddingError):
    """Provider rejected the credentials. Never retried."""


class EmbeddingShapeError(EmbeddingError):
    """Provider response is malformed or has the wrong dimensionality."""


# Errors that are worth retrying against the same provider
RETRYABLE_EMBEDDING_ERRORS = (EmbeddingRateLimitError, EmbeddingTransientError)


# ─────────────────────────────────────────────────────────────────────────────
# Sync Errors
# ─────────────────────────────────────────────────────────────────────────────


class SyncError(StudySyncError):
    """Base class for sync state errors."""


class InvalidTransitionError(SyncError):
    """Raised when a sync status change is not allowed from the current state."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Invalid sync transition: {current} -> {target}")
        self.current = current
        self.target = target


class SyncAlreadyRunningError(SyncError):
    """Raised when a sync is started while one is active for the tenant."""

    def __init__(self, tenant_id: str):
        super().__init__(f"A sync is already running for tenant '{tenant_id}'")
        self.tenant_id = tenant_id
