"""
OpenAI-Compatible Embeddings Module - HTTP ``/embeddings`` endpoints.
=====================================================================

Talks to any OpenAI-compatible embeddings endpoint (OpenAI itself, a
LiteLLM proxy, vLLM, Ollama's OpenAI shim). Proxies disagree on the
response body, so decoding goes through an explicit list of accepted
shapes, tried in order:

1. Error envelope: ``{"error": {...}}`` or ``{"error": "..."}``
2. OpenAI: ``{"data": [{"embedding": [...], "index": 0}, ...]}``
3. Bare list: ``{"data": [[...], [...]]}``
4. Alternate keys: ``{"embeddings": [[...]]}`` or ``{"vectors": [[...]]}``
5. Single vector: ``{"embedding": [...]}``

Anything else is an EmbeddingShapeError naming the keys it saw.
"""

from typing import Any, Optional, Union

import requests
from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, ValidationError

from studysync.indexing.embeddings_base import (
    EmbeddingConfig,
    EmbeddingProvider,
    EmbeddingPurpose,
)
from studysync.shared.errors import (
    EmbeddingAuthenticationError,
    EmbeddingError,
    EmbeddingRateLimitError,
    EmbeddingShapeError,
    EmbeddingTransientError,
)
from studysync.shared.logging import get_logger

logger = get_logger(__name__)

Vector = list[float]

# Numbers only; strings such as "0.1" are not coerced
_RawVector = list[Union[StrictFloat, StrictInt]]


# ─────────────────────────────────────────────────────────────────────────────
# Response Shapes
# ─────────────────────────────────────────────────────────────────────────────


class _Shape(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _ErrorBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str = ""
    type: Optional[str] = None
    code: Optional[Union[str, int]] = None


class ErrorEnvelope(_Shape):
    error: Union[_ErrorBody, str]

    @property
    def message(self) -> str:
        return self.error if isinstance(self.error, str) else self.error.message


class _OpenAIItem(_Shape):
    embedding: _RawVector
    index: Optional[int] = None


class OpenAIShape(_Shape):
    data: list[_OpenAIItem]

    def vectors(self) -> list[Vector]:
        items = self.data
        if all(item.index is not None for item in items):
            items = sorted(items, key=lambda item: item.index)
        return [item.embedding for item in items]


class BareListShape(_Shape):
    data: list[_RawVector]

    def vectors(self) -> list[Vector]:
        return self.data


class EmbeddingsKeyShape(_Shape):
    embeddings: list[_RawVector]

    def vectors(self) -> list[Vector]:
        return self.embeddings


class VectorsKeyShape(_Shape):
    items: list[_RawVector] = Field(alias="vectors")

    def vectors(self) -> list[Vector]:
        return self.items


class SingleVectorShape(_Shape):
    embedding: _RawVector

    def vectors(self) -> list[Vector]:
        return [self.embedding]


# Tried in this order; the first that validates wins
RESPONSE_SHAPES = (
    OpenAIShape,
    BareListShape,
    EmbeddingsKeyShape,
    VectorsKeyShape,
    SingleVectorShape,
)


def classify_error_message(message: str, status_code: Optional[int] = None) -> type[EmbeddingError]:
    """Pick the error type for a provider failure."""
    lowered = message.lower()
    if status_code in (401, 403) or "invalid api key" in lowered or "authentication" in lowered:
        return EmbeddingAuthenticationError
    if status_code == 429 or "rate limit" in lowered or "quota" in lowered:
        return EmbeddingRateLimitError
    if status_code is not None and status_code >= 500:
        return EmbeddingTransientError
    return EmbeddingError


def decode_embedding_response(payload: Any, provider: str = "openai") -> list[Vector]:
    """
    Decode a provider response body into vectors.

    Raises:
        EmbeddingError: For an error envelope (typed by its message)
        EmbeddingShapeError: When no known shape matches
    """
    if not isinstance(payload, dict):
        raise EmbeddingShapeError(
            f"Embedding response is {type(payload).__name__}, expected an object",
            provider=provider,
        )

    if "error" in payload:
        try:
            envelope = ErrorEnvelope.model_validate(payload)
        except ValidationError:
            envelope = ErrorEnvelope(error=str(payload["error"]))
        error_cls = classify_error_message(envelope.message)
        raise error_cls(f"Provider error: {envelope.message}", provider=provider)

    for shape in RESPONSE_SHAPES:
        try:
            return shape.model_validate(payload).vectors()
        except ValidationError:
            continue

    keys = ", ".join(sorted(payload.keys())) or "none"
    raise EmbeddingShapeError(
        f"Unrecognized embedding response shape (keys: {keys})", provider=provider
    )


# ─────────────────────────────────────────────────────────────────────────────
# Provider
# ─────────────────────────────────────────────────────────────────────────────


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    Embedding provider for OpenAI-compatible HTTP endpoints.

    Example:
        >>> config = EmbeddingConfig(provider="openai", model_name="text-embedding-3-small",
        ...                          base_url="http://localhost:4000/v1", api_key=key)
        >>> provider = OpenAIEmbeddingProvider(config)
        >>> vectors = provider.embed_batch(["first", "second"])
    """

    def __init__(self, config: EmbeddingConfig, session: Optional[requests.Session] = None):
        super().__init__(config)
        if not config.api_key:
            raise ValueError(
                "Embedding API key is required. Set EMBEDDING_API_KEY environment variable."
            )
        if not config.base_url:
            raise ValueError("Embedding API base URL is required (EMBEDDING_API_BASE).")

        self._session = session or requests.Session()
        self._endpoint = f"{config.base_url.rstrip('/')}/embeddings"

        logger.debug(
            f"OpenAI-compatible provider configured: model={config.model_name}, "
            f"endpoint={self._endpoint}"
        )

    @property
    def provider_name(self) -> str:
        return "openai"

    def _build_payload(self, texts: list[str], purpose: EmbeddingPurpose) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": self.config.model_name, "input": texts}
        if self.config.purpose_field:
            payload[self.config.purpose_field] = purpose.value
        return payload

    def _embed_request(self, texts: list[str], purpose: EmbeddingPurpose) -> list[list[float]]:
        try:
            response = self._session.post(
                self._endpoint,
                json=self._build_payload(texts, purpose),
                headers={"Authorization": f"Bearer {self.config.api_key}"},
                timeout=self.config.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise EmbeddingTransientError(f"Embedding request failed: {e}", provider="openai") from e
        except requests.RequestException as e:
            raise EmbeddingError(f"Embedding request failed: {e}", provider="openai") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.ok:
            message = response.text[:300]
            if isinstance(payload, dict) and "error" in payload:
                try:
                    message = ErrorEnvelope.model_validate(payload).message or message
                except ValidationError:
                    pass
            error_cls = classify_error_message(message, response.status_code)
            raise error_cls(
                f"Embedding API returned {response.status_code}: {message}", provider="openai"
            )

        if payload is None:
            raise EmbeddingShapeError("Embedding response is not JSON", provider="openai")

        return decode_embedding_response(payload, provider="openai")
