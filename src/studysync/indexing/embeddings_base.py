"""
Embeddings Base Module - Provider abstraction with batching and retries.
========================================================================

Defines the abstract base class shared by every embedding backend and the
behavior they all inherit:
- Texts truncated to a safe maximum length before sending
- Requests split into fixed-size batches
- Rate-limit and transient errors retried with exponential backoff
- Authentication errors propagated immediately, never retried
- Every returned vector validated for shape

Backends are built from an explicit EmbeddingConfig; none of them read
global settings. FallbackEmbeddingProvider pairs a primary with a
secondary (another key or another backend) for when the primary gives up.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from studysync.shared.config import Settings, get_settings
from studysync.shared.errors import (
    RETRYABLE_EMBEDDING_ERRORS,
    EmbeddingError,
    EmbeddingShapeError,
)
from studysync.shared.logging import get_logger

logger = get_logger(__name__)

PROVIDER_NAMES = ("sbert", "gemini", "openai")


class EmbeddingPurpose(str, Enum):
    """What the vectors are for; some providers embed queries differently."""

    DOCUMENT = "document"
    QUERY = "query"


# ─────────────────────────────────────────────────────────────────────────────
# Provider Configuration
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class EmbeddingConfig:
    """Everything a provider needs, passed in explicitly."""

    provider: str
    model_name: str
    dimensions: Optional[int] = None
    api_key: str = field(default="", repr=False)
    secondary_api_key: str = field(default="", repr=False)
    base_url: str = ""
    batch_size: int = 32
    max_text_chars: int = 8000
    max_retries: int = 3
    retry_min_wait: float = 1.0
    retry_max_wait: float = 30.0
    timeout: int = 15
    device: str = "auto"
    purpose_field: Optional[str] = None

    def with_api_key(self, api_key: str) -> "EmbeddingConfig":
        """Copy of this config using another key and no secondary."""
        return replace(self, api_key=api_key, secondary_api_key="")

    @classmethod
    def from_settings(
        cls,
        provider_name: Optional[str] = None,
        settings: Optional[Settings] = None,
    ) -> "EmbeddingConfig":
        """
        Build a provider config from application settings.

        Args:
            provider_name: "sbert", "gemini" or "openai" (configured default if None)
            settings: Settings to read (global settings if None)

        Raises:
            ValueError: If the provider name is unknown
        """
        settings = settings or get_settings()
        name = (provider_name or settings.get_effective_embedding_provider()).lower().strip()
        emb = settings.embeddings

        common: dict[str, Any] = dict(
            batch_size=emb.batch_size,
            max_text_chars=emb.max_text_chars,
            max_retries=emb.max_retries,
            retry_min_wait=emb.retry_min_wait,
            retry_max_wait=emb.retry_max_wait,
        )

        if name == "sbert":
            return cls(
                provider="sbert",
                model_name=emb.sbert.model_name,
                dimensions=emb.sbert.dimensions,
                device=emb.sbert.device,
                **common,
            )
        if name == "gemini":
            return cls(
                provider="gemini",
                model_name=emb.gemini.model_name,
                dimensions=emb.gemini.dimensions,
                api_key=settings.gemini_api_key,
                secondary_api_key=settings.gemini_secondary_api_key,
                **common,
            )
        if name == "openai":
            return cls(
                provider="openai",
                model_name=emb.openai.model_name,
                dimensions=emb.openai.dimensions,
                api_key=settings.embedding_api_key,
                secondary_api_key=settings.embedding_secondary_api_key,
                base_url=settings.get_effective_embedding_base_url(),
                timeout=emb.openai.timeout,
                purpose_field=emb.openai.purpose_field,
                **common,
            )

        raise ValueError(
            f"Unknown embedding provider: {name}. Valid options: {', '.join(PROVIDER_NAMES)}"
        )


# ─────────────────────────────────────────────────────────────────────────────
# Shape Validation
# ─────────────────────────────────────────────────────────────────────────────


def validate_vectors(
    vectors: Any,
    expected_count: int,
    expected_dimensions: Optional[int] = None,
    provider: str = "",
) -> list[list[float]]:
    """
    Check a provider response before anyone stores it.

    Vectors must be one per input, non-empty, numeric, finite, of one
    dimensionality, and match the declared dimensionality when known.

    Raises:
        EmbeddingShapeError: On any violation
    """
    if not isinstance(vectors, list) or len(vectors) != expected_count:
        got = len(vectors) if isinstance(vectors, list) else type(vectors).__name__
        raise EmbeddingShapeError(
            f"Expected {expected_count} vectors, got {got}", provider=provider
        )

    clean: list[list[float]] = []
    width: Optional[int] = None
    for i, vector in enumerate(vectors):
        if not isinstance(vector, (list, tuple)) or not vector:
            raise EmbeddingShapeError(f"Vector {i} is empty or not a list", provider=provider)
        row: list[float] = []
        for value in vector:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise EmbeddingShapeError(f"Vector {i} has a non-numeric value", provider=provider)
            if not math.isfinite(value):
                raise EmbeddingShapeError(f"Vector {i} has a non-finite value", provider=provider)
            row.append(float(value))
        if width is None:
            width = len(row)
        elif len(row) != width:
            raise EmbeddingShapeError(
                f"Mixed dimensionality in batch: {width} and {len(row)}", provider=provider
            )
        clean.append(row)

    if expected_dimensions and width is not None and width != expected_dimensions:
        raise EmbeddingShapeError(
            f"Expected {expected_dimensions} dimensions, got {width}", provider=provider
        )
    return clean


# ─────────────────────────────────────────────────────────────────────────────
# Abstract Base Class
# ─────────────────────────────────────────────────────────────────────────────


class EmbeddingProvider(ABC):
    """
    Abstract base class for embedding providers.

    Implementations provide ``_embed_request()``: one call to the backend
    for one batch, raising the typed errors from ``studysync.shared.errors``.
    Truncation, batching, retries and validation live here.

    Properties:
    - provider_name: Provider identifier (sbert, gemini, openai)
    - model_name: Name of the embedding model
    - dimensions: Embedding vector dimensions (None until known)
    """

    def __init__(self, config: EmbeddingConfig):
        self.config = config
        self._dimensions: Optional[int] = config.dimensions

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name identifier."""

    @property
    def model_name(self) -> str:
        """Get the model name being used."""
        return self.config.model_name

    @property
    def dimensions(self) -> Optional[int]:
        """Get the embedding vector dimensions."""
        return self._dimensions

    @abstractmethod
    def _embed_request(self, texts: list[str], purpose: EmbeddingPurpose) -> list[list[float]]:
        """
        Embed one batch with a single backend call.

        Raises:
            EmbeddingRateLimitError: Backend asked us to slow down
            EmbeddingTransientError: Timeout, connection error, 5xx
            EmbeddingAuthenticationError: Bad or missing credentials
            EmbeddingShapeError: Response could not be decoded
        """

    def prepare_text(self, text: str) -> str:
        """Truncate a text to the provider's safe length."""
        text = text or ""
        if len(text) > self.config.max_text_chars:
            return text[: self.config.max_text_chars]
        return text

    def embed_batch(
        self,
        texts: list[str],
        purpose: EmbeddingPurpose = EmbeddingPurpose.DOCUMENT,
    ) -> list[list[float]]:
        """
        Embed texts, one vector per input, in order.

        Args:
            texts: Texts to embed
            purpose: Indexing (document) or searching (query)

        Returns:
            List of embedding vectors aligned with ``texts``

        Raises:
            EmbeddingError: When a batch fails after retries (or at once,
                for authentication and shape errors)
        """
        if not texts:
            return []

        prepared = [self.prepare_text(t) for t in texts]
        vectors: list[list[float]] = []
        batch_size = max(1, self.config.batch_size)

        for i in range(0, len(prepared), batch_size):
            batch = prepared[i : i + batch_size]
            raw = self._embed_with_retry(batch, purpose)
            batch_vectors = validate_vectors(
                raw, len(batch), self._dimensions, provider=self.provider_name
            )
            if self._dimensions is None:
                self._dimensions = len(batch_vectors[0])
            vectors.extend(batch_vectors)

        return vectors

    def _embed_with_retry(self, texts: list[str], purpose: EmbeddingPurpose) -> list[list[float]]:
        """Call the backend, retrying rate limits and transient failures."""

        @retry(
            retry=retry_if_exception_type(RETRYABLE_EMBEDDING_ERRORS),
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.config.retry_min_wait,
                min=self.config.retry_min_wait,
                max=self.config.retry_max_wait,
            ),
            before_sleep=lambda retry_state: logger.warning(
                f"{self.provider_name} embedding retry {retry_state.attempt_number}/"
                f"{self.config.max_retries}: {retry_state.outcome.exception()}"
            ),
            reraise=True,
        )
        def _request_with_retry() -> list[list[float]]:
            return self._embed_request(texts, purpose)

        return _request_with_retry()

    def embed_text(self, text: str) -> list[float]:
        """Embed a single document text."""
        return self.embed_batch([text])[0]

    def embed_query(self, query: str) -> list[float]:
        """Embed a search query."""
        return self.embed_batch([query], purpose=EmbeddingPurpose.QUERY)[0]

    def get_info(self) -> dict:
        """Get provider information."""
        return {
            "provider": self.provider_name,
            "model": self.model_name,
            "dimensions": self.dimensions,
            "batch_size": self.config.batch_size,
            "max_retries": self.config.max_retries,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Fallback Provider
# ─────────────────────────────────────────────────────────────────────────────


class FallbackEmbeddingProvider(EmbeddingProvider):
    """
    Primary provider with a secondary used when the primary gives up.

    Only rate-limit and transient failures fail over, after the primary has
    exhausted its own retries. Authentication and shape errors propagate.

    Example:
        >>> provider = FallbackEmbeddingProvider(primary, secondary)
        >>> vectors = provider.embed_batch(texts)
    """

    def __init__(self, primary: EmbeddingProvider, secondary: EmbeddingProvider):
        if (
            primary.dimensions is not None
            and secondary.dimensions is not None
            and primary.dimensions != secondary.dimensions
        ):
            raise ValueError(
                f"Fallback provider dimensions differ: "
                f"{primary.dimensions} vs {secondary.dimensions}"
            )
        super().__init__(primary.config)
        self.primary = primary
        self.secondary = secondary

    @property
    def provider_name(self) -> str:
        return self.primary.provider_name

    @property
    def dimensions(self) -> Optional[int]:
        return self.primary.dimensions or self.secondary.dimensions

    def _embed_request(self, texts: list[str], purpose: EmbeddingPurpose) -> list[list[float]]:
        return self.primary._embed_request(texts, purpose)

    def _embed_with_retry(self, texts: list[str], purpose: EmbeddingPurpose) -> list[list[float]]:
        try:
            return self.primary._embed_with_retry(texts, purpose)
        except RETRYABLE_EMBEDDING_ERRORS as e:
            logger.warning(
                f"Primary embedding provider {self.primary.provider_name} gave up ({e}); "
                f"falling back to {self.secondary.provider_name}"
            )
            return self.secondary._embed_with_retry(texts, purpose)

    def get_info(self) -> dict:
        info = super().get_info()
        info["fallback"] = self.secondary.get_info()
        return info


# ─────────────────────────────────────────────────────────────────────────────
# Provider Factory
# ─────────────────────────────────────────────────────────────────────────────


_provider_cache: dict[str, EmbeddingProvider] = {}


def create_provider(config: EmbeddingConfig) -> EmbeddingProvider:
    """
    Instantiate the backend named by ``config.provider``.

    Raises:
        ValueError: If the provider name is invalid
    """
    name = config.provider.lower().strip()

    if name == "sbert":
        from studysync.indexing.embeddings_sbert import SBERTEmbeddingProvider
        return SBERTEmbeddingProvider(config)

    if name == "gemini":
        from studysync.indexing.embeddings_gemini import GeminiEmbeddingProvider
        return GeminiEmbeddingProvider(config)

    if name == "openai":
        from studysync.indexing.embeddings_openai import OpenAIEmbeddingProvider
        return OpenAIEmbeddingProvider(config)

    raise ValueError(
        f"Unknown embedding provider: {name}. Valid options: {', '.join(PROVIDER_NAMES)}"
    )


def build_provider(
    config: EmbeddingConfig,
    fallback_config: Optional[EmbeddingConfig] = None,
) -> EmbeddingProvider:
    """
    Build a provider, wrapped with a fallback when one is configured.

    A secondary API key on ``config`` takes precedence over a separate
    fallback provider.
    """
    primary = create_provider(config)

    if config.secondary_api_key:
        secondary = create_provider(config.with_api_key(config.secondary_api_key))
        return FallbackEmbeddingProvider(primary, secondary)

    if fallback_config is not None:
        return FallbackEmbeddingProvider(primary, create_provider(fallback_config))

    return primary


def get_embedding_provider(
    provider_name: Optional[str] = None,
    use_cache: bool = True,
) -> EmbeddingProvider:
    """
    Get an embedding provider instance configured from settings.

    Args:
        provider_name: "sbert", "gemini" or "openai". If None, uses config.
        use_cache: Whether to cache and reuse provider instances

    Returns:
        EmbeddingProvider instance (possibly with fallback)

    Raises:
        ValueError: If provider name is invalid

    Example:
        >>> provider = get_embedding_provider()  # Uses config default
        >>> vectors = provider.embed_batch(["text1", "text2"])
    """
    settings = get_settings()
    config = EmbeddingConfig.from_settings(provider_name, settings)
    cache_key = config.provider

    if use_cache and cache_key in _provider_cache:
        return _provider_cache[cache_key]

    fallback_config = None
    fallback_name = settings.embeddings.fallback_provider
    if fallback_name and fallback_name.lower() != config.provider:
        fallback_config = EmbeddingConfig.from_settings(fallback_name, settings)

    provider = build_provider(config, fallback_config)

    if use_cache:
        _provider_cache[cache_key] = provider

    logger.info(
        f"Initialized embedding provider: {provider.provider_name} "
        f"(model={provider.model_name}, dims={provider.dimensions})"
    )
    return provider


def clear_provider_cache() -> None:
    """Clear the provider cache."""
    _provider_cache.clear()


def embedding_error_summary(error: EmbeddingError) -> str:
    """Short, log-friendly description of an embedding failure."""
    provider = f"[{error.provider}] " if error.provider else ""
    return f"{provider}{type(error).__name__}: {error.message}"
