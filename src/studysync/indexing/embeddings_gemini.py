"""
Gemini Embeddings Module - Google GenAI embeddings API.
=======================================================

Provides high-quality embeddings using Google's Gemini API.
Requires a GEMINI_API_KEY from Google AI Studio; a
GEMINI_SECONDARY_API_KEY is used when the first key is throttled.

Available models:
- text-embedding-004: Latest model, 768 dimensions (recommended)
- embedding-001: Legacy model
"""

from dataclasses import replace

from studysync.indexing.embeddings_base import (
    EmbeddingConfig,
    EmbeddingProvider,
    EmbeddingPurpose,
)
from studysync.shared.errors import (
    EmbeddingAuthenticationError,
    EmbeddingError,
    EmbeddingRateLimitError,
    EmbeddingTransientError,
)
from studysync.shared.logging import get_logger

logger = get_logger(__name__)


# Model dimension mapping
GEMINI_MODEL_DIMENSIONS = {
    "text-embedding-004": 768,
    "embedding-001": 768,
}

# Task type per purpose
TASK_TYPES = {
    EmbeddingPurpose.DOCUMENT: "RETRIEVAL_DOCUMENT",
    EmbeddingPurpose.QUERY: "RETRIEVAL_QUERY",
}


def classify_gemini_error(error: Exception) -> EmbeddingError:
    """
    Map a google-genai exception to a typed embedding error.

    APIError carries the HTTP status in ``code``: 429 is a rate limit,
    401/403 (or an invalid-key message) is authentication, 5xx is transient.
    Anything without a status is treated as a network failure.
    """
    from google.genai import errors as genai_errors

    message = str(error)
    if isinstance(error, genai_errors.APIError):
        code = getattr(error, "code", None)
        if code == 429:
            return EmbeddingRateLimitError(message, provider="gemini")
        if code in (401, 403) or "API key not valid" in message:
            return EmbeddingAuthenticationError(message, provider="gemini")
        if code is not None and code >= 500:
            return EmbeddingTransientError(message, provider="gemini")
        return EmbeddingError(message, provider="gemini")

    return EmbeddingTransientError(message, provider="gemini")


class GeminiEmbeddingProvider(EmbeddingProvider):
    """
    Gemini embedding provider using Google GenAI SDK.

    Documents are embedded with the RETRIEVAL_DOCUMENT task type and
    queries with RETRIEVAL_QUERY.

    Example:
        >>> provider = GeminiEmbeddingProvider(EmbeddingConfig.from_settings("gemini"))
        >>> vector = provider.embed_query("What is a binary tree?")
        >>> len(vector)
        768
    """

    def __init__(self, config: EmbeddingConfig):
        if not config.api_key:
            raise ValueError(
                "Gemini API key is required. Set GEMINI_API_KEY environment variable."
            )
        if config.dimensions is None:
            config = replace(config, dimensions=GEMINI_MODEL_DIMENSIONS.get(config.model_name))
        super().__init__(config)
        self._client = None

    @property
    def provider_name(self) -> str:
        return "gemini"

    @property
    def client(self):
        """Lazy load and return the Gemini client."""
        if self._client is None:
            from google import genai

            self._client = genai.Client(api_key=self.config.api_key)
            logger.info(f"Gemini client initialized for model: {self.model_name}")
        return self._client

    def _embed_request(self, texts: list[str], purpose: EmbeddingPurpose) -> list[list[float]]:
        try:
            response = self.client.models.embed_content(
                model=self.model_name,
                contents=texts,
                config={"task_type": TASK_TYPES[purpose]},
            )
        except Exception as e:
            raise classify_gemini_error(e) from e

        return [list(embedding.values or []) for embedding in response.embeddings or []]
