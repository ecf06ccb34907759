"""
SBERT Embeddings Module - Local sentence-transformers embeddings.
=================================================================

Provides free, local embeddings using sentence-transformers models.
No API key required, works offline after the first model download.

Recommended models:
- all-MiniLM-L6-v2: Fast, 384 dimensions (default)
- all-mpnet-base-v2: Better quality, 768 dimensions
"""

from dataclasses import replace
from typing import Optional

from studysync.indexing.embeddings_base import (
    EmbeddingConfig,
    EmbeddingProvider,
    EmbeddingPurpose,
)
from studysync.shared.errors import EmbeddingError
from studysync.shared.logging import get_logger

logger = get_logger(__name__)


# Known model dimensions, used before the model is loaded
SBERT_MODEL_DIMENSIONS = {
    "all-MiniLM-L6-v2": 384,
    "all-MiniLM-L12-v2": 384,
    "all-mpnet-base-v2": 768,
    "paraphrase-multilingual-MiniLM-L12-v2": 384,
}


class SBERTEmbeddingProvider(EmbeddingProvider):
    """
    Local embedding provider using sentence-transformers.

    The model is loaded on first use. Failures here are local (missing
    package, bad model name, out of memory) and are never retried.

    Example:
        >>> provider = SBERTEmbeddingProvider(EmbeddingConfig.from_settings("sbert"))
        >>> vector = provider.embed_text("Hello world")
        >>> len(vector)
        384
    """

    def __init__(self, config: EmbeddingConfig):
        if config.dimensions is None:
            config = replace(config, dimensions=SBERT_MODEL_DIMENSIONS.get(config.model_name))
        super().__init__(config)
        self._model = None
        self._device: Optional[str] = None

    @property
    def provider_name(self) -> str:
        return "sbert"

    @property
    def model(self):
        """Lazy load and return the sentence transformer model."""
        if self._model is None:
            self._load_model()
        return self._model

    def _resolve_device(self) -> str:
        device = self.config.device
        if device == "auto":
            import torch

            device = "cuda" if torch.cuda.is_available() else "cpu"
        return device

    def _load_model(self) -> None:
        """Load the sentence transformer model."""
        try:
            from sentence_transformers import SentenceTransformer

            logger.info(f"Loading SBERT model: {self.model_name}")
            self._device = self._resolve_device()
            self._model = SentenceTransformer(self.model_name, device=self._device)
        except Exception as e:
            raise EmbeddingError(
                f"Failed to load SBERT model {self.model_name}: {e}", provider="sbert"
            ) from e

        loaded_dims = self._model.get_sentence_embedding_dimension()
        if self._dimensions is not None and loaded_dims != self._dimensions:
            logger.warning(
                f"SBERT model {self.model_name} has {loaded_dims} dimensions, "
                f"config says {self._dimensions}; using the model's"
            )
        self._dimensions = loaded_dims

        logger.info(
            f"SBERT model loaded: {self.model_name} "
            f"(dims={self._dimensions}, device={self._device})"
        )

    def _embed_request(self, texts: list[str], purpose: EmbeddingPurpose) -> list[list[float]]:
        # Symmetric model: purpose does not change the encoding
        cleaned = [text.replace("\n", " ") for text in texts]
        model = self.model
        try:
            vectors = model.encode(
                cleaned,
                batch_size=len(cleaned),
                show_progress_bar=False,
                normalize_embeddings=True,
                convert_to_numpy=True,
            )
        except Exception as e:
            raise EmbeddingError(f"SBERT encoding failed: {e}", provider="sbert") from e
        return vectors.tolist()

    def get_info(self) -> dict:
        info = super().get_info()
        info["device"] = self._device or self.config.device
        info["loaded"] = self._model is not None
        return info
