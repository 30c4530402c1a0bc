"""Embedding model management."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Literal, Protocol, Sequence

import numpy as np
from sentence_transformers import SentenceTransformer

if TYPE_CHECKING:
    from labinsight.config import AppConfig

DEFAULT_MODEL = "sentence-transformers/all-mpnet-base-v2"
GOOGLE_EMBEDDING_MODEL = "models/text-embedding-004"

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Anything that turns texts into a float32 matrix, one row per text."""

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        ...


def _check_gpu_device() -> str | None:
    """Return the torch device to use, or None to let the backend decide."""
    try:
        import torch

        if torch.cuda.is_available():
            logger.debug("CUDA GPU detected: %s", torch.cuda.get_device_name(0))
            return "cuda"
        if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
            logger.debug("Apple MPS GPU detected")
            return "mps"
        logger.debug("No GPU detected, will use CPU")
        return None
    except ImportError:
        logger.debug("PyTorch not available for GPU detection")
        return None


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = 16
    normalize: bool = True
    backend: Literal["torch", "onnx", "openvino"] = "torch"
    device: str | None = None


class EmbeddingModel:
    """Thin wrapper around `SentenceTransformer` for local report embeddings."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()
        if self.config.device is None:
            self.config.device = _check_gpu_device()

        try:
            self._model = SentenceTransformer(
                self.config.model_name,
                backend=self.config.backend,
                device=self.config.device,
            )
        except Exception as e:
            if self.config.backend == "torch":
                raise
            logger.warning(
                "Failed to load model with backend '%s': %s. Falling back to PyTorch.",
                self.config.backend,
                e,
            )
            self.config.backend = "torch"
            self._model = SentenceTransformer(self.config.model_name, device=self.config.device)

        self.dimension = int(self._model.get_sentence_embedding_dimension())
        logger.info(
            "Loaded embedding model %s | Backend: %s | Device: %s",
            self.config.model_name,
            self.config.backend,
            self.config.device or "auto",
        )

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return float32 embeddings for input texts."""
        sentences = list(texts)
        embeddings = self._model.encode(
            sentences,
            batch_size=self.config.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=self.config.normalize,
        )
        return embeddings.astype("float32", copy=False)


class GoogleEmbeddingModel:
    """Hosted embeddings through the Gemini API."""

    def __init__(
        self,
        api_key: str,
        *,
        model_name: str = GOOGLE_EMBEDDING_MODEL,
        batch_size: int = 100,
    ) -> None:
        from langchain_google_genai import GoogleGenerativeAIEmbeddings

        self.model_name = model_name
        self.batch_size = batch_size
        self._client = GoogleGenerativeAIEmbeddings(model=model_name, google_api_key=api_key)
        logger.info("Using Google embeddings model %s", model_name)

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return float32 embeddings for input texts."""
        sentences = list(texts)
        if not sentences:
            return np.zeros((0, 0), dtype="float32")
        vectors = self._client.embed_documents(sentences, batch_size=self.batch_size)
        return np.asarray(vectors, dtype="float32")


def create_embedder(config: "AppConfig") -> Embedder:
    """Build the embedder selected by ``config.embedding_provider``."""
    if config.embedding_provider == "google":
        if not config.google_api_key:
            raise ValueError("GOOGLE_API_KEY (or GEMINI_API_KEY) is required for Google embeddings")
        return GoogleEmbeddingModel(
            config.google_api_key,
            model_name=config.google_embedding_model,
        )
    return EmbeddingModel(
        EmbeddingConfig(
            model_name=config.model_name,
            batch_size=config.embed_batch_size,
            backend=config.embedding_backend,
        )
    )
