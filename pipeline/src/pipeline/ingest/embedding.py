"""Text embedding into the fixed-dimension vector space shared by ingestion and retrieval."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from typing import Protocol

from sentirag.config import Settings
from sentirag.models import EMBEDDING_DIM
from sentirag.services.llm_client import EMBEDDING_SLOT, LLMClient

logger = logging.getLogger(__name__)


class EmbeddingDimensionError(ValueError):
    """A vector does not have the pipeline's fixed dimension."""


class EmbeddingBackendError(RuntimeError):
    """The configured embedding backend could not produce vectors."""


def normalize(vector: Sequence[float]) -> list[float]:
    """Scale to unit Euclidean norm; the zero vector is returned unchanged."""
    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude == 0:
        return list(vector)
    return [v / magnitude for v in vector]


def check_dimension(vector: Sequence[float], dim: int = EMBEDDING_DIM) -> None:
    if len(vector) != dim:
        raise EmbeddingDimensionError(f"Expected embedding of dimension {dim}, got {len(vector)}")


def text_seed(text: str) -> int:
    return sum(ord(ch) for ch in text)


class EmbeddingBackend(Protocol):
    name: str

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        ...


class HashEmbeddingBackend:
    """Deterministic text-derived vectors for running without a model."""

    name = "hash"

    def __init__(self, dim: int = EMBEDDING_DIM) -> None:
        self.dim = dim

    def vector_for(self, text: str) -> list[float]:
        seed = text_seed(text)
        return normalize([math.sin(seed + i) * 0.5 for i in range(self.dim)])

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        return [self.vector_for(t) for t in texts]


class ApiEmbeddingBackend:
    """OpenAI-compatible embeddings endpoint via the shared LLM client."""

    name = "api"

    def __init__(self, client: LLMClient, *, slot: str = EMBEDDING_SLOT, dim: int = EMBEDDING_DIM) -> None:
        self.client = client
        self.slot = slot
        self.dim = dim

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        vectors = await self.client.generate_embeddings(self.slot, list(texts), dimensions=self.dim)
        if len(vectors) != len(texts):
            raise ValueError(f"Embedding API returned {len(vectors)} vectors for {len(texts)} texts")
        for vector in vectors:
            check_dimension(vector, self.dim)
        return [normalize(v) for v in vectors]


def build_embedding_backend(settings: Settings, client: LLMClient | None = None) -> EmbeddingBackend:
    choice = settings.embedding_backend.strip().lower()
    if choice == "api":
        if client is not None and client.is_configured(EMBEDDING_SLOT):
            return ApiEmbeddingBackend(client)
        logger.warning("Embedding API not configured, using hash embeddings")
    elif choice != "hash":
        logger.warning("Unknown EMBEDDING_BACKEND '%s', using hash embeddings", settings.embedding_backend)
    return HashEmbeddingBackend()


class Embedder:
    """Single entry point for producing vectors at ingestion and query time.

    The backend is fixed at construction. A failing backend raises
    ``EmbeddingBackendError`` rather than substituting vectors from another
    space.
    """

    def __init__(self, backend: EmbeddingBackend, dim: int = EMBEDDING_DIM) -> None:
        self.backend = backend
        self.dim = dim

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            vectors = await self.backend.embed_batch(texts)
        except EmbeddingDimensionError:
            raise
        except Exception as e:
            raise EmbeddingBackendError(
                f"Embedding backend {self.backend.name} failed for {len(texts)} texts: {e}"
            ) from e
        if len(vectors) != len(texts):
            raise EmbeddingBackendError(
                f"Embedding backend {self.backend.name} returned {len(vectors)} vectors for {len(texts)} texts"
            )
        for vector in vectors:
            check_dimension(vector, self.dim)
        return vectors
