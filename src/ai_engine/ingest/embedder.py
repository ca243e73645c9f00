"""Embedding abstractions, a deterministic baseline and a LangChain adapter."""

from __future__ import annotations

from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt
from typing import Any

from ai_engine.errors import EmbeddingError
from ai_engine.obs.logging import get_logger

logger = get_logger("ai_engine.embedder")


class Embedder(ABC):
    """Embedder interface used by sync and retrieval components."""

    dimension: int

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed one text."""

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts, preserving order."""


class HashingEmbedder(Embedder):
    """Deterministic sparse-like embedding without external model calls.

    This class is primarily used for local development and deterministic
    tests. In production, `LangChainEmbedder` wraps a hosted provider.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    async def embed(self, text: str) -> list[float]:
        return self._embed(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class LangChainEmbedder(Embedder):
    """Adapter over any `langchain_core.embeddings.Embeddings` implementation.

    Provider errors and vectors of the wrong size are both reported as
    `EmbeddingError`; nothing is retried here.
    """

    def __init__(self, embeddings: Any, dimension: int, *, batch_size: int = 10) -> None:
        self._embeddings = embeddings
        self.dimension = dimension
        self._batch_size = batch_size

    async def embed(self, text: str) -> list[float]:
        try:
            vector = await self._embeddings.aembed_query(text)
        except Exception as exc:
            logger.warning("embedding.failed", error=str(exc), batch=False)
            raise EmbeddingError(f"Embedding provider failed: {exc}") from exc
        return self._checked(vector)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for i in range(0, len(texts), self._batch_size):
            batch = texts[i : i + self._batch_size]
            try:
                result = await self._embeddings.aembed_documents(batch)
            except Exception as exc:
                logger.warning("embedding.failed", error=str(exc), batch=True)
                raise EmbeddingError(f"Embedding provider failed: {exc}") from exc
            if len(result) != len(batch):
                raise EmbeddingError("Embedding provider returned a short batch")
            vectors.extend(self._checked(vector) for vector in result)
        return vectors

    def _checked(self, vector: list[float]) -> list[float]:
        if len(vector) != self.dimension:
            raise EmbeddingError(
                f"Expected {self.dimension}-dimensional embedding, got {len(vector)}"
            )
        return [float(value) for value in vector]


def create_embedder(settings: Any) -> Embedder:
    """Build the provider embedder when an API key is configured."""

    if not settings.openai_api_key:
        return HashingEmbedder(dimension=settings.embedding_dimension)

    from langchain_openai import OpenAIEmbeddings

    embeddings = OpenAIEmbeddings(
        model=settings.embedding_model,
        dimensions=settings.embedding_dimension,
        api_key=settings.openai_api_key,
    )
    return LangChainEmbedder(
        embeddings,
        settings.embedding_dimension,
        batch_size=settings.sync.embed_batch_size,
    )
