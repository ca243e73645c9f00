"""Vector index interface and the in-process implementation."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from math import sqrt
from typing import Any, Protocol

from ai_engine.types import DocumentChunk, ScoredChunk

# Filter keys that address chunk fields rather than metadata entries.
_CHUNK_FIELDS = ("organization_id", "source_type", "source_id", "chunk_index")


class VectorIndex(Protocol):
    """Namespaced vector index contract. A namespace is one organization."""

    async def upsert(self, namespace: str, chunks: list[DocumentChunk]) -> None:
        """Insert or overwrite chunks by id."""

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[ScoredChunk]:
        """Return up to `top_k` chunks by descending cosine similarity."""

    async def delete_by_filter(self, namespace: str, metadata_filter: dict[str, Any]) -> int:
        """Delete matching chunks and return how many were removed."""

    async def replace(
        self,
        namespace: str,
        metadata_filter: dict[str, Any],
        chunks: list[DocumentChunk],
    ) -> int:
        """Delete matching chunks and insert `chunks` as one step."""

    async def count(self, namespace: str, metadata_filter: dict[str, Any] | None = None) -> int:
        """Count matching chunks."""


@dataclass(slots=True)
class _StoredVector:
    chunk: DocumentChunk
    sequence: int


class InMemoryVectorIndex:
    """Deterministic vector index used for tests and single-process deployments.

    None of the methods await between reading and writing, so `replace` is
    atomic with respect to concurrent queries on the event loop.
    """

    def __init__(self, dimension: int) -> None:
        self.dimension = dimension
        self._namespaces: dict[str, dict[str, _StoredVector]] = {}
        self._sequence = itertools.count()

    async def upsert(self, namespace: str, chunks: list[DocumentChunk]) -> None:
        self._upsert(namespace, chunks)

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[ScoredChunk]:
        records = self._namespaces.get(namespace, {})
        candidates = [
            rec for rec in records.values() if _filter_match(rec.chunk, metadata_filter)
        ]
        scored = sorted(
            (
                (_cosine_similarity(vector, list(rec.chunk.vector)), rec.sequence, rec.chunk)
                for rec in candidates
            ),
            key=lambda item: (item[0], item[1]),
            reverse=True,
        )
        return [
            ScoredChunk(chunk=chunk, score=score, rank=i + 1)
            for i, (score, _, chunk) in enumerate(scored[:top_k])
        ]

    async def delete_by_filter(self, namespace: str, metadata_filter: dict[str, Any]) -> int:
        return self._delete(namespace, metadata_filter)

    async def replace(
        self,
        namespace: str,
        metadata_filter: dict[str, Any],
        chunks: list[DocumentChunk],
    ) -> int:
        _check_chunks(namespace, chunks, self.dimension)
        removed = self._delete(namespace, metadata_filter)
        self._upsert(namespace, chunks)
        return removed

    async def count(self, namespace: str, metadata_filter: dict[str, Any] | None = None) -> int:
        records = self._namespaces.get(namespace, {})
        return sum(1 for rec in records.values() if _filter_match(rec.chunk, metadata_filter))

    def _upsert(self, namespace: str, chunks: list[DocumentChunk]) -> None:
        _check_chunks(namespace, chunks, self.dimension)
        records = self._namespaces.setdefault(namespace, {})
        for chunk in chunks:
            records[chunk.chunk_id] = _StoredVector(chunk=chunk, sequence=next(self._sequence))

    def _delete(self, namespace: str, metadata_filter: dict[str, Any]) -> int:
        if not metadata_filter:
            raise ValueError("delete_by_filter requires a non-empty filter")
        records = self._namespaces.get(namespace, {})
        doomed = [cid for cid, rec in records.items() if _filter_match(rec.chunk, metadata_filter)]
        for cid in doomed:
            del records[cid]
        return len(doomed)


def _filter_match(chunk: DocumentChunk, metadata_filter: dict[str, Any] | None) -> bool:
    if not metadata_filter:
        return True
    for key, value in metadata_filter.items():
        actual = getattr(chunk, key) if key in _CHUNK_FIELDS else chunk.metadata.get(key)
        if isinstance(value, (list, tuple, set, frozenset)):
            if actual not in value:
                return False
        elif actual != value:
            return False
    return True


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)


class FaissVectorIndex:
    """FAISS-backed index via the LangChain community integration.

    One inner-product FAISS store per namespace. Vectors are L2-normalized on
    the way in and at query time, so inner product equals cosine similarity and
    scores match `InMemoryVectorIndex`.
    """

    def __init__(self, dimension: int) -> None:
        try:
            import faiss
            from langchain_community.docstore.in_memory import InMemoryDocstore
            from langchain_community.vectorstores import FAISS
            from langchain_community.vectorstores.utils import DistanceStrategy
            from langchain_core.embeddings import Embeddings
        except Exception as exc:  # pragma: no cover - import path is environment-dependent
            raise RuntimeError(
                "FAISS dependencies are not available. Install langchain-community/faiss-cpu."
            ) from exc

        class _VectorOnlyEmbeddings(Embeddings):
            def embed_documents(self, texts: list[str]) -> list[list[float]]:
                raise TypeError("FaissVectorIndex stores precomputed vectors only")

            def embed_query(self, text: str) -> list[float]:
                raise TypeError("FaissVectorIndex is queried by vector only")

        def _new_store() -> Any:
            return FAISS(
                embedding_function=_VectorOnlyEmbeddings(),
                index=faiss.IndexFlatIP(dimension),
                docstore=InMemoryDocstore(),
                index_to_docstore_id={},
                distance_strategy=DistanceStrategy.MAX_INNER_PRODUCT,
            )

        self.dimension = dimension
        self._new_store = _new_store
        self._stores: dict[str, Any] = {}
        self._sequence = itertools.count()

    async def upsert(self, namespace: str, chunks: list[DocumentChunk]) -> None:
        self._upsert(namespace, chunks)

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[ScoredChunk]:
        store = self._stores.get(namespace)
        size = len(store.index_to_docstore_id) if store is not None else 0
        if size == 0:
            return []
        hits = store.similarity_search_with_score_by_vector(
            _normalized(vector),
            k=size,
            filter=lambda metadata: _filter_match(metadata["chunk"], metadata_filter),
            fetch_k=size,
        )
        ranked = sorted(
            hits, key=lambda hit: (float(hit[1]), hit[0].metadata["sequence"]), reverse=True
        )
        return [
            ScoredChunk(chunk=doc.metadata["chunk"], score=float(score), rank=i + 1)
            for i, (doc, score) in enumerate(ranked[:top_k])
        ]

    async def delete_by_filter(self, namespace: str, metadata_filter: dict[str, Any]) -> int:
        return self._delete(namespace, metadata_filter)

    async def replace(
        self,
        namespace: str,
        metadata_filter: dict[str, Any],
        chunks: list[DocumentChunk],
    ) -> int:
        _check_chunks(namespace, chunks, self.dimension)
        removed = self._delete(namespace, metadata_filter)
        self._upsert(namespace, chunks)
        return removed

    async def count(self, namespace: str, metadata_filter: dict[str, Any] | None = None) -> int:
        return len(self._matching_ids(namespace, metadata_filter))

    def _upsert(self, namespace: str, chunks: list[DocumentChunk]) -> None:
        _check_chunks(namespace, chunks, self.dimension)
        if not chunks:
            return
        store = self._stores.setdefault(namespace, self._new_store())
        ids = [chunk.chunk_id for chunk in chunks]
        existing = set(store.index_to_docstore_id.values())
        stale = [cid for cid in ids if cid in existing]
        if stale:
            store.delete(stale)
        store.add_embeddings(
            text_embeddings=[(chunk.text, _normalized(list(chunk.vector))) for chunk in chunks],
            metadatas=[{"chunk": chunk, "sequence": next(self._sequence)} for chunk in chunks],
            ids=ids,
        )

    def _delete(self, namespace: str, metadata_filter: dict[str, Any]) -> int:
        if not metadata_filter:
            raise ValueError("delete_by_filter requires a non-empty filter")
        doomed = self._matching_ids(namespace, metadata_filter)
        if doomed:
            self._stores[namespace].delete(doomed)
        return len(doomed)

    def _matching_ids(self, namespace: str, metadata_filter: dict[str, Any] | None) -> list[str]:
        store = self._stores.get(namespace)
        if store is None:
            return []
        matches = []
        for cid in store.index_to_docstore_id.values():
            doc = store.docstore.search(cid)
            if _filter_match(doc.metadata["chunk"], metadata_filter):
                matches.append(cid)
        return matches


def create_vector_index(backend: str, dimension: int) -> VectorIndex:
    if backend == "faiss":
        return FaissVectorIndex(dimension)
    return InMemoryVectorIndex(dimension)


def _normalized(vector: list[float]) -> list[float]:
    norm = sqrt(sum(x * x for x in vector))
    if norm == 0:
        return list(vector)
    return [x / norm for x in vector]


def _check_chunks(namespace: str, chunks: list[DocumentChunk], dimension: int) -> None:
    for chunk in chunks:
        if len(chunk.vector) != dimension:
            raise ValueError(
                f"Chunk {chunk.chunk_id} has dimension {len(chunk.vector)}, expected {dimension}"
            )
        if chunk.organization_id != namespace:
            raise ValueError(
                f"Chunk {chunk.chunk_id} belongs to {chunk.organization_id}, not {namespace}"
            )
