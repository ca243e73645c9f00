"""Tenant-scoped retrieval pipeline and context formatting."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from ai_engine.config import RetrievalConfig
from ai_engine.errors import RetrievalTimeout
from ai_engine.ingest.embedder import Embedder
from ai_engine.obs.logging import get_logger
from ai_engine.obs.tracing import Timer
from ai_engine.retrieval.vector_store import VectorIndex
from ai_engine.types import ScoredChunk

NO_CONTEXT_NOTE = "No relevant information found in the organization's data."
OVERVIEW_SOURCE_TYPE = "organization"

logger = get_logger("ai_engine.retrieval")


@dataclass(slots=True)
class RetrievedContext:
    """Ordered retrieval results for one query, most relevant first.

    The one exception is an organization overview pulled in for an aggregate
    question: it is pinned to the front regardless of its score, so trimming
    by `format()` and the extractive answerer always keep the counts.
    """

    organization_id: str
    query: str
    items: list[ScoredChunk] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def format(self, max_chars: int) -> str:
        """Render a context block no longer than `max_chars`.

        Chunks are added in relevance order and the first chunk that does not
        fit ends the block, so whatever is dropped is always the least similar
        tail. A chunk is never cut in half.
        """

        if not self.items:
            return NO_CONTEXT_NOTE

        blocks: list[str] = []
        used = 0
        for position, item in enumerate(self.items, start=1):
            block = _format_block(position, item)
            extra = len(block) + (1 if blocks else 0)
            if used + extra > max_chars:
                break
            blocks.append(block)
            used += extra

        if not blocks:
            return NO_CONTEXT_NOTE
        return "\n".join(blocks)

    def sources(self) -> list[dict[str, Any]]:
        seen: set[tuple[str, str]] = set()
        out: list[dict[str, Any]] = []
        for item in self.items:
            key = (item.chunk.source_type, item.chunk.source_id)
            if key in seen:
                continue
            seen.add(key)
            out.append(
                {
                    "contentType": item.chunk.source_type,
                    "title": item.chunk.title,
                    "sourceId": item.chunk.source_id,
                    "score": round(item.score, 4),
                }
            )
        return out

    def snippets(self) -> list[str]:
        return [item.chunk.text for item in self.items]


class RetrievalPipeline:
    """Embeds a query and fetches the organization's most similar chunks."""

    def __init__(
        self,
        vector_index: VectorIndex,
        embedder: Embedder,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.vector_index = vector_index
        self.embedder = embedder
        self.config = config or RetrievalConfig()

    async def retrieve(
        self,
        organization_id: str,
        query: str,
        *,
        top_k: int | None = None,
        filters: dict[str, Any] | None = None,
        timeout: float | None = None,
        include_overview: bool = False,
    ) -> RetrievedContext:
        """Return the organization's chunks most similar to `query`.

        With `include_overview`, the organization overview document is pinned
        first even when it would not rank, so aggregate questions ("how many
        projects") see the counts. A `source_type` filter that excludes the
        overview wins over `include_overview`.
        """

        limit = timeout if timeout is not None else self.config.timeout_seconds
        try:
            return await asyncio.wait_for(
                self._retrieve(
                    organization_id,
                    query,
                    top_k or self.config.top_k,
                    filters,
                    include_overview,
                ),
                timeout=limit,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("retrieval.timeout", organization_id=organization_id, timeout=limit)
            raise RetrievalTimeout(f"Retrieval exceeded {limit:.1f}s") from exc

    async def _retrieve(
        self,
        organization_id: str,
        query: str,
        top_k: int,
        filters: dict[str, Any] | None,
        include_overview: bool = False,
    ) -> RetrievedContext:
        with Timer() as timer:
            vector = await self.embedder.embed(query)
            scoped_filter = {**(filters or {}), "organization_id": organization_id}
            hits = await self.vector_index.query(
                organization_id, vector, top_k, metadata_filter=scoped_filter
            )
            overview: list[ScoredChunk] = []
            if include_overview and _allows_overview(filters):
                overview = await self.vector_index.query(
                    organization_id,
                    vector,
                    1,
                    metadata_filter={
                        **(filters or {}),
                        "organization_id": organization_id,
                        "source_type": OVERVIEW_SOURCE_TYPE,
                    },
                )

        # The index is shared across tenants; never trust it to scope results.
        scoped = [
            hit
            for hit in hits
            if hit.chunk.organization_id == organization_id
            and hit.score >= self.config.similarity_threshold
        ]
        dropped = len(hits) - len(scoped)
        for hit in overview:
            if hit.chunk.organization_id != organization_id:
                continue
            # Pinned first; see `RetrievedContext`.
            others = [h for h in scoped if h.chunk.chunk_id != hit.chunk.chunk_id]
            scoped = [hit, *others[: top_k - 1]]
        items = [
            ScoredChunk(chunk=hit.chunk, score=hit.score, rank=i + 1)
            for i, hit in enumerate(scoped[:top_k])
        ]
        logger.info(
            "retrieval.complete",
            organization_id=organization_id,
            chunk_count=len(items),
            dropped=dropped,
            duration_ms=round(timer.elapsed_ms, 2),
        )
        return RetrievedContext(organization_id=organization_id, query=query, items=items)


def _allows_overview(filters: dict[str, Any] | None) -> bool:
    wanted = (filters or {}).get("source_type")
    if wanted is None:
        return True
    if isinstance(wanted, (list, tuple, set, frozenset)):
        return OVERVIEW_SOURCE_TYPE in wanted
    return wanted == OVERVIEW_SOURCE_TYPE

def _format_block(position: int, item: ScoredChunk) -> str:
    chunk = item.chunk
    metadata = ", ".join(
        f"{key}: {value}"
        for key, value in chunk.metadata.items()
        if key not in {"content_hash", "token_count"} and value not in (None, "")
    )
    lines = [f"[Source {position}] ({chunk.source_type})"]
    if chunk.title:
        lines.append(f"Title: {chunk.title}")
    if metadata:
        lines.append(f"Metadata: {metadata}")
    lines.append(f"Content: {chunk.text.strip()}")
    lines.append("---")
    return "\n".join(lines)
