"""Keeps the vector index in step with the platform's records."""

from __future__ import annotations

from dataclasses import dataclass, field

from ai_engine.config import SyncConfig
from ai_engine.errors import AiEngineError, ValidationError
from ai_engine.ingest.chunker import SemanticChunker
from ai_engine.ingest.embedder import Embedder
from ai_engine.obs.logging import get_logger
from ai_engine.obs.tracing import Timer
from ai_engine.retrieval.vector_store import VectorIndex
from ai_engine.sync.renderers import RENDERERS, SOURCE_TYPES
from ai_engine.sync.sources import Record, RecordSource
from ai_engine.types import DocumentChunk, RenderedDocument

logger = get_logger("ai_engine.sync")


@dataclass(slots=True)
class SyncReport:
    synced: int = 0
    chunks: int = 0
    errors: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, object]:
        return {"synced": self.synced, "chunks": self.chunks, "errors": list(self.errors)}


class DataSyncService:
    """Renders, chunks, embeds and indexes records per entity.

    A new chunk set is fully embedded before the entity's old chunks are
    touched; the swap itself is a single `replace` on the index. When fetching
    or embedding fails, the previously indexed chunks stay in place.
    """

    def __init__(
        self,
        source: RecordSource,
        chunker: SemanticChunker,
        embedder: Embedder,
        vector_index: VectorIndex,
        config: SyncConfig | None = None,
    ) -> None:
        self.source = source
        self.chunker = chunker
        self.embedder = embedder
        self.vector_index = vector_index
        self.config = config or SyncConfig()

    async def sync_entity(
        self,
        organization_id: str,
        source_type: str,
        source_id: str | None = None,
    ) -> SyncReport:
        _check_source_type(source_type)
        report = SyncReport()

        try:
            if source_id is None:
                records = await self.source.fetch(organization_id, source_type)
            else:
                records = [await self.source.fetch_one(organization_id, source_type, source_id)]
        except AiEngineError as exc:
            report.errors.append(f"Failed to fetch {source_type}: {exc.message}")
            logger.warning(
                "sync.fetch_failed",
                organization_id=organization_id,
                source_type=source_type,
                source_id=source_id,
                error=exc.message,
            )
            return report

        with Timer() as timer:
            for record in records:
                await self._index_record(organization_id, source_type, record, report)

        logger.info(
            "sync.complete",
            organization_id=organization_id,
            source_type=source_type,
            source_id=source_id,
            synced=report.synced,
            chunks=report.chunks,
            error_count=len(report.errors),
            duration_ms=round(timer.elapsed_ms, 2),
        )
        return report

    async def sync_all(self, organization_id: str) -> dict[str, SyncReport]:
        reports: dict[str, SyncReport] = {}
        for source_type in SOURCE_TYPES:
            reports[source_type] = await self.sync_entity(organization_id, source_type)
        return reports

    async def remove_entity(self, organization_id: str, source_type: str, source_id: str) -> int:
        _check_source_type(source_type)
        removed = await self.vector_index.delete_by_filter(
            organization_id,
            {
                "organization_id": organization_id,
                "source_type": source_type,
                "source_id": source_id,
            },
        )
        logger.info(
            "sync.removed",
            organization_id=organization_id,
            source_type=source_type,
            source_id=source_id,
            chunks=removed,
        )
        return removed

    async def _index_record(
        self,
        organization_id: str,
        source_type: str,
        record: Record,
        report: SyncReport,
    ) -> None:
        try:
            document = RENDERERS[source_type](organization_id, record)
            chunks = await self._embed_document(document)
        except (KeyError, TypeError, ValueError) as exc:
            report.errors.append(f"Failed to render {source_type} {record.get('id')}: {exc}")
            logger.warning(
                "sync.render_failed", source_type=source_type, source_id=record.get("id")
            )
            return
        except AiEngineError as exc:
            report.errors.append(f"Failed to embed {source_type} {record.get('id')}: {exc.message}")
            logger.warning(
                "sync.embed_failed",
                source_type=source_type,
                source_id=record.get("id"),
                error=exc.message,
            )
            return

        try:
            await self.vector_index.replace(
                organization_id,
                {
                    "organization_id": organization_id,
                    "source_type": document.source_type,
                    "source_id": document.source_id,
                },
                chunks,
            )
        except ValueError as exc:
            report.errors.append(f"Failed to index {source_type} {record.get('id')}: {exc}")
            logger.warning(
                "sync.index_failed",
                source_type=source_type,
                source_id=record.get("id"),
                error=str(exc),
            )
            return
        report.synced += 1
        report.chunks += len(chunks)

    async def _embed_document(self, document: RenderedDocument) -> list[DocumentChunk]:
        segments = self.chunker.split_document(document)
        if not segments:
            return []
        vectors = await self.embedder.embed_batch([segment.text for segment in segments])
        return self.chunker.build_chunks(document, segments, vectors)


def _check_source_type(source_type: str) -> None:
    if source_type not in RENDERERS:
        raise ValidationError(
            f"Unsupported source type: {source_type}. Expected one of {', '.join(SOURCE_TYPES)}"
        )
