"""Boundary-aware sliding-window chunking."""

from __future__ import annotations

import re
from dataclasses import dataclass
from hashlib import sha1

from ai_engine.config import ChunkingConfig
from ai_engine.errors import ValidationError
from ai_engine.types import DocumentChunk, RenderedDocument

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)
_PARAGRAPH_GAP = re.compile(r"\n\s*\n")
_SENTENCE_END = frozenset({".", "!", "?", "。", "！", "？"})

_NO_BREAK = 0
_SENTENCE_BREAK = 1
_PARAGRAPH_BREAK = 2


@dataclass(frozen=True, slots=True)
class TextSegment:
    """A contiguous slice of the source text."""

    text: str
    index: int
    start: int
    end: int
    token_count: int


def split(text: str, max_tokens: int, overlap_tokens: int) -> list[TextSegment]:
    """Split text into overlapping, token-bounded segments.

    The window is packed greedily. Inside each window the cut prefers, in
    order: the last paragraph break in the upper half of the window, the last
    sentence end in the upper half, and finally a hard cut at `max_tokens`.
    The following window starts `overlap_tokens` tokens before the cut.

    Segments are slices of `text`: the first starts at offset 0, the last ends
    at `len(text)`, and every segment starts at or before the end of the one
    before it, so together they cover the input with no gaps.
    """

    if max_tokens <= 0:
        raise ValidationError("max_tokens must be positive")
    if overlap_tokens < 0 or overlap_tokens >= max_tokens:
        raise ValidationError("overlap_tokens must be in [0, max_tokens)")

    spans = [match.span() for match in _TOKEN_PATTERN.finditer(text)]
    if not spans:
        return []

    breaks = _break_strengths(text, spans)
    total = len(spans)
    segments: list[TextSegment] = []
    start = 0

    while True:
        if total - start <= max_tokens:
            end = total
        else:
            end = _choose_cut(breaks, start, max_tokens, overlap_tokens)

        char_start = 0 if start == 0 else spans[start][0]
        char_end = len(text) if end == total else spans[end][0]
        segments.append(
            TextSegment(
                text=text[char_start:char_end],
                index=len(segments),
                start=char_start,
                end=char_end,
                token_count=end - start,
            )
        )
        if end == total:
            return segments
        start = end - overlap_tokens


def _break_strengths(text: str, spans: list[tuple[int, int]]) -> list[int]:
    # breaks[i] describes the boundary right after token i.
    strengths = [_NO_BREAK] * len(spans)
    for i in range(len(spans) - 1):
        gap = text[spans[i][1] : spans[i + 1][0]]
        if _PARAGRAPH_GAP.search(gap):
            strengths[i] = _PARAGRAPH_BREAK
        elif gap and text[spans[i][0] : spans[i][1]] in _SENTENCE_END:
            strengths[i] = _SENTENCE_BREAK
    return strengths


def _choose_cut(breaks: list[int], start: int, max_tokens: int, overlap_tokens: int) -> int:
    hard_end = start + max_tokens
    lowest = max(start + overlap_tokens + 1, start + max_tokens // 2)
    for strength in (_PARAGRAPH_BREAK, _SENTENCE_BREAK):
        for end in range(hard_end, lowest - 1, -1):
            if breaks[end - 1] == strength:
                return end
    return hard_end


class SemanticChunker:
    """Turns rendered documents into indexable chunks.

    Chunk ids are derived from `(organization, source type, source id, index)`
    so re-chunking unchanged text reproduces the same ids, which is what makes
    re-syncing an entity idempotent.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def split_document(self, document: RenderedDocument) -> list[TextSegment]:
        return split(document.text, self.config.max_tokens, self.config.overlap_tokens)

    def build_chunks(
        self,
        document: RenderedDocument,
        segments: list[TextSegment],
        vectors: list[list[float]],
    ) -> list[DocumentChunk]:
        if len(segments) != len(vectors):
            raise ValueError("segments and vectors must have the same length")
        fingerprint = content_fingerprint(document.text)
        return [
            DocumentChunk(
                chunk_id=chunk_id_for(
                    document.organization_id,
                    document.source_type,
                    document.source_id,
                    segment.index,
                ),
                organization_id=document.organization_id,
                source_type=document.source_type,
                source_id=document.source_id,
                text=segment.text,
                vector=tuple(vector),
                metadata={
                    **document.metadata,
                    "content_hash": fingerprint,
                    "token_count": segment.token_count,
                },
                chunk_index=segment.index,
                title=document.title,
            )
            for segment, vector in zip(segments, vectors, strict=True)
        ]


def chunk_id_for(organization_id: str, source_type: str, source_id: str, index: int) -> str:
    return f"{organization_id}:{source_type}:{source_id}:chunk-{index:04d}"


def content_fingerprint(text: str) -> str:
    return sha1(text.encode("utf-8")).hexdigest()
