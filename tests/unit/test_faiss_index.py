import pytest

pytest.importorskip("faiss")
pytest.importorskip("langchain_community")

from ai_engine.retrieval.vector_store import FaissVectorIndex, create_vector_index  # noqa: E402
from ai_engine.types import DocumentChunk  # noqa: E402


def _chunk(chunk_id: str, vector, *, org: str = "org-1", source_id: str = "p-1") -> DocumentChunk:
    return DocumentChunk(
        chunk_id=chunk_id,
        organization_id=org,
        source_type="project",
        source_id=source_id,
        text=f"text of {chunk_id}",
        vector=tuple(vector),
        metadata={"status": "active" if source_id == "p-1" else "planned"},
        chunk_index=0,
    )


@pytest.mark.asyncio
async def test_faiss_index_matches_in_memory_contract() -> None:
    index = create_vector_index("faiss", 3)
    await index.upsert(
        "org-1",
        [
            _chunk("a", (2.0, 0.0, 0.0)),
            _chunk("b", (0.6, 0.8, 0.0), source_id="p-2"),
            _chunk("c", (0.0, 0.0, 1.0), source_id="p-3"),
        ],
    )
    await index.upsert("org-2", [_chunk("x", (1.0, 0.0, 0.0), org="org-2")])

    hits = await index.query("org-1", [1.0, 0.0, 0.0], top_k=2)
    planned = await index.query("org-1", [1.0, 0.0, 0.0], 5, {"status": "planned"})

    assert isinstance(index, FaissVectorIndex)
    assert [hit.chunk.chunk_id for hit in hits] == ["a", "b"]
    assert hits[0].score == pytest.approx(1.0, abs=1e-5)
    assert hits[1].score == pytest.approx(0.6, abs=1e-5)
    assert {hit.chunk.chunk_id for hit in planned} == {"b", "c"}
    assert await index.query("org-3", [1.0, 0.0, 0.0], 5) == []


@pytest.mark.asyncio
async def test_faiss_replace_and_delete() -> None:
    index = FaissVectorIndex(2)
    entity = {"source_type": "project", "source_id": "p-1"}
    await index.upsert("org-1", [_chunk("a0", (1.0, 0.0)), _chunk("a1", (0.0, 1.0))])
    await index.upsert("org-1", [_chunk("a0", (1.0, 1.0))])

    assert await index.count("org-1") == 2

    removed = await index.replace("org-1", entity, [_chunk("a-new", (1.0, 0.0))])

    assert removed == 2
    assert await index.count("org-1", entity) == 1
    with pytest.raises(ValueError):
        await index.replace("org-1", entity, [_chunk("bad", (1.0, 0.0), org="org-2")])
    assert await index.count("org-1", entity) == 1
    with pytest.raises(ValueError):
        await index.delete_by_filter("org-1", {})
    assert await index.delete_by_filter("org-1", entity) == 1
    assert await index.query("org-1", [1.0, 0.0], 3) == []
