"""Tests for the FAISS chunk store."""
import pytest

from aionus.rag.models import ChunkRecord, DocumentType
from aionus.rag.store_faiss import FAISSChunkStore


def records(vectors, prefix="chunk"):
    return [
        ChunkRecord(
            chunk_index=i,
            content=f"{prefix} {i}",
            char_start=i * 10,
            char_end=i * 10 + 9,
            embedding=v,
        )
        for i, v in enumerate(vectors)
    ]


@pytest.mark.asyncio
async def test_insert_skips_records_without_embedding(faiss_store, vector):
    """Test that chunks with a failed embedding are counted, not stored."""
    batch = records([vector(1), None, vector(0, 1)])

    result = await faiss_store.insert_chunks("doc-1", batch)

    assert result.inserted == 2
    assert result.skipped == 1
    assert faiss_store.get_stats()["vector_count"] == 2


@pytest.mark.asyncio
async def test_nearest_neighbors_filters_sorts_and_limits(faiss_store, vector):
    """Test that results are above the threshold, best first, and capped."""
    await faiss_store.insert_chunks(
        "doc-1",
        records([vector(0, 1), vector(1, 1), vector(1), vector(1, 0.2), vector(0, 0, 1)]),
    )

    matches = await faiss_store.nearest_neighbors(vector(1), threshold=0.5, limit=5)

    assert [m.content for m in matches] == ["chunk 2", "chunk 3", "chunk 1"]
    sims = [m.similarity for m in matches]
    assert sims == sorted(sims, reverse=True)
    assert all(s > 0.5 for s in sims)

    limited = await faiss_store.nearest_neighbors(vector(1), threshold=0.5, limit=2)
    assert [m.content for m in limited] == ["chunk 2", "chunk 3"]


@pytest.mark.asyncio
async def test_nearest_neighbors_nothing_above_threshold(faiss_store, vector):
    """Test that an unrelated query returns an empty list."""
    await faiss_store.insert_chunks("doc-1", records([vector(0, 1), vector(0, 0, 1)]))

    assert await faiss_store.nearest_neighbors(vector(1), threshold=0.5, limit=5) == []


@pytest.mark.asyncio
async def test_nearest_neighbors_document_filter(faiss_store, vector):
    """Test restricting the search to one document."""
    await faiss_store.insert_chunks("doc-1", records([vector(1)], prefix="first"))
    await faiss_store.insert_chunks("doc-2", records([vector(1, 0.1)], prefix="second"))

    matches = await faiss_store.nearest_neighbors(
        vector(1), threshold=0.5, limit=5, document_id="doc-2"
    )

    assert [m.document_id for m in matches] == ["doc-2"]


@pytest.mark.asyncio
async def test_nearest_neighbors_validates_arguments(faiss_store, vector):
    """Test threshold range and query dimension checks."""
    with pytest.raises(ValueError):
        await faiss_store.nearest_neighbors(vector(1), threshold=1.5, limit=5)
    with pytest.raises(ValueError):
        await faiss_store.nearest_neighbors([1.0, 0.0], threshold=0.5, limit=5)


@pytest.mark.asyncio
async def test_reprocessing_replaces_chunks(faiss_store, vector):
    """Test that inserting a document again does not duplicate its chunks."""
    await faiss_store.insert_chunks("doc-1", records([vector(1), vector(0, 1)], prefix="old"))
    await faiss_store.insert_chunks("doc-2", records([vector(0, 0, 1)], prefix="other"))

    await faiss_store.insert_chunks("doc-1", records([vector(1)], prefix="new"))

    stats = faiss_store.get_stats()
    assert stats["vector_count"] == 2
    assert stats["document_count"] == 2
    matches = await faiss_store.nearest_neighbors(vector(1), threshold=0.5, limit=5)
    assert [m.content for m in matches] == ["new 0"]


@pytest.mark.asyncio
async def test_insert_embedding(faiss_store, vector):
    """Test single chunk insertion and its validation."""
    row_id = await faiss_store.insert_embedding(
        "doc-1", 3, "Pets are allowed.", vector(1), document_type=DocumentType.FAQ
    )

    matches = await faiss_store.nearest_neighbors(vector(1), threshold=0.5, limit=1)
    assert matches[0].chunk_id == row_id
    assert matches[0].chunk_index == 3
    assert matches[0].document_type == "faq"

    with pytest.raises(ValueError):
        await faiss_store.insert_embedding("doc-1", 4, "Too short", [0.1, 0.2])
    with pytest.raises(ValueError):
        await faiss_store.insert_embedding("doc-1", 5, "   ", vector(1))


@pytest.mark.asyncio
async def test_text_search_and_recent_chunks(faiss_store, vector):
    """Test the keyword and most-recent fallbacks."""
    await faiss_store.insert_embedding("doc-1", 0, "Covered parking for two cars.", vector(1))
    await faiss_store.insert_embedding("doc-1", 1, "Swimming pool on the roof.", vector(0, 1))
    await faiss_store.insert_embedding("doc-1", 2, "Visitor PARKING near gate 2.", vector(0, 0, 1))

    found = await faiss_store.text_search("parking slots?", limit=5)
    assert [m.content for m in found] == [
        "Visitor PARKING near gate 2.",
        "Covered parking for two cars.",
    ]

    assert await faiss_store.text_search("helipad", limit=5) == []

    recent = await faiss_store.recent_chunks(2)
    assert [m.chunk_index for m in recent] == [2, 1]


@pytest.mark.asyncio
async def test_fallbacks_filter_by_document(faiss_store, vector):
    """Test that keyword and recent lookups can be scoped to one document."""
    await faiss_store.insert_embedding("doc-1", 0, "Covered parking for two cars.", vector(1))
    await faiss_store.insert_embedding("doc-2", 0, "Parking is free on weekends.", vector(1))
    await faiss_store.insert_embedding("doc-1", 1, "Swimming pool on the roof.", vector(0, 1))

    found = await faiss_store.text_search("parking", limit=5, document_id="doc-1")
    assert [m.content for m in found] == ["Covered parking for two cars."]

    recent = await faiss_store.recent_chunks(5, document_id="doc-2")
    assert [m.document_id for m in recent] == ["doc-2"]


@pytest.mark.asyncio
async def test_delete_document(faiss_store, vector):
    """Test removing every chunk of a document."""
    await faiss_store.insert_chunks("doc-1", records([vector(1), vector(0, 1)]))

    assert await faiss_store.delete_document("doc-1") == 2
    assert await faiss_store.delete_document("doc-1") == 0
    assert await faiss_store.recent_chunks(5) == []


@pytest.mark.asyncio
async def test_persistence_round_trip(tmp_path, vector):
    """Test that a reloaded store answers the same queries."""
    store = FAISSChunkStore.load_or_create(index_dir=tmp_path, dimension=8)
    await store.insert_chunks("doc-1", records([vector(1), vector(0, 1)]))

    reloaded = FAISSChunkStore.load_or_create(index_dir=tmp_path, dimension=8)
    matches = await reloaded.nearest_neighbors(vector(1), threshold=0.5, limit=5)

    assert [m.content for m in matches] == ["chunk 0"]
    assert reloaded.get_stats()["vector_count"] == 2

    # New ids continue after the persisted ones
    await reloaded.insert_embedding("doc-2", 0, "Later chunk.", vector(0, 0, 1))
    assert (await reloaded.recent_chunks(1))[0].content == "Later chunk."


@pytest.mark.asyncio
async def test_load_rejects_dimension_change(tmp_path, vector):
    """Test that an index built for another dimension is not reused."""
    store = FAISSChunkStore.load_or_create(index_dir=tmp_path, dimension=8)
    await store.insert_chunks("doc-1", records([vector(1)]))

    with pytest.raises(ValueError, match="Dimension mismatch"):
        FAISSChunkStore.load_or_create(index_dir=tmp_path, dimension=16)
