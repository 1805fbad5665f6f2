import pytest

from teamtutor.config_runtime import get_config
from teamtutor.errors import EmbeddingDimensionMismatch, IndexQueryFailure, VectorStoreError
from teamtutor.vector_store import InMemoryVectorIndex, get_vector_index
from teamtutor.vector_store.base import DocumentChunk, make_chunk_id

DOCS = [
    "Stakeholders include students, dining staff and campus administrators.",
    "The dining app must show menus and allergen information.",
    "Payment integrates with the campus card system.",
    "Students want to pre-order meals to skip queues.",
    "Accessibility: the app must meet WCAG AA.",
]


def _chunks(texts, source="doc.txt"):
    return [
        DocumentChunk(content=t, metadata={"source": source, "chunk_index": i})
        for i, t in enumerate(texts)
    ]


def test_chunk_id_is_deterministic():
    a = make_chunk_id("a.txt", 0, "hello")
    assert a == make_chunk_id("a.txt", 0, "hello")
    assert a != make_chunk_id("a.txt", 1, "hello")
    assert a != make_chunk_id("b.txt", 0, "hello")
    assert a != make_chunk_id("a.txt", 0, "hello!")
    assert DocumentChunk("hello", {"source": "a.txt", "chunk_index": 0}).chunk_id == a


@pytest.mark.asyncio
async def test_query_returns_k_results_in_non_increasing_order(memory_index):
    await memory_index.add(_chunks(DOCS))
    results = await memory_index.query("What do students want from the dining app?", k=3)

    assert len(results) == 3
    scores = [r.score for r in results]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_query_fewer_than_k(memory_index):
    await memory_index.add(_chunks(DOCS[:2]))
    assert len(await memory_index.query("dining", k=3)) == 2


@pytest.mark.asyncio
async def test_empty_index_returns_nothing(memory_index):
    assert await memory_index.query("anything") == []


@pytest.mark.asyncio
async def test_ties_keep_insertion_order(memory_index):
    same = [DocumentChunk("same words", {"source": f"s{i}.txt"}) for i in range(4)]
    await memory_index.add(same)
    results = await memory_index.query("same words", k=4)
    assert [r.chunk.source for r in results] == ["s0.txt", "s1.txt", "s2.txt", "s3.txt"]


@pytest.mark.asyncio
async def test_reingest_upserts_instead_of_duplicating(memory_index):
    await memory_index.add(_chunks(DOCS))
    await memory_index.add(_chunks(DOCS))
    assert await memory_index.count() == len(DOCS)


@pytest.mark.asyncio
async def test_dimension_mismatch_rejected(memory_index):
    await memory_index.add(_chunks(DOCS[:1]))
    bad = DocumentChunk("x", {"source": "x"}, embedding=[1.0, 0.0])
    with pytest.raises(EmbeddingDimensionMismatch):
        await memory_index.add([bad])


@pytest.mark.asyncio
async def test_reset_clears(memory_index):
    await memory_index.add(_chunks(DOCS))
    await memory_index.reset()
    assert await memory_index.count() == 0


def test_factory(monkeypatch, stub_provider):
    monkeypatch.setenv("VECTOR_STORE", "memory")
    assert isinstance(get_vector_index(stub_provider), InMemoryVectorIndex)
    monkeypatch.setenv("VECTOR_STORE", "faiss")
    with pytest.raises(ValueError):
        get_vector_index(stub_provider)


# ---------------------------------------------------------------------------
# Qdrant backend (qdrant-client local mode, no server)
# ---------------------------------------------------------------------------


@pytest.fixture
def qdrant_index(stub_provider):
    from qdrant_client import QdrantClient

    from teamtutor.vector_store.qdrant import QdrantVectorIndex

    return QdrantVectorIndex(
        stub_provider, get_config().retrieval, client=QdrantClient(location=":memory:")
    )


@pytest.mark.asyncio
async def test_qdrant_add_and_query(qdrant_index):
    ids = await qdrant_index.add(_chunks(DOCS))
    assert len(ids) == len(DOCS)
    assert await qdrant_index.count() == len(DOCS)

    results = await qdrant_index.query("allergen menus in the dining app", k=3)
    assert len(results) == 3
    scores = [r.score for r in results]
    assert scores == sorted(scores, reverse=True)
    assert results[0].chunk.metadata["source"] == "doc.txt"


@pytest.mark.asyncio
async def test_qdrant_upsert_is_idempotent(qdrant_index):
    await qdrant_index.add(_chunks(DOCS))
    await qdrant_index.add(_chunks(DOCS))
    assert await qdrant_index.count() == len(DOCS)


@pytest.mark.asyncio
async def test_qdrant_query_failure_maps_to_index_query_failure(qdrant_index, monkeypatch):
    await qdrant_index.add(_chunks(DOCS[:1]))

    def boom(*a, **k):
        raise ConnectionError("qdrant unreachable")

    monkeypatch.setattr(qdrant_index.client, "query_points", boom)
    with pytest.raises(IndexQueryFailure):
        await qdrant_index.query("dining")


@pytest.mark.asyncio
async def test_qdrant_add_failure_maps_to_vector_store_error(qdrant_index, monkeypatch):
    def boom(*a, **k):
        raise ConnectionError("qdrant unreachable")

    monkeypatch.setattr(qdrant_index.client, "upsert", boom)
    with pytest.raises(VectorStoreError):
        await qdrant_index.add(_chunks(DOCS[:1]))


@pytest.mark.asyncio
async def test_qdrant_ties_at_cut_follow_insertion_order(qdrant_index, monkeypatch):
    for i in range(20):
        await qdrant_index.add([DocumentChunk("same words", {"source": f"s{i}.txt"})])

    limits = []
    real_query = qdrant_index.client.query_points

    def recording_query(**kwargs):
        limits.append(kwargs["limit"])
        return real_query(**kwargs)

    monkeypatch.setattr(qdrant_index.client, "query_points", recording_query)
    results = await qdrant_index.query("same words", k=3)

    assert [r.chunk.source for r in results] == ["s0.txt", "s1.txt", "s2.txt"]
    assert limits[-1] > 20


@pytest.mark.asyncio
async def test_qdrant_reset(qdrant_index):
    await qdrant_index.add(_chunks(DOCS))
    await qdrant_index.reset()
    assert await qdrant_index.count() == 0
    assert await qdrant_index.query("dining") == []
