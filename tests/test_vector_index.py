"""Tests for the hash embedding and the in-memory vector index."""

import math

import pytest

from bureau.domain.context.memory.embedding import HashEmbeddingFunction
from bureau.domain.context.memory.vector_memory_store import InMemoryVectorIndex
from bureau.domain.errors import VectorIndexError


def test_embedding_is_deterministic_unit_length():
    embedding = HashEmbeddingFunction(32)

    first = embedding.embed("Design the billing service")
    second = embedding.embed("Design the billing service")

    assert first == second
    assert len(first) == 32
    assert math.isclose(math.sqrt(sum(v * v for v in first)), 1.0)


def test_embedding_handles_text_without_words():
    vector = HashEmbeddingFunction(16).embed("!!!")

    assert math.isclose(math.sqrt(sum(v * v for v in vector)), 1.0)


def test_embedding_rejects_bad_dimension():
    with pytest.raises(ValueError):
        HashEmbeddingFunction(0)


@pytest.mark.asyncio
async def test_search_ranks_by_cosine_similarity():
    index = InMemoryVectorIndex(3)
    await index.insert("x", [1.0, 0.0, 0.0])
    await index.insert("xy", [1.0, 1.0, 0.0])
    await index.insert("z", [0.0, 0.0, 1.0])

    results = await index.search([1.0, 0.0, 0.0], k=2)

    assert [r.id for r in results] == ["x", "xy"]
    assert results[0].score == pytest.approx(1.0)
    assert results[1].score == pytest.approx(1 / math.sqrt(2))


@pytest.mark.asyncio
async def test_insert_overwrites_and_min_score_filters():
    index = InMemoryVectorIndex(2)
    await index.insert("a", [1.0, 0.0], {"agent_id": "eng-1"})
    await index.insert("a", [0.0, 1.0], {"agent_id": "eng-2"})

    assert len(index) == 1
    assert await index.search([1.0, 0.0], k=5, min_score=0.5) == []
    hits = await index.search([0.0, 1.0], k=5)
    assert hits[0].metadata == {"agent_id": "eng-2"}


@pytest.mark.asyncio
async def test_update_delete_and_errors():
    index = InMemoryVectorIndex(2)
    await index.insert("a", [1.0, 0.0])

    await index.update("a", [0.0, 1.0])
    assert (await index.search([0.0, 1.0], k=1))[0].score == pytest.approx(1.0)

    with pytest.raises(VectorIndexError):
        await index.update("missing", [1.0, 0.0])
    with pytest.raises(VectorIndexError):
        await index.insert("b", [1.0, 0.0, 0.0])

    await index.delete("a")
    await index.delete("a")
    assert len(index) == 0

    await index.close()
    with pytest.raises(VectorIndexError):
        await index.search([1.0, 0.0], k=1)
