"""Tests for EmbeddingIndex — ranked retrieval and the degraded fallback."""

from __future__ import annotations

import logging

import pytest

from inkwell.db.models import Chunk, Source
from inkwell.db.repository import Repository
from inkwell.db.vectors import ensure_vec_table
from inkwell.rag.retriever import (
    EmbeddingError,
    EmbeddingIndex,
    RankedResults,
    SimilaritySearchUnavailable,
    UnrankedFallback,
    VecSimilaritySearch,
)

MODEL = "tiny"

# Unit vectors at known cosine similarity to the query [1, 0].
VECTORS = {
    "exact": [1.0, 0.0],  # 1.0
    "close": [0.8, 0.6],  # 0.8
    "weak": [0.6, 0.8],  # 0.6
    "unrelated": [0.0, 1.0],  # 0.0
}


@pytest.fixture
def vec_table(tmp_db):
    return ensure_vec_table(tmp_db, MODEL, dimensions=2)


@pytest.fixture
def seeded(repo: Repository, vec_table):
    """Two projects; p1 holds four chunks at graded similarity, p2 one exact match."""
    repo.add_source(Source(id="s1", project_id="p1", title="Atomic Habits", source_type="text"))
    repo.add_source(Source(id="s2", project_id="p2", title="Other Book", source_type="text"))
    for i, (name, vector) in enumerate(VECTORS.items()):
        rowid = repo.add_chunk(Chunk(id=name, source_id="s1", chunk_index=i, content=name))
        repo.add_embedding(vec_table, rowid, "p1", vector, MODEL)
    rowid = repo.add_chunk(Chunk(id="foreign", source_id="s2", chunk_index=0, content="foreign"))
    repo.add_embedding(vec_table, rowid, "p2", [1.0, 0.0], MODEL)
    return repo


def _query_embedder(text: str) -> list[float]:
    return [1.0, 0.0]


def _index(repo, vec_table, threshold: float = 0.5) -> EmbeddingIndex:
    return EmbeddingIndex(repo, _query_embedder, VecSimilaritySearch(repo, vec_table), threshold)


# ------------------------------------------------------------------
# Ranked path
# ------------------------------------------------------------------


def test_ranked_results_best_first_above_threshold(seeded, vec_table):
    result = _index(seeded, vec_table).query("p1", "habits", k=5)

    assert isinstance(result, RankedResults)
    assert not result.degraded
    assert [c.chunk_id for c in result.chunks] == ["exact", "close", "weak"]
    sims = [c.similarity for c in result.chunks]
    assert sims == sorted(sims, reverse=True)
    assert sims[0] == pytest.approx(1.0, abs=1e-5)
    assert all(s > 0.5 for s in sims)


def test_results_carry_source_title(seeded, vec_table):
    result = _index(seeded, vec_table).query("p1", "habits")
    assert {c.source_title for c in result.chunks} == {"Atomic Habits"}
    assert {c.source_id for c in result.chunks} == {"s1"}


def test_k_limits_result_count(seeded, vec_table):
    result = _index(seeded, vec_table).query("p1", "habits", k=2)
    assert [c.chunk_id for c in result.chunks] == ["exact", "close"]


def test_higher_threshold_filters_more(seeded, vec_table):
    result = _index(seeded, vec_table, threshold=0.7).query("p1", "habits")
    assert [c.chunk_id for c in result.chunks] == ["exact", "close"]


def test_results_scoped_to_project(seeded, vec_table):
    result = _index(seeded, vec_table).query("p2", "habits")
    assert [c.chunk_id for c in result.chunks] == ["foreign"]


def test_no_match_is_empty_ranked_result(seeded, vec_table):
    result = _index(seeded, vec_table).query("p3", "habits")
    assert isinstance(result, RankedResults)
    assert result.chunks == ()


def test_for_model_uses_model_vec_table(repo, tmp_db):
    table = ensure_vec_table(tmp_db, "openai_text_embedding_3_small", dimensions=2)
    repo.add_source(Source(id="s1", project_id="p1", title="T", source_type="text"))
    rowid = repo.add_chunk(Chunk(id="c", source_id="s1", chunk_index=0, content="c"))
    repo.add_embedding(table, rowid, "p1", [1.0, 0.0], "openai/text-embedding-3-small")

    index = EmbeddingIndex.for_model(repo, _query_embedder, "openai/text-embedding-3-small")

    assert [c.chunk_id for c in index.query("p1", "q").chunks] == ["c"]


def test_stale_vector_without_chunk_row_is_skipped(seeded, vec_table):
    class StaleSearch:
        def search(self, project_id, embedding, k, threshold):
            return [(9_999, 0.99)]

    index = EmbeddingIndex(seeded, _query_embedder, StaleSearch())
    assert index.query("p1", "q").chunks == ()


# ------------------------------------------------------------------
# Degraded path
# ------------------------------------------------------------------


def test_missing_vec_table_falls_back_to_unranked(repo, caplog):
    repo.add_source(Source(id="s1", project_id="p1", title="Notes", source_type="text"))
    for i in range(4):
        repo.add_chunk(Chunk(id=f"c{i}", source_id="s1", chunk_index=i, content=f"text {i}"))

    index = EmbeddingIndex(repo, _query_embedder, VecSimilaritySearch(repo, "vec_chunks_none"))
    with caplog.at_level(logging.WARNING, logger="inkwell.rag.retriever"):
        result = index.query("p1", "anything", k=3)

    assert isinstance(result, UnrankedFallback)
    assert result.degraded
    assert result.reason
    assert [c.chunk_id for c in result.chunks] == ["c0", "c1", "c2"]
    assert all(c.similarity is None for c in result.chunks)
    assert "degraded mode" in caplog.text


def test_fallback_stays_within_project(repo):
    repo.add_source(Source(id="s1", project_id="p1", title="Mine", source_type="text"))
    repo.add_source(Source(id="s2", project_id="p2", title="Theirs", source_type="text"))
    repo.add_chunk(Chunk(id="theirs", source_id="s2", chunk_index=0, content="x"))
    repo.add_chunk(Chunk(id="mine", source_id="s1", chunk_index=0, content="y"))

    class Down:
        def search(self, project_id, embedding, k, threshold):
            raise SimilaritySearchUnavailable("vec extension not loaded")

    result = EmbeddingIndex(repo, _query_embedder, Down()).query("p1", "q")
    assert [c.chunk_id for c in result.chunks] == ["mine"]


# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "project,text,k", [("", "q", 5), ("p1", "", 5), ("p1", "   ", 5), ("p1", "q", 0)]
)
def test_invalid_arguments_raise(repo, vec_table, project, text, k):
    with pytest.raises(ValueError):
        _index(repo, vec_table).query(project, text, k=k)


def test_embedder_failure_raises_embedding_error(repo, vec_table):
    def broken(text):
        raise RuntimeError("provider down")

    index = EmbeddingIndex(repo, broken, VecSimilaritySearch(repo, vec_table))
    with pytest.raises(EmbeddingError, match="provider down"):
        index.query("p1", "q")
