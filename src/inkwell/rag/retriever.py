"""Embedding index read path: project-scoped dense retrieval with a degraded fallback.

Primary path:
  embed(query) → sqlite-vec KNN inside the project's partition →
  keep similarity > match_threshold → top k, best first.

Degraded path:
  If the similarity search itself fails (missing vec table, extension error),
  return up to k chunks of the project in storage order. The result type is
  ``UnrankedFallback`` so callers can tell it apart from a ranked answer, and
  the switch is logged at WARNING.

An empty result is not an error: it means "no grounding available".
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Protocol, Union

from inkwell.db.models import Chunk, Source
from inkwell.db.repository import Repository
from inkwell.db.vectors import model_to_slug, vec_table_name
from inkwell.rag.llm_client import Embedder

logger = logging.getLogger(__name__)

DEFAULT_K = 5


class SimilaritySearchUnavailable(RuntimeError):
    """The similarity search infrastructure could not answer (not "no results")."""


class EmbeddingError(RuntimeError):
    """The query text could not be embedded."""


@dataclass(frozen=True)
class RetrievedChunk:
    """A chunk reference with its parent source title.

    Attributes:
        similarity: Cosine similarity to the query; None on the fallback path.
    """

    chunk_id: str
    rowid: int
    source_id: str
    source_title: str
    chunk_index: int
    content: str
    similarity: float | None = None


@dataclass(frozen=True)
class RankedResults:
    """Chunks ordered by descending similarity, all above the threshold."""

    chunks: tuple[RetrievedChunk, ...] = ()

    @property
    def degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class UnrankedFallback:
    """Chunks returned without ranking because similarity search was unavailable."""

    chunks: tuple[RetrievedChunk, ...] = ()
    reason: str = ""

    @property
    def degraded(self) -> bool:
        return True


RetrievalResult = Union[RankedResults, UnrankedFallback]


class SimilaritySearch(Protocol):
    """Typed boundary over the vector store.

    ``search`` returns (chunk rowid, similarity) pairs restricted to
    *project_id*, best first, similarity strictly above *threshold*, at most
    *k* of them. Raises SimilaritySearchUnavailable on infrastructure errors.
    """

    def search(
        self, project_id: str, embedding: list[float], k: int, threshold: float
    ) -> list[tuple[int, float]]: ...


class VecSimilaritySearch:
    """SimilaritySearch backed by a sqlite-vec table (cosine distance)."""

    def __init__(self, repo: Repository, vec_table: str) -> None:
        self._repo = repo
        self._vec_table = vec_table

    def search(
        self, project_id: str, embedding: list[float], k: int, threshold: float
    ) -> list[tuple[int, float]]:
        try:
            rows = self._repo.search_vec(self._vec_table, project_id, embedding, k)
        except sqlite3.Error as exc:
            raise SimilaritySearchUnavailable(str(exc)) from exc
        hits = [(rowid, 1.0 - distance) for rowid, distance in rows]
        return [(rowid, sim) for rowid, sim in hits if sim > threshold]


class EmbeddingIndex:
    """Find the chunks of a project most similar to a query.

    Args:
        repo: Open Repository (chunk/source lookups and the fallback scan).
        embedder: Same embedding capability as used on the write path.
        search: Similarity search adapter.
        match_threshold: Minimum cosine similarity for a ranked hit.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: Embedder,
        search: SimilaritySearch,
        match_threshold: float = 0.5,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._search = search
        self._threshold = match_threshold

    @classmethod
    def for_model(
        cls,
        repo: Repository,
        embedder: Embedder,
        embedding_model: str,
        match_threshold: float = 0.5,
    ) -> EmbeddingIndex:
        """Build an index over the vec table of *embedding_model*."""
        table = vec_table_name(model_to_slug(embedding_model))
        return cls(repo, embedder, VecSimilaritySearch(repo, table), match_threshold)

    def query(self, project_id: str, text: str, k: int = DEFAULT_K) -> RetrievalResult:
        """Return at most *k* chunks of *project_id* relevant to *text*.

        Raises:
            ValueError: Missing project, empty query text, or k < 1.
            EmbeddingError: The query could not be embedded.
        """
        if not project_id:
            raise ValueError("project_id is required")
        if not text or not text.strip():
            raise ValueError("Query text must not be empty")
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")

        try:
            vector = self._embedder(text)
        except Exception as exc:
            raise EmbeddingError(f"Failed to embed query: {exc}") from exc

        try:
            hits = self._search.search(project_id, vector, k, self._threshold)
        except SimilaritySearchUnavailable as exc:
            logger.warning(
                "Similarity search unavailable (%s); degraded mode: "
                "returning up to %d unranked chunks for project %s",
                exc,
                k,
                project_id,
            )
            pairs = self._repo.list_project_chunks(project_id, k)
            return UnrankedFallback(
                chunks=tuple(_to_retrieved(c, s, None) for c, s in pairs),
                reason=str(exc),
            )

        resolved = self._repo.get_chunks_with_sources([rowid for rowid, _ in hits])
        ranked: list[RetrievedChunk] = []
        for rowid, similarity in sorted(hits, key=lambda h: h[1], reverse=True):
            pair = resolved.get(rowid)
            if pair is None:
                continue  # vector outlived its chunk row
            chunk, source = pair
            if source.project_id != project_id:
                continue
            ranked.append(_to_retrieved(chunk, source, similarity))
        return RankedResults(chunks=tuple(ranked[:k]))


def _to_retrieved(chunk: Chunk, source: Source, similarity: float | None) -> RetrievedChunk:
    return RetrievedChunk(
        chunk_id=chunk.id,
        rowid=chunk.rowid,
        source_id=source.id,
        source_title=source.title,
        chunk_index=chunk.chunk_index,
        content=chunk.content,
        similarity=similarity,
    )
