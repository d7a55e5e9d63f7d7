"""Embedding writer — persist chunks and their vectors.

For each source:
1. Every chunk is stored (document order) before any embedding call, so a
   provider outage never loses chunk text.
2. Each chunk is embedded via the injected Embedder with up to
   ``max_attempts`` tries and exponential backoff.
3. Successful vectors go to the model's vec table and the chunk is marked
   embedded; failures stay ``embedding_model IS NULL`` and are picked up by
   ``write_pending()`` on the next pass (at-least-once, best effort).

With ``concurrency > 1`` the embedding calls run on a bounded thread pool;
results are still stored in ordinal order.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from inkwell.config import EmbeddingCfg
from inkwell.db.models import Chunk
from inkwell.db.repository import Repository
from inkwell.rag.llm_client import Embedder

logger = logging.getLogger(__name__)


@dataclass
class WriteReport:
    """Outcome of one write pass. All lists hold chunk rowids in ordinal order."""

    stored: list[int] = field(default_factory=list)
    embedded: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


class EmbeddingWriter:
    """Write chunks to the DB and embed them.

    Args:
        repo:     Open Repository instance.
        embedder: Embedding capability; must produce ``config.dimensions`` floats.
        config:   Embedding configuration (model name, retry policy, concurrency).
        sleep:    Backoff sleep function (defaults to time.sleep).
    """

    def __init__(
        self,
        repo: Repository,
        embedder: Embedder,
        config: EmbeddingCfg | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._config = config or EmbeddingCfg()
        self._sleep = sleep or time.sleep
        self._projects: dict[str, str] = {}

    def write(
        self,
        chunks: list[Chunk],
        vec_table: str,
        on_progress: Callable[[int], None] | None = None,
    ) -> WriteReport:
        """Store *chunks*, then embed them. Returns a WriteReport."""
        ordered = sorted(chunks, key=lambda c: (c.source_id, c.chunk_index))
        report = WriteReport()
        for chunk in ordered:
            chunk.rowid = self._repo.add_chunk(chunk)
            report.stored.append(chunk.rowid)
        self._embed_all(ordered, vec_table, report, on_progress)
        return report

    def write_pending(
        self,
        source_id: str,
        vec_table: str,
        on_progress: Callable[[int], None] | None = None,
    ) -> WriteReport:
        """Retry embedding for stored chunks of *source_id* that have no vector."""
        pending = self._repo.list_pending_chunks(source_id)
        report = WriteReport()
        if pending:
            logger.info("Retrying %d pending embeddings for source %s", len(pending), source_id)
        self._embed_all(pending, vec_table, report, on_progress)
        return report

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------

    def _embed_all(
        self,
        chunks: list[Chunk],
        vec_table: str,
        report: WriteReport,
        on_progress: Callable[[int], None] | None,
    ) -> None:
        if not chunks:
            return

        if self._config.concurrency > 1:
            with ThreadPoolExecutor(max_workers=self._config.concurrency) as pool:
                # map() yields in submission order, whatever the completion order.
                vectors = list(pool.map(self._embed_with_retry, chunks))
        else:
            vectors = (self._embed_with_retry(c) for c in chunks)

        for idx, (chunk, vector) in enumerate(zip(chunks, vectors)):
            if vector is None:
                report.failed.append(chunk.rowid)
            else:
                self._check_dimensions(vector)
                self._repo.add_embedding(
                    vec_table,
                    chunk.rowid,
                    self._project_of(chunk.source_id),
                    vector,
                    self._config.model,
                )
                chunk.embedding_model = self._config.model
                report.embedded.append(chunk.rowid)
            if on_progress is not None:
                on_progress(idx)

        if report.failed:
            logger.warning(
                "%d of %d chunks could not be embedded; they will be retried on the next write",
                len(report.failed),
                len(chunks),
            )

    def _embed_with_retry(self, chunk: Chunk) -> list[float] | None:
        """Return the chunk's vector, or None once every attempt has failed."""
        delay = self._config.backoff
        attempts = self._config.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                return self._embedder(chunk.content)
            except Exception as exc:
                if attempt == attempts:
                    logger.warning(
                        "Embedding chunk %d of source %s failed after %d attempts: %s",
                        chunk.chunk_index,
                        chunk.source_id,
                        attempts,
                        exc,
                    )
                    return None
                logger.debug(
                    "Embedding attempt %d/%d failed for chunk %d: %s",
                    attempt,
                    attempts,
                    chunk.chunk_index,
                    exc,
                )
                self._sleep(delay)
                delay *= 2
        return None

    def _check_dimensions(self, vector: list[float]) -> None:
        if len(vector) != self._config.dimensions:
            raise ValueError(
                f"Embedding model '{self._config.model}' returned {len(vector)} dimensions, "
                f"expected {self._config.dimensions}. Update embedding.dimensions in inkwell.yaml."
            )

    def _project_of(self, source_id: str) -> str:
        if source_id not in self._projects:
            source = self._repo.get_source(source_id)
            if source is None:
                raise ValueError(f"Chunk references unknown source '{source_id}'")
            self._projects[source_id] = source.project_id
        return self._projects[source_id]
