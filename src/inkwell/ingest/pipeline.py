"""Source processing: raw text → chunks → embeddings → analysis.

Status lifecycle of a source:

  uploading → processing → ready
                        ↘ failed

A source is marked ``failed`` when no text can be obtained, when nothing
could be stored, or when not a single chunk could be embedded. Chunks are
immutable once stored: processing a source that already has chunks only
retries the embeddings still missing.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from inkwell.db.models import Chunk, Source
from inkwell.db.repository import Repository
from inkwell.ingest.chunker import SentenceChunker
from inkwell.ingest.embedding_writer import EmbeddingWriter, WriteReport
from inkwell.ingest.pdf import extract_pdf_text
from inkwell.ingest.summarizer import SourceAnalyzer
from inkwell.ingest.web import fetch_article

logger = logging.getLogger(__name__)


class IngestError(RuntimeError):
    """Processing a source failed; the source has been marked ``failed``."""


class SourceNotFoundError(LookupError):
    """No source with the given id exists."""


@dataclass
class ProcessResult:
    source: Source
    chunks: list[Chunk] = field(default_factory=list)
    report: WriteReport = field(default_factory=WriteReport)


class SourceProcessor:
    """Turn a registered source into retrievable chunks.

    Args:
        repo:       Open Repository.
        chunker:    Sentence chunker.
        writer:     Embedding writer bound to the configured embedding model.
        vec_table:  Vec table the writer stores into.
        analyzer:   Optional summary/key-concept analyzer.
        fetch_text: URL → text function for ``article`` sources.
        read_pdf:   Path → text function for ``pdf`` sources.
    """

    def __init__(
        self,
        repo: Repository,
        chunker: SentenceChunker,
        writer: EmbeddingWriter,
        vec_table: str,
        analyzer: SourceAnalyzer | None = None,
        fetch_text: Callable[[str], str] | None = None,
        read_pdf: Callable[[str | Path], str] = extract_pdf_text,
    ) -> None:
        self._repo = repo
        self._chunker = chunker
        self._writer = writer
        self._vec_table = vec_table
        self._analyzer = analyzer
        self._fetch_text = fetch_text or (lambda url: fetch_article(url).text)
        self._read_pdf = read_pdf

    def process(
        self, source_id: str, on_progress: Callable[[int], None] | None = None
    ) -> ProcessResult:
        """Process *source_id* and return what was stored.

        Raises:
            SourceNotFoundError: Unknown source id.
            IngestError: The source could not be processed (now ``failed``).
        """
        source = self._repo.get_source(source_id)
        if source is None:
            raise SourceNotFoundError(f"Source '{source_id}' not found")

        self._repo.set_source_status(source_id, "processing")

        try:
            if self._repo.count_chunks_by_source(source_id):
                report = self._writer.write_pending(source_id, self._vec_table, on_progress)
                chunks = self._repo.list_chunks_by_source(source_id)
            else:
                text = self._raw_text(source)
                chunks = self._chunker.chunk(source_id, text)
                report = self._writer.write(chunks, self._vec_table, on_progress)
        except Exception as exc:
            self._fail(source_id, exc)
            raise IngestError(f"Could not process '{source.title}': {exc}") from exc

        if chunks and all(not c.embedded for c in chunks):
            error = IngestError(
                f"None of the {len(chunks)} chunks of '{source.title}' could be embedded; "
                "run the command again to retry"
            )
            self._fail(source_id, error)
            raise error

        if self._analyzer is not None and not source.summary:
            self._analyzer.analyze(source_id, self._stored_text(source_id), source.source_type)

        self._repo.set_source_status(source_id, "ready")
        logger.info(
            "Source %s ready: %d chunks, %d embedded this pass, %d pending",
            source_id,
            len(chunks),
            len(report.embedded),
            len(report.failed),
        )
        return ProcessResult(
            source=self._repo.get_source(source_id) or source,
            chunks=chunks,
            report=report,
        )

    def _raw_text(self, source: Source) -> str:
        """Return the source's raw text, extracting and storing it on first use."""
        text = source.raw_content
        if not text:
            if source.source_type == "pdf" and source.location:
                text = self._read_pdf(source.location)
            elif source.source_type == "article" and source.location:
                text = self._fetch_text(source.location)
            else:
                raise ValueError(
                    f"no text available for {source.source_type} source; provide its text content"
                )
            if text.strip():
                self._repo.set_source_content(source.id, text)
        if not text.strip():
            raise ValueError("source contains no extractable text")
        return text

    def _stored_text(self, source_id: str) -> str:
        stored = self._repo.get_source(source_id)
        return (stored.raw_content or "") if stored else ""

    def _fail(self, source_id: str, exc: Exception) -> None:
        logger.error("Processing source %s failed: %s", source_id, exc)
        self._repo.set_source_status(source_id, "failed")
