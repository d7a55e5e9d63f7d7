"""Tests for SourceProcessor — status lifecycle and retry behaviour."""

from __future__ import annotations

import pytest

from inkwell.config import EmbeddingCfg
from inkwell.db.models import Source
from inkwell.db.repository import Repository
from inkwell.db.vectors import ensure_vec_table
from inkwell.ingest.chunker import SentenceChunker
from inkwell.ingest.embedding_writer import EmbeddingWriter
from inkwell.ingest.pipeline import IngestError, SourceNotFoundError, SourceProcessor
from inkwell.ingest.summarizer import SourceAnalyzer

TEXT = " ".join(f"Sentence number {i} talks about focus and habits." for i in range(120))


class Embedder:
    def __init__(self, fail_always: bool = False, fail_texts: set[str] | None = None):
        self.fail_always = fail_always
        self.fail_texts = fail_texts or set()
        self.calls = 0

    def __call__(self, text: str) -> list[float]:
        self.calls += 1
        if self.fail_always or text in self.fail_texts:
            raise RuntimeError("embedding provider down")
        return [1.0, 0.0]


@pytest.fixture
def vec_table(tmp_db):
    return ensure_vec_table(tmp_db, "tiny", dimensions=2)


def _processor(repo, vec_table, embedder, **kwargs) -> SourceProcessor:
    writer = EmbeddingWriter(
        repo, embedder, EmbeddingCfg(model="tiny", dimensions=2), sleep=lambda _: None
    )
    return SourceProcessor(repo, SentenceChunker(), writer, vec_table, **kwargs)


def _add(repo: Repository, **kwargs) -> Source:
    source = Source(
        id=kwargs.pop("id", "src-1"),
        project_id="p1",
        title="Habits",
        source_type=kwargs.pop("source_type", "text"),
        **kwargs,
    )
    repo.add_source(source)
    return source


def test_process_text_source_becomes_ready(repo, vec_table):
    _add(repo, raw_content=TEXT)
    progress: list[int] = []

    result = _processor(repo, vec_table, Embedder()).process("src-1", on_progress=progress.append)

    assert result.source.status == "ready"
    assert len(result.chunks) > 1
    assert all(c.embedded for c in result.chunks)
    assert progress == list(range(len(result.chunks)))
    assert repo.count_pending_chunks("src-1") == 0


def test_unknown_source_raises(repo, vec_table):
    with pytest.raises(SourceNotFoundError):
        _processor(repo, vec_table, Embedder()).process("missing")


def test_source_without_text_is_marked_failed(repo, vec_table):
    _add(repo, source_type="youtube", location="https://youtu.be/x")

    with pytest.raises(IngestError, match="no text available"):
        _processor(repo, vec_table, Embedder()).process("src-1")

    assert repo.get_source("src-1").status == "failed"


def test_whitespace_only_text_is_marked_failed(repo, vec_table):
    _add(repo, raw_content="   \n  ")
    with pytest.raises(IngestError):
        _processor(repo, vec_table, Embedder()).process("src-1")
    assert repo.get_source("src-1").status == "failed"


def test_pdf_text_extracted_and_stored(repo, vec_table):
    _add(repo, source_type="pdf", location="book.pdf")
    read: list = []

    def fake_pdf(path):
        read.append(path)
        return TEXT

    _processor(repo, vec_table, Embedder(), read_pdf=fake_pdf).process("src-1")

    assert read == ["book.pdf"]
    assert repo.get_source("src-1").raw_content == TEXT


def test_article_fetch_error_marks_failed_with_cause(repo, vec_table):
    _add(repo, source_type="article", location="https://example.com/a")

    def fetch(url):
        raise RuntimeError("connection reset")

    with pytest.raises(IngestError) as excinfo:
        _processor(repo, vec_table, Embedder(), fetch_text=fetch).process("src-1")

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert repo.get_source("src-1").status == "failed"


def test_all_embeddings_failing_marks_failed_but_keeps_chunks(repo, vec_table):
    _add(repo, raw_content=TEXT)

    with pytest.raises(IngestError, match="could be embedded"):
        _processor(repo, vec_table, Embedder(fail_always=True)).process("src-1")

    assert repo.get_source("src-1").status == "failed"
    assert repo.count_chunks_by_source("src-1") > 0
    assert repo.count_pending_chunks("src-1") == repo.count_chunks_by_source("src-1")


def test_partial_failure_is_ready_with_pending(repo, vec_table):
    _add(repo, raw_content=TEXT)
    first = SentenceChunker().chunk("src-1", TEXT)[0].content

    result = _processor(repo, vec_table, Embedder(fail_texts={first})).process("src-1")

    assert result.source.status == "ready"
    assert len(result.report.failed) == 1
    assert repo.count_pending_chunks("src-1") == 1


def test_reprocess_only_embeds_pending_chunks(repo, vec_table):
    _add(repo, raw_content=TEXT)
    with pytest.raises(IngestError):
        _processor(repo, vec_table, Embedder(fail_always=True)).process("src-1")
    chunk_count = repo.count_chunks_by_source("src-1")

    embedder = Embedder()
    result = _processor(repo, vec_table, embedder).process("src-1")

    assert result.source.status == "ready"
    assert embedder.calls == chunk_count
    assert repo.count_chunks_by_source("src-1") == chunk_count
    assert repo.count_pending_chunks("src-1") == 0


def test_analyzer_runs_once(repo, vec_table):
    _add(repo, raw_content=TEXT)
    calls: list = []

    def complete(messages, system=None):
        calls.append(messages)
        return '{"summary": "About habits.", "keyConcepts": ["habits"]}'

    analyzer = SourceAnalyzer(repo, complete)
    result = _processor(repo, vec_table, Embedder(), analyzer=analyzer).process("src-1")
    _processor(repo, vec_table, Embedder(), analyzer=analyzer).process("src-1")

    assert result.source.summary == "About habits."
    assert result.source.key_concepts == ["habits"]
    assert len(calls) == 1


def test_failed_retry_marks_source_failed(repo, vec_table):
    _add(repo, raw_content=TEXT)
    with pytest.raises(IngestError):
        _processor(repo, vec_table, Embedder(fail_always=True)).process("src-1")

    def wrong_dimensions(text: str) -> list[float]:
        return [1.0, 0.0, 0.0]

    with pytest.raises(IngestError, match="dimensions") as excinfo:
        _processor(repo, vec_table, wrong_dimensions).process("src-1")

    assert isinstance(excinfo.value.__cause__, ValueError)
    assert repo.get_source("src-1").status == "failed"
    assert repo.count_pending_chunks("src-1") == repo.count_chunks_by_source("src-1")
