"""Inkwell ingest pipeline: chunker, embedding writer, extractors, source analyzer."""

from inkwell.ingest.chunker import SentenceChunker, TextChunk, chunk_text
from inkwell.ingest.embedding_writer import EmbeddingWriter, WriteReport
from inkwell.ingest.pipeline import IngestError, SourceNotFoundError, SourceProcessor
from inkwell.ingest.summarizer import SourceAnalyzer

__all__ = [
    "EmbeddingWriter",
    "IngestError",
    "SentenceChunker",
    "SourceAnalyzer",
    "SourceNotFoundError",
    "SourceProcessor",
    "TextChunk",
    "WriteReport",
    "chunk_text",
]
