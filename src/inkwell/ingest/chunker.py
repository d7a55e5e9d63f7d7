"""Sentence-aligned chunker with overlap.

Strategy:
- Split text on sentence boundaries ('.', '!' or '?' followed by whitespace).
- Accumulate sentences into a buffer of at most ``chunk_size`` tokens
  (approximated as ``chars_per_token`` characters per token).
- When the next sentence would overflow a non-empty buffer, emit the buffer and
  start the next one with its trailing ``overlap`` tokens, then the sentence.
- A sentence longer than the target is never cut; it becomes its own chunk.

Whitespace runs between sentences are normalised to a single space; no other
character of the input is dropped.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass

from inkwell.db.models import Chunk

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


@dataclass(frozen=True)
class TextChunk:
    content: str
    ordinal: int


def split_sentences(text: str) -> list[str]:
    """Split *text* into sentence-like units; empty pieces are dropped."""
    return [s for s in _SENTENCE_BOUNDARY.split(text.strip()) if s]


def chunk_text(
    text: str,
    target_chars: int = 2_000,
    overlap_chars: int = 200,
) -> list[TextChunk]:
    """Split *text* into ordered, overlapping, sentence-aligned chunks.

    Pure function of its input. Every chunk is at most *target_chars* long
    unless it consists of a single sentence that is longer on its own.

    Args:
        text: Raw document text.
        target_chars: Maximum chunk length in characters.
        overlap_chars: Characters carried over from the end of one chunk to
            the start of the next. Shortened when the carried text plus the
            overflowing sentence would not fit in *target_chars*.

    Returns:
        Chunks with 0-based ``ordinal`` in document order; ``[]`` for empty or
        whitespace-only input.
    """
    if target_chars < 1:
        raise ValueError("target_chars must be >= 1")
    if not 0 <= overlap_chars < target_chars:
        raise ValueError("overlap_chars must be in [0, target_chars)")
    if not text or not text.strip():
        return []

    chunks: list[TextChunk] = []
    buffer = ""
    for sentence in split_sentences(text):
        if buffer and len(buffer) + 1 + len(sentence) > target_chars:
            chunks.append(TextChunk(content=buffer, ordinal=len(chunks)))
            room = target_chars - len(sentence) - 1
            buffer = _join(_tail(buffer, min(overlap_chars, room)), sentence)
        else:
            buffer = _join(buffer, sentence)

    if buffer:
        chunks.append(TextChunk(content=buffer, ordinal=len(chunks)))
    return chunks


def _tail(text: str, size: int) -> str:
    if size <= 0:
        return ""
    return text[-size:].strip()


def _join(head: str, sentence: str) -> str:
    return f"{head} {sentence}" if head else sentence


class SentenceChunker:
    """Split a source's raw text into storable Chunk records.

    Default: 500 tokens per chunk, 50 tokens of overlap, 4 characters per
    token (≈ 2000 / 200 characters). The token ratio is an approximation;
    no tokenizer is involved.
    """

    def __init__(
        self, chunk_size: int = 500, overlap: int = 50, chars_per_token: int = 4
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0 <= overlap < chunk_size:
            raise ValueError("overlap must be in [0, chunk_size)")
        if chars_per_token < 1:
            raise ValueError("chars_per_token must be >= 1")
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.chars_per_token = chars_per_token

    @property
    def target_chars(self) -> int:
        return self.chunk_size * self.chars_per_token

    @property
    def overlap_chars(self) -> int:
        return self.overlap * self.chars_per_token

    def chunk(self, source_id: str, content: str) -> list[Chunk]:
        """Split *content* into Chunk objects for *source_id*.

        Returns:
            Ordered list of Chunk objects with sequential ``chunk_index`` and
            fresh ids; embeddings are not computed here.
        """
        pieces = chunk_text(content, self.target_chars, self.overlap_chars)
        return [
            Chunk(
                id=str(uuid.uuid4()),
                source_id=source_id,
                chunk_index=p.ordinal,
                content=p.content,
            )
            for p in pieces
        ]

    def count_tokens(self, text: str) -> int:
        """Approximate token count using the configured characters-per-token ratio."""
        return max(1, len(text) // self.chars_per_token)
