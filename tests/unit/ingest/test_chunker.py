"""Tests for the sentence-aligned chunker."""

from __future__ import annotations

import pytest

from inkwell.ingest.chunker import SentenceChunker, chunk_text, split_sentences


def _sentence(i: int) -> str:
    # 99 characters including the closing period.
    return f"S{i:02d} " + "w" * 94 + "."


def _document(n: int) -> str:
    return " ".join(_sentence(i) for i in range(n))


# ------------------------------------------------------------------
# split_sentences
# ------------------------------------------------------------------


def test_split_sentences_on_terminal_punctuation():
    text = "First one. Second one!  Third one?\nFourth"
    assert split_sentences(text) == ["First one.", "Second one!", "Third one?", "Fourth"]


def test_split_sentences_keeps_abbreviation_free_text_whole():
    assert split_sentences("no punctuation at all") == ["no punctuation at all"]


# ------------------------------------------------------------------
# chunk_text
# ------------------------------------------------------------------


def test_empty_and_whitespace_input_yield_no_chunks():
    assert chunk_text("") == []
    assert chunk_text("   \n\t ") == []


def test_short_text_is_single_chunk():
    chunks = chunk_text("One sentence. Two sentences.")
    assert len(chunks) == 1
    assert chunks[0].content == "One sentence. Two sentences."
    assert chunks[0].ordinal == 0


def test_long_document_splits_into_three_overlapping_chunks():
    text = _document(45)  # 4499 characters

    chunks = chunk_text(text, target_chars=2_000, overlap_chars=200)

    assert [c.ordinal for c in chunks] == [0, 1, 2]
    assert [len(c.content) for c in chunks] == [1999, 1999, 899]
    # The next chunk opens with the last ~200 characters of the previous one.
    assert chunks[1].content.startswith(chunks[0].content[-199:])
    assert chunks[2].content.startswith(chunks[1].content[-199:])


def test_chunks_never_exceed_target():
    chunks = chunk_text(_document(120), target_chars=2_000, overlap_chars=200)
    assert all(len(c.content) <= 2_000 for c in chunks)


def test_every_sentence_is_covered_and_unaltered():
    sentences = [_sentence(i) for i in range(45)]

    chunks = chunk_text(" ".join(sentences), target_chars=2_000, overlap_chars=200)

    joined = " ".join(c.content for c in chunks)
    for s in sentences:
        assert s in joined


def test_sentences_are_never_split_across_chunks():
    chunks = chunk_text(_document(45), target_chars=2_000, overlap_chars=200)
    for chunk in chunks:
        for piece in split_sentences(chunk.content):
            assert len(piece) == 99


def test_oversized_sentence_becomes_its_own_chunk():
    big = "x" * 3_000 + "."
    chunks = chunk_text(f"Small start. {big} Small end.", target_chars=2_000, overlap_chars=200)
    assert len(chunks) == 3
    assert chunks[0].content == "Small start."
    assert chunks[1].content == big
    assert chunks[2].content.endswith(" Small end.")
    assert len(chunks[2].content) <= 2_000


def test_zero_overlap_chunks_do_not_repeat_text():
    chunks = chunk_text(_document(45), target_chars=2_000, overlap_chars=0)
    assert sum(len(split_sentences(c.content)) for c in chunks) == 45


def test_chunking_is_deterministic():
    text = _document(60)
    assert chunk_text(text) == chunk_text(text)


@pytest.mark.parametrize("target,overlap", [(0, 0), (100, 100), (100, -1)])
def test_invalid_sizes_raise(target, overlap):
    with pytest.raises(ValueError):
        chunk_text("a. b.", target_chars=target, overlap_chars=overlap)


# ------------------------------------------------------------------
# SentenceChunker
# ------------------------------------------------------------------


def test_sentence_chunker_token_to_char_conversion():
    chunker = SentenceChunker(chunk_size=500, overlap=50, chars_per_token=4)
    assert chunker.target_chars == 2_000
    assert chunker.overlap_chars == 200


def test_sentence_chunker_builds_ordered_chunk_records():
    chunks = SentenceChunker().chunk("src-1", _document(45))

    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert all(c.source_id == "src-1" for c in chunks)
    assert len({c.id for c in chunks}) == 3
    assert not any(c.embedded for c in chunks)


def test_sentence_chunker_count_tokens():
    chunker = SentenceChunker()
    assert chunker.count_tokens("abcdefgh") == 2
    assert chunker.count_tokens("") == 1


def test_sentence_chunker_rejects_overlap_not_below_size():
    with pytest.raises(ValueError):
        SentenceChunker(chunk_size=50, overlap=50)
