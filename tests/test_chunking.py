"""Tests for the recursive, overlap-aware text chunker."""

import math

import pytest

from tinyagent.rag.chunking import chunk_text, split_text


PROSE = (
    "The agent loop sends the conversation to the model.\n\n"
    "When the model asks for a tool, the runtime calls it and appends the result. "
    "The loop repeats until the model answers without tools.\n\n"
    "Retrieval adds context from the knowledge base before the first call.\n"
    "Memories and workspace files are both searchable."
)


def rebuild(chunks):
    return "".join(chunk.new_content for chunk in chunks)


# ═══════════════════════════════════════════════════════════════
# Size and coverage
# ═══════════════════════════════════════════════════════════════

class TestChunkBounds:

    @pytest.mark.parametrize("size,overlap", [(40, 0), (40, 6), (80, 12), (25, None), (200, 30)])
    def test_chunks_fit_and_cover_the_text(self, size, overlap):
        chunks = chunk_text(PROSE, size, overlap)

        assert all(len(chunk.content) <= size for chunk in chunks)
        assert rebuild(chunks) == PROSE
        assert [chunk.index for chunk in chunks] == list(range(len(chunks)))

    def test_short_text_is_one_chunk(self):
        assert split_text("short", 100) == ["short"]

    def test_text_of_exact_size_is_one_chunk(self):
        assert split_text("x" * 10, 10) == ["x" * 10]

    def test_empty_text_has_no_chunks(self):
        assert chunk_text("", 10) == []

    def test_unbroken_text_is_hard_cut(self):
        assert split_text("x" * 25, 10, 0) == ["x" * 10, "x" * 10, "x" * 5]


# ═══════════════════════════════════════════════════════════════
# Boundaries
# ═══════════════════════════════════════════════════════════════

class TestSeparators:

    def test_paragraphs_stay_whole_when_they_fit(self):
        text = "alpha beta\n\ngamma delta"

        assert split_text(text, 14, 0) == ["alpha beta\n\n", "gamma delta"]

    def test_long_paragraph_falls_back_to_words(self):
        text = "one two three four five six"

        assert split_text(text, 10, 0) == ["one two ", "three ", "four five ", "six"]

    def test_small_pieces_are_merged(self):
        text = "a\nb\nc\nd\ne\nf"

        chunks = split_text(text, 6, 0)

        assert chunks == ["a\nb\nc\n", "d\ne\nf"]


# ═══════════════════════════════════════════════════════════════
# Overlap
# ═══════════════════════════════════════════════════════════════

class TestOverlap:

    def test_each_chunk_starts_with_the_previous_tail(self):
        chunks = chunk_text(PROSE, 50, 8)

        assert len(chunks) > 2
        assert chunks[0].overlap == 0
        for previous, current in zip(chunks, chunks[1:]):
            assert current.overlap == 8
            assert current.content.startswith(previous.content[-8:])

    def test_default_overlap_is_fifteen_percent(self):
        chunks = chunk_text("x" * 100, 20)

        assert chunks[1].overlap == 3

    def test_overlap_not_smaller_than_size_falls_back_to_a_third(self):
        chunks = chunk_text("x" * 100, 12, 12)

        assert chunks[1].overlap == 4
        assert all(len(c.content) <= 12 for c in chunks)

    @pytest.mark.parametrize("overlap", [-5, math.nan, math.inf])
    def test_invalid_overlap_means_none(self, overlap):
        chunks = chunk_text("x" * 30, 10, overlap)

        assert all(chunk.overlap == 0 for chunk in chunks)
        assert len(chunks) == 3


# ═══════════════════════════════════════════════════════════════
# Degenerate sizes
# ═══════════════════════════════════════════════════════════════

class TestDegenerateSize:

    @pytest.mark.parametrize("size", [0, -10, math.nan, math.inf])
    def test_whole_text_is_one_chunk(self, size):
        assert split_text(PROSE, size) == [PROSE]

    @pytest.mark.parametrize("size", [0.5, 0.01])
    def test_size_below_one_cuts_single_characters(self, size):
        assert split_text("abcdefghij", size, 0) == list("abcdefghij")

    def test_fractional_size_rounds_down(self):
        chunks = split_text("abcdefghij", 3.7, 0)

        assert chunks == ["abc", "def", "ghi", "j"]
