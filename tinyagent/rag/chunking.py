"""
Text Chunking
=============

Splits text into bounded pieces before embedding.

The splitter works recursively through a list of separators, from the most
meaningful boundary to the least:

    "\\n\\n"  paragraphs
    "\\n"    lines
    " "     words
    ""      characters (hard cut)

A piece that fits is kept whole; a piece that is too long is split again on
the next separator. Neighbouring pieces are then merged greedily while they
still fit. Separators stay attached to the piece they end, so the pieces
concatenate back to the exact input.

Overlap:
    Every chunk after the first starts with the last `overlap` characters of
    the chunk before it. Retrieval then sees some context across the
    boundary. Pieces are cut to `size - overlap` so that seed + piece never
    exceeds `size`.

    text:    [ piece 0 ][ piece 1 ][ piece 2 ]
    chunks:  [ piece 0 ]
                   [tail][ piece 1 ]
                              [tail][ piece 2 ]

Degenerate input:
    - size <= 0, or not a finite number: the whole text is one chunk
    - fractional size: rounded down, with 0 < size < 1 treated as 1
    - negative or non-finite overlap: no overlap
    - overlap >= size: overlap falls back to size // 3
    - empty text: no chunks
    - text no longer than size: one chunk
"""

import math
from dataclasses import dataclass

SEPARATORS: tuple[str, ...] = ("\n\n", "\n", " ", "")

DEFAULT_OVERLAP_RATIO = 0.15


@dataclass(frozen=True)
class TextChunk:
    """
    One chunk of a source text.

    Attributes:
        content: The chunk text, overlap prefix included
        index: Zero-based position in the source
        overlap: Length of the prefix copied from the previous chunk
    """
    content: str
    index: int
    overlap: int = 0

    @property
    def new_content(self) -> str:
        """The part of the chunk not repeated from the previous one."""
        return self.content[self.overlap:]


def _is_valid_size(value: float) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)


def _resolve_overlap(size: int, overlap: float | None) -> int:
    if overlap is None:
        overlap = math.floor(size * DEFAULT_OVERLAP_RATIO)
    if not _is_valid_size(overlap) or overlap < 0:
        return 0
    overlap = int(overlap)
    if overlap >= size:
        return size // 3
    return overlap


def _split_keeping_separator(text: str, separator: str) -> list[str]:
    """Split on separator, leaving each separator at the end of its part."""
    parts = text.split(separator)
    kept = [part + separator for part in parts[:-1]]
    kept.append(parts[-1])
    return [part for part in kept if part]


def _hard_cut(text: str, limit: int) -> list[str]:
    return [text[i:i + limit] for i in range(0, len(text), limit)]


def _merge(pieces: list[str], limit: int) -> list[str]:
    """Greedily join neighbouring pieces while they fit in limit."""
    merged: list[str] = []
    current = ""
    for piece in pieces:
        if current and len(current) + len(piece) > limit:
            merged.append(current)
            current = piece
        else:
            current += piece
    if current:
        merged.append(current)
    return merged


def _split_recursive(text: str, limit: int, separators: tuple[str, ...]) -> list[str]:
    if len(text) <= limit:
        return [text]

    for i, separator in enumerate(separators):
        if separator == "":
            return _hard_cut(text, limit)
        if separator not in text:
            continue

        pieces: list[str] = []
        for part in _split_keeping_separator(text, separator):
            if len(part) <= limit:
                pieces.append(part)
            else:
                pieces.extend(_split_recursive(part, limit, separators[i + 1:]))
        return _merge(pieces, limit)

    return _hard_cut(text, limit)


def chunk_text(
    text: str,
    size: float,
    overlap: float | None = None
) -> list[TextChunk]:
    """
    Split text into overlap-linked chunks of at most `size` characters.

    Args:
        text: The text to split
        size: Maximum chunk length in characters
        overlap: Characters copied from the end of each chunk to the start
            of the next (default: 15% of size)

    Returns:
        Chunks in source order
    """
    if not text:
        return []
    if not _is_valid_size(size) or size <= 0:
        return [TextChunk(content=text, index=0)]

    # Fractional sizes round down, but never below one character
    size = max(1, int(size))
    if len(text) <= size:
        return [TextChunk(content=text, index=0)]
    overlap = _resolve_overlap(size, overlap)

    pieces = _split_recursive(text, size - overlap, SEPARATORS)

    chunks = [TextChunk(content=pieces[0], index=0)]
    for index, piece in enumerate(pieces[1:], start=1):
        seed = chunks[-1].content[-overlap:] if overlap else ""
        chunks.append(TextChunk(content=seed + piece, index=index, overlap=len(seed)))
    return chunks


def split_text(
    text: str,
    size: float,
    overlap: float | None = None
) -> list[str]:
    """Same as chunk_text, returning only the chunk strings."""
    return [chunk.content for chunk in chunk_text(text, size, overlap)]
