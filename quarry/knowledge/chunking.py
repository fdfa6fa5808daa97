"""
Chunking

Split documents into retrievable chunks.

Design decisions:
- Pure, synchronous functions; chunking never suspends
- Character windows with overlap, nudged back to a sentence or word boundary
- Tabular data is chunked by rows, not characters
- Deterministic: identical input always gives identical chunks
"""

from collections.abc import Iterable, Mapping

from quarry.core.types import Chunk

SENTENCE_BREAK = ". "
WORD_BREAK = " "

# Fraction of the window, measured back from its right edge, searched for a break
BOUNDARY_SEARCH_FRACTION = 0.2


def _find_break(text: str, start: int, end: int, target_size: int) -> int:
    """Move a window's right edge back to the nearest sentence or word break."""
    floor = max(start + 1, end - int(target_size * BOUNDARY_SEARCH_FRACTION))

    idx = text.rfind(SENTENCE_BREAK, floor, end)
    if idx != -1:
        # Keep the terminator with the sentence it ends
        return idx + 1

    idx = text.rfind(WORD_BREAK, floor, end)
    if idx != -1:
        return idx

    return end


def chunk_text(
    text: str | None,
    target_size: int,
    overlap: int,
    source_id: str = "",
) -> list[Chunk]:
    """
    Split text into overlapping, trimmed chunks.

    Args:
        text: Text to split. None, non-str and empty input yield [].
        target_size: Maximum characters per window.
        overlap: Characters shared between consecutive windows.
        source_id: Identifier of the originating document.

    Raises:
        ValueError: Unless target_size > overlap >= 0.
    """
    if overlap < 0 or target_size <= overlap:
        raise ValueError(
            f"chunking requires target_size > overlap >= 0 "
            f"(got target_size={target_size}, overlap={overlap})"
        )

    if not isinstance(text, str) or not text:
        return []

    text = text.replace("\r\n", "\n")
    length = len(text)

    chunks: list[Chunk] = []
    start = 0

    while start < length:
        end = min(start + target_size, length)
        if end < length:
            end = _find_break(text, start, end, target_size)

        piece = text[start:end].strip()
        if piece:
            chunks.append(
                Chunk(text=piece, source_id=source_id, sequence_index=len(chunks))
            )

        if end >= length:
            break

        # Progress must be strictly positive even when overlap eats the window
        start = max(end - overlap, start + 1)

    return chunks


def render_row(row: Mapping[str, object]) -> str:
    """Render one table row as comma-separated `key: value` pairs."""
    parts = []
    for key, value in row.items():
        if value is None or value == "":
            continue
        parts.append(f"{key}: {value}")
    return ", ".join(parts)


def chunk_rows(
    rows: Iterable[Mapping[str, object]],
    rows_per_chunk: int,
    source_id: str = "",
) -> list[Chunk]:
    """
    Chunk tabular rows, rows_per_chunk rendered rows per chunk.

    Blank rows are dropped before batching.
    """
    if rows_per_chunk < 1:
        raise ValueError(f"rows_per_chunk must be >= 1 (got {rows_per_chunk})")

    rendered = [line for line in (render_row(row) for row in rows) if line]

    chunks: list[Chunk] = []
    for i in range(0, len(rendered), rows_per_chunk):
        chunks.append(
            Chunk(
                text="\n".join(rendered[i : i + rows_per_chunk]),
                source_id=source_id,
                sequence_index=len(chunks),
            )
        )
    return chunks


class TextChunker:
    """
    Configured chunker.

    Holds the window size and overlap so callers do not pass them around.
    """

    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 100, rows_per_chunk: int = 50):
        if chunk_overlap < 0 or chunk_size <= chunk_overlap:
            raise ValueError(
                f"chunk_size must exceed chunk_overlap (got {chunk_size}, {chunk_overlap})"
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.rows_per_chunk = rows_per_chunk

    def chunk(self, text: str | None, source_id: str = "") -> list[Chunk]:
        return chunk_text(text, self.chunk_size, self.chunk_overlap, source_id)

    def chunk_rows(self, rows: Iterable[Mapping[str, object]], source_id: str = "") -> list[Chunk]:
        return chunk_rows(rows, self.rows_per_chunk, source_id)
