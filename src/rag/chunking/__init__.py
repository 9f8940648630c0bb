"""Document chunking.

Splits extracted text into fixed-size, overlapping windows suitable for
embedding. The window order defines each chunk's index, and therefore its
vector id, so chunking must stay deterministic.
"""

import math
import re
from dataclasses import dataclass

DEFAULT_CHUNK_SIZE = 2000
DEFAULT_OVERLAP_PERCENT = 40

_WHITESPACE = re.compile(r"\s+")


@dataclass
class Chunk:
    """A window of normalized document text."""

    index: int
    text: str
    start_char: int
    end_char: int


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim the ends."""
    return _WHITESPACE.sub(" ", text).strip()


class SlidingWindowChunker:
    """Fixed-size chunking with percentage overlap.

    Windows are ``chunk_size`` characters wide and advance by
    ``chunk_size - floor(chunk_size * overlap_percent / 100)``. The last
    window always ends at the end of the text, even if it is short or
    mostly overlaps the previous one.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        overlap_percent: float = DEFAULT_OVERLAP_PERCENT,
    ):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if not 0 <= overlap_percent < 100:
            raise ValueError(f"overlap_percent must be in [0, 100), got {overlap_percent}")

        self.chunk_size = chunk_size
        self.overlap_percent = overlap_percent
        self.overlap = math.floor(chunk_size * overlap_percent / 100)
        self.stride = chunk_size - self.overlap

    def chunk(self, text: str) -> list[Chunk]:
        """Split text into overlapping windows."""
        cleaned = normalize_whitespace(text)
        length = len(cleaned)

        if length <= self.chunk_size:
            return [Chunk(index=0, text=cleaned, start_char=0, end_char=length)]

        chunks = []
        start = 0
        while start < length:
            end = min(start + self.chunk_size, length)
            chunks.append(
                Chunk(index=len(chunks), text=cleaned[start:end], start_char=start, end_char=end)
            )
            if end == length:
                break
            start += self.stride

        return chunks


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap_percent: float = DEFAULT_OVERLAP_PERCENT,
) -> list[str]:
    """Return the chunk texts for a document, in index order."""
    chunker = SlidingWindowChunker(chunk_size=chunk_size, overlap_percent=overlap_percent)
    return [c.text for c in chunker.chunk(text)]


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_OVERLAP_PERCENT",
    "Chunk",
    "SlidingWindowChunker",
    "chunk_text",
    "normalize_whitespace",
]
