"""Unit tests for sliding-window chunking."""

import pytest

from src.rag.chunking import SlidingWindowChunker, chunk_text, normalize_whitespace

ALPHABET = "abcdefghijklmnopqrstuvwxy"  # 25 chars


class TestNormalizeWhitespace:
    def test_collapses_runs_and_trims(self) -> None:
        assert normalize_whitespace("  a \n\n b\t\tc  ") == "a b c"

    def test_empty(self) -> None:
        assert normalize_whitespace(" \n\t ") == ""


class TestSlidingWindowChunker:
    def test_stride_from_overlap_percent(self) -> None:
        chunker = SlidingWindowChunker(chunk_size=2000, overlap_percent=40)
        assert chunker.overlap == 800
        assert chunker.stride == 1200

    def test_overlap_is_floored(self) -> None:
        chunker = SlidingWindowChunker(chunk_size=7, overlap_percent=40)
        assert chunker.overlap == 2
        assert chunker.stride == 5

    def test_short_text_is_single_chunk(self) -> None:
        chunks = SlidingWindowChunker(chunk_size=10).chunk("  short   text ")
        assert len(chunks) == 1
        assert chunks[0].text == "short text"
        assert chunks[0].index == 0

    def test_text_exactly_chunk_size_is_single_chunk(self) -> None:
        chunks = SlidingWindowChunker(chunk_size=25).chunk(ALPHABET)
        assert [c.text for c in chunks] == [ALPHABET]

    def test_empty_text_yields_one_empty_chunk(self) -> None:
        chunks = SlidingWindowChunker(chunk_size=10).chunk("   ")
        assert len(chunks) == 1
        assert chunks[0].text == ""

    def test_windows_and_final_partial_window(self) -> None:
        chunks = SlidingWindowChunker(chunk_size=10, overlap_percent=40).chunk(ALPHABET)

        assert [(c.start_char, c.end_char) for c in chunks] == [
            (0, 10),
            (6, 16),
            (12, 22),
            (18, 25),
        ]
        assert chunks[-1].text == "stuvwxy"
        assert [c.index for c in chunks] == [0, 1, 2, 3]

    def test_consecutive_chunks_share_overlap(self) -> None:
        chunks = SlidingWindowChunker(chunk_size=10, overlap_percent=40).chunk(ALPHABET)
        for prev, nxt in zip(chunks, chunks[1:]):
            assert prev.text[-4:] == nxt.text[:4]

    def test_covers_every_character(self) -> None:
        text = "word " * 900
        chunker = SlidingWindowChunker(chunk_size=2000, overlap_percent=40)
        chunks = chunker.chunk(text)
        cleaned = normalize_whitespace(text)

        covered = set()
        for c in chunks:
            assert cleaned[c.start_char : c.end_char] == c.text
            covered.update(range(c.start_char, c.end_char))
        assert covered == set(range(len(cleaned)))

    def test_whitespace_is_normalized_before_windowing(self) -> None:
        chunks = SlidingWindowChunker(chunk_size=5, overlap_percent=0).chunk("ab\n\n\ncd   ef  gh")
        assert [c.text for c in chunks] == ["ab cd", " ef g", "h"]

    def test_deterministic(self) -> None:
        text = "Quarterly revenue grew in every region. " * 120
        first = chunk_text(text, chunk_size=300, overlap_percent=40)
        second = chunk_text(text, chunk_size=300, overlap_percent=40)
        assert first == second

    def test_zero_overlap(self) -> None:
        assert chunk_text(ALPHABET, chunk_size=10, overlap_percent=0) == [
            "abcdefghij",
            "klmnopqrst",
            "uvwxy",
        ]

    @pytest.mark.parametrize(
        ("chunk_size", "overlap_percent"),
        [(0, 40), (-5, 40), (10, 100), (10, -1)],
    )
    def test_invalid_parameters(self, chunk_size: int, overlap_percent: float) -> None:
        with pytest.raises(ValueError):
            SlidingWindowChunker(chunk_size=chunk_size, overlap_percent=overlap_percent)
