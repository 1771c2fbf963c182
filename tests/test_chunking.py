"""
Tests for upchunk.chunking module.

Tests chunk planning including:
- Coverage and ordering of byte ranges
- Last-chunk sizing
- Empty sources
- Content-Range header values
- Argument validation
"""

from __future__ import annotations

import pytest

from upchunk.chunking import Chunk, chunk_count, plan_chunks


class TestPlanChunks:
    """Tests for plan_chunks()."""

    @pytest.mark.parametrize(
        "total_length, chunk_size",
        [(1, 1), (7, 3), (9, 3), (10, 4), (4, 10), (1_000_003, 65_536)],
    )
    def test_ranges_cover_file_exactly_once(self, total_length, chunk_size):
        """Test that ranges are contiguous, ordered and cover [0, total)."""
        chunks = plan_chunks(total_length, chunk_size)

        assert chunks[0].start == 0
        assert chunks[-1].end == total_length
        for prev, nxt in zip(chunks, chunks[1:]):
            assert prev.end == nxt.start
        assert all(0 < c.size <= chunk_size for c in chunks)
        assert sum(c.size for c in chunks) == total_length
        assert len(chunks) == chunk_count(total_length, chunk_size)

    def test_only_last_chunk_may_be_smaller(self):
        """Test that every chunk but the last is exactly chunk_size."""
        chunks = plan_chunks(10, 4)

        assert [c.size for c in chunks] == [4, 4, 2]

    def test_ten_megabytes_in_four_megabyte_chunks(self):
        """Test the 10,000,000 byte file with 4,000,000 byte chunks."""
        chunks = plan_chunks(10_000_000, 4_000_000)

        assert [c.size for c in chunks] == [4_000_000, 4_000_000, 2_000_000]
        assert [c.content_range(10_000_000) for c in chunks] == [
            "bytes 0-3999999/10000000",
            "bytes 4000000-7999999/10000000",
            "bytes 8000000-9999999/10000000",
        ]

    def test_file_smaller_than_chunk_is_single_chunk(self):
        """Test that a small file degrades to one chunk."""
        chunks = plan_chunks(100, 5 * 1024 * 1024)

        assert chunks == [Chunk(0, 100)]

    def test_empty_file_has_no_chunks(self):
        """Test that a zero-length file yields zero chunks."""
        assert plan_chunks(0, 1024) == []
        assert chunk_count(0, 1024) == 0

    def test_invalid_arguments_raise(self):
        """Test that negative lengths and non-positive sizes are rejected."""
        with pytest.raises(ValueError, match="total_length"):
            plan_chunks(-1, 10)
        with pytest.raises(ValueError, match="chunk_size"):
            plan_chunks(10, 0)


class TestChunk:
    """Tests for the Chunk type."""

    def test_new_chunk_has_no_retries(self):
        """Test that retry_count starts at zero."""
        assert Chunk(0, 10).retry_count == 0

    def test_retry_count_does_not_affect_identity(self):
        """Test that chunks compare by byte range only."""
        a = Chunk(0, 10)
        b = Chunk(0, 10, retry_count=3)

        assert a == b

    @pytest.mark.parametrize("start, end", [(-1, 5), (5, 5), (6, 5)])
    def test_invalid_range_rejected(self, start, end):
        """Test that empty or negative ranges cannot be created."""
        with pytest.raises(ValueError, match="invalid chunk range"):
            Chunk(start, end)
