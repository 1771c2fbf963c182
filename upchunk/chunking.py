# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Chunk planning for range-PUT uploads.

A file of `total_length` bytes is split into ordered, contiguous,
non-overlapping byte ranges of `chunk_size` bytes each; only the last chunk
may be shorter. An empty file produces no chunks at all.

Example:
    >>> from upchunk.chunking import plan_chunks
    >>> [c.content_range(10_000_000) for c in plan_chunks(10_000_000, 4_000_000)]
    ['bytes 0-3999999/10000000', 'bytes 4000000-7999999/10000000', 'bytes 8000000-9999999/10000000']
"""

from __future__ import annotations

from dataclasses import dataclass, field

# 5 MiB, large enough to keep request overhead low on slow links.
DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024


@dataclass
class Chunk:
    """One contiguous byte range `[start, end)` of the source file.

    Only `retry_count` changes after creation; the range is fixed.
    """

    start: int
    end: int
    retry_count: int = field(default=0, compare=False)

    def __post_init__(self) -> None:
        if self.start < 0 or self.end <= self.start:
            raise ValueError(f"invalid chunk range: [{self.start}, {self.end})")

    @property
    def size(self) -> int:
        return self.end - self.start

    def content_range(self, total_length: int) -> str:
        """Return the Content-Range header value for this chunk."""
        return f"bytes {self.start}-{self.end - 1}/{total_length}"


def chunk_count(total_length: int, chunk_size: int) -> int:
    """Number of chunks needed, i.e. ceil(total_length / chunk_size)."""
    return -(-total_length // chunk_size)


def plan_chunks(total_length: int, chunk_size: int) -> list[Chunk]:
    """Partition `[0, total_length)` into chunks of at most `chunk_size`.

    Args:
        total_length: Size of the source in bytes (>= 0).
        chunk_size: Target chunk size in bytes (> 0).

    Returns:
        The chunks in ascending order. Empty when total_length is 0.

    Raises:
        ValueError: If total_length is negative or chunk_size is not positive.
    """
    if total_length < 0:
        raise ValueError(f"total_length must be >= 0, got {total_length}")
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be > 0, got {chunk_size}")

    return [
        Chunk(start=start, end=min(start + chunk_size, total_length))
        for start in range(0, total_length, chunk_size)
    ]
