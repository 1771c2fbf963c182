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

"""File access for upload sessions.

The session only needs two things from a file: its length, and a lazy
stream of the bytes in `[start, end)`. FileSource captures that contract so
applications can upload from anything that can seek (a local path, a
memory buffer in tests, a platform file handle).

LocalFile opens the file anew for every range and reads it in blocks, so a
paused or retried chunk always re-reads from its start offset.
"""

from __future__ import annotations

from collections.abc import Iterator
import errno
import mimetypes
from pathlib import Path
import stat
from typing import Protocol

# Read block size (64 KiB). Also the granularity of progress reports.
DEFAULT_BLOCK = 64 * 1024

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class FileSource(Protocol):
    """Protocol for upload sources."""

    @property
    def name(self) -> str:
        """Display name or path, used for logging and MIME inference."""
        ...

    def length(self) -> int:
        """Total size in bytes.

        Raises:
            OSError: If the size cannot be determined.
        """
        ...

    def open_range(self, start: int, end: int) -> Iterator[bytes]:
        """Yield the bytes in `[start, end)` as a sequence of blocks."""
        ...


class LocalFile:
    """A file on the local filesystem."""

    def __init__(self, path: Path | str, *, block_size: int = DEFAULT_BLOCK) -> None:
        self.path = Path(path)
        self.block_size = block_size

    def __repr__(self) -> str:
        return f"LocalFile({str(self.path)!r})"

    @property
    def name(self) -> str:
        return str(self.path)

    def length(self) -> int:
        st = self.path.stat()
        if stat.S_ISDIR(st.st_mode):
            raise IsADirectoryError(errno.EISDIR, "is a directory", str(self.path))
        return st.st_size

    def open_range(self, start: int, end: int) -> Iterator[bytes]:
        if start < 0 or end < start:
            raise ValueError(f"invalid range: [{start}, {end})")
        remaining = end - start
        with self.path.open("rb") as f:
            f.seek(start)
            while remaining > 0:
                block = f.read(min(self.block_size, remaining))
                if not block:
                    raise OSError(
                        f"unexpected end of file at offset {end - remaining}: {self.path}"
                    )
                remaining -= len(block)
                yield block


def guess_content_type(name: str) -> str | None:
    """Best-effort MIME type for a file name; None when unknown.

    Never raises: inference problems are not worth failing an upload over.
    """
    try:
        mime, _ = mimetypes.guess_type(name, strict=False)
    except (TypeError, ValueError):
        return None
    return mime
