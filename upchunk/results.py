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

"""Public API return types for upchunk.

All dataclasses are frozen (immutable) to prevent accidental mutation of
values handed to callers and observers.

Example:
    ```python
    from pathlib import Path
    from upchunk import upload_file

    result = upload_file(Path("video.mp4"), "https://uploads.example.com/abc")
    print(f"{result.total_bytes} bytes in {result.chunk_count} chunks")
    ```

Note:
    Only public API return types belong in this module. Engine types (like
    Chunk or UploadTarget) remain co-located with their related logic.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class FailureDetails:
    """Context passed to on_error alongside the error itself.

    Attributes:
        chunk_index: Zero-based position of the chunk at the queue head, or
            None when no chunk was pending (e.g. cancelled before start).
        chunk_start: First byte offset of that chunk.
        chunk_end: Exclusive end offset of that chunk.
        retry_count: Retries spent on that chunk.
        status_code: Last HTTP status for the chunk, if any.
        bytes_confirmed: Bytes the server had accepted when the session ended.
    """

    chunk_index: int | None
    chunk_start: int | None
    chunk_end: int | None
    retry_count: int
    status_code: int | None
    bytes_confirmed: int


@dataclass(frozen=True)
class UploadResult:
    """Result from a completed upload.

    Attributes:
        uri: Destination URI.
        file_path: Path (or display name) of the uploaded source.
        total_bytes: Size of the source in bytes.
        chunk_count: Number of chunks the file was split into.
        content_type: Content-Type sent with every chunk.
        state: Final session state (always "succeeded" when returned).
        retries: Total retries spent across all chunks.
        elapsed: Wall-clock seconds from start() to completion.
    """

    uri: str
    file_path: Path
    total_bytes: int
    chunk_count: int
    content_type: str
    state: str
    retries: int
    elapsed: float
