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

"""Core orchestration for upchunk.

This module wraps the UploadSession lifecycle (create, initialize, start,
wait, dispose) into single calls for the common cases:

- upload_file: upload a file and return an UploadResult, raising on failure
- plan_upload: describe how a file would be chunked without sending anything

Design Principles:

- Functions return structured data (dataclasses) for easy testing
- Error handling uses exceptions; the CLI layer formats them for display
- The session is always disposed, including on Ctrl-C, which cancels it

Example:
    Programmatic usage:
        ```python
        from pathlib import Path
        from upchunk.core import upload_file

        result = upload_file(
            Path("video.mp4"),
            "https://uploads.example.com/abc",
            on_progress=lambda pct: print(f"{pct:.0f}%", end="\\r"),
        )
        print(f"Uploaded {result.total_bytes} bytes with {result.retries} retries")
        ```
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from upchunk.chunking import Chunk, plan_chunks
from upchunk.config import UploadConfig, load_config
from upchunk.connectivity import ConnectivityBridge, ConnectivitySource
from upchunk.exceptions import FatalUploadError, InitializationError
from upchunk.io.files import LocalFile, guess_content_type
from upchunk.io.transport import Transport
from upchunk.logging import get_global_logger
from upchunk.results import UploadResult
from upchunk.session import SessionState, UploadSession


@dataclass(frozen=True)
class UploadPlan:
    """How a file would be split, without any network activity.

    Attributes:
        file_path: The source file.
        total_bytes: Its size.
        chunk_size: Target chunk size used for the plan.
        content_type: Content-Type that would be sent.
        chunks: The planned chunks, in order.
    """

    file_path: Path
    total_bytes: int
    chunk_size: int
    content_type: str
    chunks: list[Chunk]

    def content_ranges(self) -> list[str]:
        return [c.content_range(self.total_bytes) for c in self.chunks]


def plan_upload(
    file_path: Path,
    *,
    config: UploadConfig | None = None,
    content_type: str | None = None,
) -> UploadPlan:
    """Compute the chunk plan for a file (dry run).

    Raises:
        InitializationError: If the file size cannot be read.
    """
    config = config or load_config()
    source = LocalFile(file_path)
    try:
        total = source.length()
    except OSError as err:
        raise InitializationError(f"cannot read length of {file_path}: {err}") from err
    return UploadPlan(
        file_path=Path(file_path),
        total_bytes=total,
        chunk_size=config.chunk_size,
        content_type=content_type
        or guess_content_type(str(file_path))
        or config.default_content_type,
        chunks=plan_chunks(total, config.chunk_size),
    )


def upload_file(
    file_path: Path,
    uri: str,
    *,
    config: UploadConfig | None = None,
    content_type: str | None = None,
    transport: Transport | None = None,
    connectivity: ConnectivitySource | None = None,
    on_progress: Callable[[float], None] | None = None,
    on_retrying: Callable[[bool], None] | None = None,
    on_success: Callable[[], None] | None = None,
) -> UploadResult:
    """Upload a file with range-PUT requests and wait for the outcome.

    Args:
        file_path: File to upload.
        uri: Destination URI.
        config: Upload settings; load_config() is used when omitted.
        content_type: Explicit Content-Type (inferred when omitted).
        transport: Custom transport; a RequestsTransport built from the
            config is used when omitted.
        connectivity: Optional online/offline source. When given, the
            upload pauses while offline and resumes when back online.
        on_progress: Receives the overall percentage.
        on_retrying: Receives True while waiting for the network, False
            before a chunk retry.
        on_success: Called when the last chunk is confirmed.

    Returns:
        An UploadResult describing the completed upload.

    Raises:
        InitializationError: If the file cannot be read.
        FatalUploadError: If a chunk fails permanently.
        CancelledByCaller: If the upload was cancelled (Ctrl-C included).
    """
    logger = get_global_logger()
    config = config or load_config()

    extra = {} if transport is None else {"transport": transport}
    session = UploadSession.from_config(
        uri,
        file_path,
        config,
        content_type=content_type,
        on_progress=on_progress,
        on_retrying=on_retrying,
        on_success=on_success,
        **extra,
    )

    with session:
        logger.step(1, 3, f"Preparing {file_path}...")
        session.initialize()
        if connectivity is not None:
            ConnectivityBridge(session, connectivity)

        logger.step(2, 3, f"Uploading {session.chunk_count} chunk(s) to {uri}...")
        session.start()
        try:
            state = session.wait()
        except KeyboardInterrupt:
            session.cancel()
            raise

        if state is not SessionState.SUCCEEDED:
            raise FatalUploadError(f"upload ended in state {state.value}")

        logger.step(3, 3, "Upload complete")
        target = session.target
        assert target is not None
        return UploadResult(
            uri=uri,
            file_path=Path(file_path),
            total_bytes=target.total_length,
            chunk_count=session.chunk_count,
            content_type=target.content_type or config.default_content_type,
            state=state.value,
            retries=session.total_retries,
            elapsed=session.elapsed,
        )
