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

"""Exception hierarchy for upchunk.

This module defines a custom exception hierarchy that allows library users
to distinguish between different types of upload failures:

- ConfigError: Configuration-related errors (YAML parse, invalid values)
- InitializationError: The session could not be prepared (file unreadable)
- TransientNetworkError: A retryable send failure (absorbed by the session)
- FatalUploadError: A non-retryable failure or an exhausted retry budget
- CancelledByCaller: The caller asked the session to stop

All exceptions inherit from UpChunkError, allowing users to catch all
upload errors with a single except clause if needed.

Example:
    Telling "I asked to stop" apart from "it broke":
        ```python
        from upchunk import upload_file
        from upchunk.exceptions import CancelledByCaller, FatalUploadError

        try:
            upload_file(Path("video.mp4"), "https://uploads.example.com/abc")
        except CancelledByCaller:
            print("Upload cancelled")
        except FatalUploadError as e:
            print(f"Upload failed at chunk {e.chunk_index}: {e}")
        ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from upchunk.chunking import Chunk

__all__ = [
    "UpChunkError",
    "ConfigError",
    "InitializationError",
    "TransientNetworkError",
    "FatalUploadError",
    "CancelledByCaller",
]


class UpChunkError(Exception):
    """Base exception for all upchunk errors.

    All upchunk-specific exceptions inherit from this class, allowing users
    to catch all upload errors with a single except clause if needed.
    """

    pass


class ConfigError(UpChunkError):
    """Raised for configuration-related errors.

    This exception is raised when there are problems with:

    - YAML parsing (syntax errors, non-mapping documents)
    - Invalid values (non-positive chunk size, negative retry budget)
    - Unknown retry strategies
    - Missing configuration files that were explicitly requested
    """

    pass


class InitializationError(UpChunkError):
    """Raised when an upload session cannot be prepared.

    Raised by UploadSession.initialize() before any network activity, most
    commonly because the length of the source file could not be read.
    """

    pass


class TransientNetworkError(UpChunkError):
    """A send attempt failed in a way that is worth retrying.

    These never reach the caller on their own. When a chunk runs out of
    retries the last transient error becomes the cause of the
    FatalUploadError that is surfaced instead.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FatalUploadError(UpChunkError):
    """Raised when a chunk cannot be delivered.

    Attributes:
        chunk_index: Zero-based position of the failing chunk in the plan.
        chunk: The failing chunk (its byte range and retry count).
        status_code: Last HTTP status code, or None for transport faults.
        retry_count: Retries spent on the chunk before giving up.
    """

    def __init__(
        self,
        message: str,
        *,
        chunk_index: int | None = None,
        chunk: Chunk | None = None,
        status_code: int | None = None,
        retry_count: int = 0,
    ) -> None:
        super().__init__(message)
        self.chunk_index = chunk_index
        self.chunk = chunk
        self.status_code = status_code
        self.retry_count = retry_count


class CancelledByCaller(UpChunkError):
    """Raised (or reported to on_error) when cancel() stops a session."""

    def __init__(self, message: str = "upload cancelled by caller") -> None:
        super().__init__(message)
