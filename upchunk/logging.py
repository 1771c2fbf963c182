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

"""Logging interface for upchunk.

Library modules (the session engine, the transport, the connectivity
monitor) report what they are doing through a small logger protocol instead
of printing directly, so embedding applications stay quiet unless they opt
in. The CLI installs a printing logger as the global logger.

Output levels:

- Step: Always printed (high-level milestones such as "Uploading...")
- Verbose: Printed when verbose mode is enabled (chunk sent, retry scheduled)
- Debug: Printed when debug mode is enabled (request headers, progress ticks)

Upload sessions log from their worker thread while the caller may log from
the main thread, so DefaultLogger serializes writes.

Example:
    Configure the global logger:
        ```python
        from upchunk.logging import get_logger, set_global_logger

        set_global_logger(get_logger(verbose=True))
        ```

    Use in library code:
        ```python
        from upchunk.logging import get_global_logger

        logger = get_global_logger()
        logger.verbose("UPLOAD", "Chunk 3/12 confirmed")
        logger.debug("HTTP", "Content-Range: bytes 0-5242879/62914560")
        ```

Note:
    The default global logger is silent.
"""

from __future__ import annotations

import sys
import threading
from typing import Protocol, TextIO


class Logger(Protocol):
    """Protocol for logger implementations."""

    def step(self, step: int, total: int, message: str) -> None:
        """Print a step indicator.

        Args:
            step: Current step number (1-based).
            total: Total number of steps.
            message: Step description.
        """
        ...

    def verbose(self, prefix: str, message: str) -> None:
        """Print a verbose log message.

        Args:
            prefix: Message prefix (e.g., "UPLOAD", "RETRY").
            message: Log message.
        """
        ...

    def debug(self, prefix: str, message: str) -> None:
        """Print a debug log message.

        Args:
            prefix: Message prefix (e.g., "HTTP", "NETWORK").
            message: Log message.
        """
        ...


class DefaultLogger:
    """Logger that writes `[PREFIX] message` lines to a text stream."""

    def __init__(
        self,
        verbose: bool = False,
        debug: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        """Initialize logger with verbosity settings.

        Args:
            verbose: If True, print verbose messages.
            debug: If True, print debug messages (implies verbose).
            stream: Output stream. Defaults to sys.stdout at write time.
        """
        self._verbose = verbose or debug
        self._debug = debug
        self._stream = stream
        self._lock = threading.Lock()

    def _write(self, line: str) -> None:
        stream = self._stream or sys.stdout
        with self._lock:
            print(line, file=stream, flush=True)

    def step(self, step: int, total: int, message: str) -> None:
        self._write(f"[{step}/{total}] {message}")

    def verbose(self, prefix: str, message: str) -> None:
        if self._verbose:
            self._write(f"[{prefix}] {message}")

    def debug(self, prefix: str, message: str) -> None:
        if self._debug:
            self._write(f"[{prefix}] {message}")


class SilentLogger:
    """Logger that suppresses all output."""

    def step(self, step: int, total: int, message: str) -> None:
        pass

    def verbose(self, prefix: str, message: str) -> None:
        pass

    def debug(self, prefix: str, message: str) -> None:
        pass


_global_logger: Logger = SilentLogger()


def get_logger(verbose: bool = False, debug: bool = False) -> Logger:
    """Get a printing logger with the given verbosity.

    Args:
        verbose: If True, logger will print verbose messages.
        debug: If True, logger will print debug messages (implies verbose).

    Returns:
        A DefaultLogger writing to stdout.
    """
    return DefaultLogger(verbose=verbose, debug=debug)


def get_global_logger() -> Logger:
    """Return the logger library modules write to (silent by default)."""
    return _global_logger


def set_global_logger(logger: Logger) -> None:
    """Replace the global logger.

    Args:
        logger: Logger instance to use as the global logger.

    Note:
        Sessions resolve the global logger when they are created, so set it
        before constructing an UploadSession.
    """
    global _global_logger
    _global_logger = logger
