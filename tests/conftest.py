"""
Pytest configuration and shared fixtures for upchunk tests.

This module provides reusable fixtures and test doubles used across
the test suite: in-memory file sources and a scriptable transport.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from pathlib import Path
import threading
from typing import Any

import pytest
import yaml

from upchunk.classify import TransportOutcome
from upchunk.io.transport import CancelToken, TransferCancelled

# Script step for FakeTransport: send the first block, then hang until the
# attempt is cancelled.
BLOCK = "block"


class MemorySource:
    """FileSource backed by a bytes object."""

    def __init__(self, data: bytes, name: str = "data.bin", block_size: int = 4) -> None:
        self.data = data
        self._name = name
        self.block_size = block_size

    @property
    def name(self) -> str:
        return self._name

    def length(self) -> int:
        return len(self.data)

    def open_range(self, start: int, end: int) -> Iterator[bytes]:
        for offset in range(start, end, self.block_size):
            yield self.data[offset : min(offset + self.block_size, end)]


class BrokenSource(MemorySource):
    """FileSource whose length cannot be read."""

    def __init__(self) -> None:
        super().__init__(b"", name="missing.bin")

    def length(self) -> int:
        raise FileNotFoundError("missing.bin")


class FakeTransport:
    """Transport that plays back a script of outcomes.

    Each script step is an HTTP status code (int), an exception instance
    (reported as a transport error) or BLOCK. Once the script is used up,
    every request gets `default`.
    """

    def __init__(self, script: list[Any] | None = None, default: int = 200) -> None:
        self.script = list(script or [])
        self.default = default
        self.requests: list[dict[str, Any]] = []
        self.closed = False
        self.blocked = threading.Event()
        self._lock = threading.Lock()

    def send(
        self,
        uri: str,
        body,
        headers: Mapping[str, str],
        cancel_token: CancelToken,
        on_progress=None,
    ) -> TransportOutcome:
        with self._lock:
            step = self.script.pop(0) if self.script else self.default
        record: dict[str, Any] = {"uri": uri, "headers": dict(headers)}
        received = bytearray()

        if step == BLOCK:
            first = next(iter(body), b"")
            received += first
            record["body"] = bytes(received)
            self.requests.append(record)
            if on_progress is not None:
                on_progress(len(received))
            self.blocked.set()
            cancel_token.wait(5)
            return TransportOutcome.from_error(
                TransferCancelled("request cancelled"), cancelled=True
            )

        for block in body:
            received += block
            if on_progress is not None:
                on_progress(len(received))
        record["body"] = bytes(received)
        self.requests.append(record)

        if isinstance(step, BaseException):
            return TransportOutcome.from_error(step)
        return TransportOutcome(status_code=step)

    def close(self) -> None:
        self.closed = True

    @property
    def content_ranges(self) -> list[str]:
        return [r["headers"]["Content-Range"] for r in self.requests]


class Recorder:
    """Collects observer notifications."""

    def __init__(self) -> None:
        self.progress: list[float] = []
        self.successes = 0
        self.errors: list[tuple[Any, Any]] = []
        self.retrying: list[bool] = []
        self.retry_event = threading.Event()

    def on_progress(self, percent: float) -> None:
        self.progress.append(percent)

    def on_success(self) -> None:
        self.successes += 1

    def on_error(self, error, details) -> None:
        self.errors.append((error, details))

    def on_retrying(self, waiting_for_network: bool) -> None:
        self.retrying.append(waiting_for_network)
        self.retry_event.set()

    def observers(self) -> dict[str, Any]:
        return {
            "on_progress": self.on_progress,
            "on_success": self.on_success,
            "on_error": self.on_error,
            "on_retrying": self.on_retrying,
        }


def pattern_bytes(size: int) -> bytes:
    """Deterministic, non-repeating-per-chunk test payload."""
    return bytes(i % 251 for i in range(size))


@pytest.fixture
def tmp_test_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary directory for test artifacts.

    Automatically cleaned up after test completion.
    """
    return tmp_path


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_file(tmp_test_dir: Path):
    """
    Factory fixture for creating files of a given size.

    Usage:
        path = make_file(1024, "clip.mp4")
    """

    def _create(size: int, name: str = "data.bin") -> Path:
        path = tmp_test_dir / name
        path.write_bytes(pattern_bytes(size))
        return path

    return _create


@pytest.fixture
def create_yaml_file(tmp_test_dir: Path):
    """
    Factory fixture for creating temporary YAML files.

    Usage:
        yaml_path = create_yaml_file("upchunk.yaml", {"upload": {"max_retries": 2}})
    """

    def _create(filename: str, data: dict[str, Any]) -> Path:
        path = tmp_test_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f)
        return path

    return _create


@pytest.fixture(autouse=True)
def clean_upchunk_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep UPCHUNK_* variables from the developer's shell out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("UPCHUNK_"):
            monkeypatch.delenv(key, raising=False)
