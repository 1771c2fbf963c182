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

"""HTTP transport for single-chunk PUT requests.

The upload session never talks to an HTTP library directly. It hands the
transport a URI, a lazy byte stream, the request headers and a CancelToken,
and gets back a TransportOutcome: a status code, or the transport error
that prevented one.

Key Features:

- **No hidden retries** - The urllib3 Retry mounted on the session allows
  zero retries. The upload session owns the retry budget.
- **No redirects** - A 3xx answer (other than 308, which the range-PUT
  protocol uses as "resume incomplete") is reported as-is and classified
  by the session, never followed.
- **Streaming with progress** - ChunkBody feeds the byte range to requests
  block by block and reports the running byte count after each block.
- **Cooperative cancellation** - ChunkBody checks the CancelToken between
  blocks and aborts the request with TransferCancelled once it fires.
  Waiting for the server's answer after the body was sent is bounded by
  the read timeout.

Example:
    ```python
    from upchunk.io import CancelToken, LocalFile, RequestsTransport

    source = LocalFile("video.mp4")
    transport = RequestsTransport()
    outcome = transport.send(
        "https://uploads.example.com/abc",
        source.open_range(0, 1024),
        {
            "Content-Length": "1024",
            "Content-Type": "video/mp4",
            "Content-Range": "bytes 0-1023/4096",
        },
        CancelToken(),
    )
    print(outcome.describe())
    ```
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
import threading
from typing import Protocol

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from upchunk import __version__
from upchunk.classify import TransportOutcome
from upchunk.logging import get_global_logger

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 10.0

ProgressCallback = Callable[[int], None]


class TransferCancelled(Exception):
    """Raised from inside a request body when its CancelToken fires.

    Must not derive from OSError; urllib3 and requests then propagate it
    unwrapped instead of reporting a connection failure.
    """


class CancelToken:
    """One-shot, thread-safe cancellation handle.

    A token is created for each run of the send loop. Cancelling it aborts
    the in-flight request and wakes up a pending backoff wait.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.cancelled})"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Sleep up to `timeout` seconds; return True if cancelled meanwhile."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TransferCancelled("request cancelled")


class ChunkBody:
    """Request body streaming one byte range with a known length.

    Defining __len__ lets requests send a plain Content-Length body rather
    than switching to chunked transfer encoding.
    """

    def __init__(
        self,
        blocks: Iterable[bytes],
        length: int,
        cancel_token: CancelToken,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._blocks = blocks
        self._length = length
        self._cancel_token = cancel_token
        self._on_progress = on_progress

    def __len__(self) -> int:
        return self._length

    def __iter__(self) -> Iterator[bytes]:
        sent = 0
        for block in self._blocks:
            self._cancel_token.raise_if_cancelled()
            yield block
            sent += len(block)
            if self._on_progress is not None:
                self._on_progress(sent)
        self._cancel_token.raise_if_cancelled()


class Transport(Protocol):
    """Protocol for chunk transports."""

    def send(
        self,
        uri: str,
        body: Iterable[bytes],
        headers: Mapping[str, str],
        cancel_token: CancelToken,
        on_progress: ProgressCallback | None = None,
    ) -> TransportOutcome:
        """PUT `body` to `uri` and report what happened.

        Must not raise for network failures; those are returned as an
        outcome with `error` set. `on_progress` receives the number of bytes
        of this request transmitted so far.
        """
        ...

    def close(self) -> None:
        """Release connections. Idempotent."""
        ...


def make_session(headers: Mapping[str, str] | None = None) -> requests.Session:
    """Create a requests.Session suitable for chunk uploads.

    - Zero automatic retries (the upload session retries per chunk).
    - A User-Agent identifying upchunk.
    - Optional extra headers sent with every request (e.g. Authorization).
    """
    s = requests.Session()
    retries = Retry(total=0, redirect=False, raise_on_status=False)
    s.headers.update({"User-Agent": f"upchunk/{__version__}"})
    if headers:
        s.headers.update(headers)
    s.mount("http://", HTTPAdapter(max_retries=retries))
    s.mount("https://", HTTPAdapter(max_retries=retries))
    return s


class RequestsTransport:
    """Transport backed by a requests.Session."""

    def __init__(
        self,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        headers: Mapping[str, str] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.timeout = (connect_timeout, read_timeout)
        self._session = session if session is not None else make_session(headers)
        if session is not None and headers:
            self._session.headers.update(headers)
        self._closed = False

    def send(
        self,
        uri: str,
        body: Iterable[bytes],
        headers: Mapping[str, str],
        cancel_token: CancelToken,
        on_progress: ProgressCallback | None = None,
    ) -> TransportOutcome:
        logger = get_global_logger()
        length = int(headers["Content-Length"])
        data = ChunkBody(body, length, cancel_token, on_progress)

        logger.debug("HTTP", f"PUT {uri}")
        logger.debug("HTTP", f"Content-Range: {headers.get('Content-Range')}")

        try:
            cancel_token.raise_if_cancelled()
            resp = self._session.put(
                uri,
                data=data,
                headers=dict(headers),
                allow_redirects=False,
                timeout=self.timeout,
            )
        except TransferCancelled as err:
            logger.debug("HTTP", "Request aborted")
            return TransportOutcome.from_error(err, cancelled=True)
        except requests.RequestException as err:
            # Closing the session on dispose can surface as a connection error.
            cancelled = cancel_token.cancelled
            logger.debug("HTTP", f"Request failed: {err}")
            return TransportOutcome.from_error(err, cancelled=cancelled)

        try:
            logger.debug("HTTP", f"Response: {resp.status_code} {resp.reason}")
            return TransportOutcome(status_code=resp.status_code)
        finally:
            resp.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._session.close()
