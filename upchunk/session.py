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

"""Upload session engine.

An UploadSession uploads one file to one URI as a sequence of range-PUT
requests, one chunk at a time, and survives transient failures and
connectivity loss without re-sending confirmed bytes.

State Machine:

    UNINITIALIZED -> INITIALIZING -> READY -> UPLOADING <-> PAUSED
        UPLOADING -> SUCCEEDED | FAILED
        any non-terminal state -> CANCELLED

SUCCEEDED, FAILED and CANCELLED are terminal. Requests for a transition
the table does not allow are ignored (pause() twice, resume() while
uploading) and the method returns False.

A pause() requested before start() is remembered: start() then moves
straight to PAUSED.

Send Loop:

The loop runs on a worker thread started by start() and resume(). Each run
gets its own CancelToken and generation number. pause() and cancel() fire
the token, which aborts the in-flight request and any pending backoff
wait; whatever that attempt returns afterwards is discarded because its
generation is no longer current. A resumed run joins the previous worker
before sending, so two requests are never in flight at once.

For each head-of-queue chunk the loop:

1. PUTs the range with Content-Length, Content-Type and
   `Content-Range: bytes {start}-{end-1}/{total}`.
2. Reports progress as (confirmed + sent in this attempt) / total.
3. Classifies the outcome: SUCCESS pops the chunk, RETRYABLE spends one
   retry and waits out the backoff, FATAL fails the session, CANCELLED
   stops quietly.

Notifications:

Observer callbacks are invoked synchronously on the worker thread (or on
the caller's thread for start() of an empty file and for cancel()), never
while the session lock is held, so callbacks may call pause(), resume() or
cancel(). Errors are reported after the terminal transition. When no
on_error observer is registered, wait() re-raises the error instead.

Example:
    ```python
    from upchunk import UploadSession

    session = UploadSession(
        "https://uploads.example.com/abc",
        "video.mp4",
        on_progress=lambda pct: print(f"{pct:.1f}%"),
    )
    with session:
        session.initialize()
        session.start()
        session.wait()
    ```
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
import threading
import time
from typing import TYPE_CHECKING, Protocol

from upchunk.chunking import DEFAULT_CHUNK_SIZE, Chunk, plan_chunks
from upchunk.classify import Outcome, ResponseClassifier, TransportOutcome
from upchunk.exceptions import (
    CancelledByCaller,
    FatalUploadError,
    InitializationError,
    TransientNetworkError,
    UpChunkError,
)
from upchunk.io.files import (
    DEFAULT_CONTENT_TYPE,
    FileSource,
    LocalFile,
    guess_content_type,
)
from upchunk.io.transport import CancelToken, RequestsTransport, Transport
from upchunk.logging import Logger, get_global_logger
from upchunk.results import FailureDetails
from upchunk.retry import DEFAULT_MAX_RETRIES, RetryPolicy

if TYPE_CHECKING:
    from upchunk.config import UploadConfig


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    UPLOADING = "uploading"
    PAUSED = "paused"
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {SessionState.SUCCEEDED, SessionState.CANCELLED, SessionState.FAILED}
)

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.UNINITIALIZED: frozenset(
        {SessionState.INITIALIZING, SessionState.CANCELLED}
    ),
    SessionState.INITIALIZING: frozenset(
        {SessionState.READY, SessionState.FAILED, SessionState.CANCELLED}
    ),
    SessionState.READY: frozenset({SessionState.UPLOADING, SessionState.CANCELLED}),
    SessionState.UPLOADING: frozenset(
        {
            SessionState.PAUSED,
            SessionState.SUCCEEDED,
            SessionState.FAILED,
            SessionState.CANCELLED,
        }
    ),
    SessionState.PAUSED: frozenset({SessionState.UPLOADING, SessionState.CANCELLED}),
}

_PRE_UPLOAD_STATES = frozenset(
    {SessionState.UNINITIALIZED, SessionState.INITIALIZING, SessionState.READY}
)


class Subscription(Protocol):
    def cancel(self) -> None: ...


@dataclass(frozen=True)
class UploadTarget:
    """Where the file goes and what it is. Fixed once initialize() ran."""

    uri: str
    total_length: int
    content_type: str | None = None


@dataclass
class UploadObservers:
    """Optional callbacks surfaced by an UploadSession.

    Attributes:
        on_progress: Receives the overall percentage (0..100).
        on_success: Called once when the last chunk is confirmed.
        on_error: Receives the error (FatalUploadError or CancelledByCaller)
            and a FailureDetails.
        on_retrying: Receives True while waiting for the network to come
            back, False when a chunk is about to be retried or the network
            returned.
    """

    on_progress: Callable[[float], None] | None = None
    on_success: Callable[[], None] | None = None
    on_error: Callable[[UpChunkError, FailureDetails], None] | None = None
    on_retrying: Callable[[bool], None] | None = None

    def progress(self, percent: float) -> None:
        if self.on_progress is not None:
            self.on_progress(percent)

    def success(self) -> None:
        if self.on_success is not None:
            self.on_success()

    def error(self, error: UpChunkError, details: FailureDetails) -> None:
        if self.on_error is not None:
            self.on_error(error, details)

    def retrying(self, waiting_for_network: bool) -> None:
        if self.on_retrying is not None:
            self.on_retrying(waiting_for_network)


class UploadSession:
    """Sequential, resumable range-PUT upload of a single file.

    Args:
        uri: Destination URI for every chunk PUT.
        file: A FileSource, or a path that is wrapped in LocalFile.
        chunk_size: Target chunk size in bytes.
        max_retries: Retry budget per chunk (ignored if retry_policy given).
        retry_policy: Backoff policy; defaults to a fixed 1 second delay.
        classifier: Status code classifier; defaults to the standard sets.
        transport: Chunk transport; a RequestsTransport is created during
            initialize() when omitted.
        content_type: Explicit Content-Type; inferred from the file name
            when omitted.
        default_content_type: Used when inference finds nothing.
        on_progress, on_success, on_error, on_retrying: Observer callbacks
            (see UploadObservers).
        logger: Logger; defaults to the global logger.
    """

    def __init__(
        self,
        uri: str,
        file: FileSource | Path | str,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_policy: RetryPolicy | None = None,
        classifier: ResponseClassifier | None = None,
        transport: Transport | None = None,
        content_type: str | None = None,
        default_content_type: str = DEFAULT_CONTENT_TYPE,
        on_progress: Callable[[float], None] | None = None,
        on_success: Callable[[], None] | None = None,
        on_error: Callable[[UpChunkError, FailureDetails], None] | None = None,
        on_retrying: Callable[[bool], None] | None = None,
        logger: Logger | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be > 0, got {chunk_size}")
        self.uri = uri
        self.source: FileSource = (
            LocalFile(file) if isinstance(file, (str, Path)) else file
        )
        self.chunk_size = chunk_size
        self.retry_policy = retry_policy or RetryPolicy(max_retries=max_retries)
        self.classifier = classifier or ResponseClassifier()
        self.observers = UploadObservers(
            on_progress=on_progress,
            on_success=on_success,
            on_error=on_error,
            on_retrying=on_retrying,
        )
        self._logger = logger or get_global_logger()
        self._transport = transport
        self._content_type = content_type
        self._default_content_type = default_content_type

        self._lock = threading.RLock()
        # Serializes progress delivery; always taken before _lock.
        self._progress_lock = threading.RLock()
        self._done = threading.Event()
        self._state = SessionState.UNINITIALIZED
        self._target: UploadTarget | None = None
        self._queue: deque[Chunk] = deque()
        self._chunk_count = 0
        self._bytes_confirmed = 0
        self._last_progress = -1.0
        self._pause_pending = False
        self._generation = 0
        self._cancel_token: CancelToken | None = None
        self._worker: threading.Thread | None = None
        self._error: UpChunkError | None = None
        self._total_retries = 0
        self._started_at: float | None = None
        self._finished_at: float | None = None
        self._subscriptions: list[Subscription] = []
        self._disposed = False

    @classmethod
    def from_config(
        cls,
        uri: str,
        file: FileSource | Path | str,
        config: UploadConfig,
        **kwargs,
    ) -> UploadSession:
        """Build a session whose policy, classifier and transport follow `config`.

        Extra keyword arguments (observers, content_type, transport, logger)
        are passed through to the constructor.
        """
        if "transport" not in kwargs:
            kwargs["transport"] = RequestsTransport(
                connect_timeout=config.connect_timeout,
                read_timeout=config.read_timeout,
                headers=config.headers,
            )
        return cls(
            uri,
            file,
            chunk_size=config.chunk_size,
            retry_policy=config.retry_policy(),
            classifier=config.classifier(),
            default_content_type=config.default_content_type,
            **kwargs,
        )

    def __repr__(self) -> str:
        return (
            f"UploadSession(uri={self.uri!r}, source={self.source.name!r}, "
            f"state={self._state.value})"
        )

    def __enter__(self) -> UploadSession:
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    # -------------------------------
    # Read-only views
    # -------------------------------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def target(self) -> UploadTarget | None:
        return self._target

    @property
    def chunk_count(self) -> int:
        return self._chunk_count

    @property
    def pending_chunks(self) -> list[Chunk]:
        """Snapshot of chunks not yet confirmed, head first."""
        with self._lock:
            return list(self._queue)

    @property
    def bytes_confirmed(self) -> int:
        with self._lock:
            return self._bytes_confirmed

    @property
    def progress(self) -> float:
        """Percentage of bytes confirmed by the server.

        Bytes of an in-flight or aborted attempt are not included, so after
        pause() this is the baseline the next attempt counts up from.
        on_progress observers also see bytes in flight.
        """
        with self._lock:
            if self._state is SessionState.SUCCEEDED:
                return 100.0
            if self._target is None or self._target.total_length == 0:
                return 0.0
            return self._bytes_confirmed * 100 / self._target.total_length

    @property
    def error(self) -> UpChunkError | None:
        with self._lock:
            return self._error

    @property
    def total_retries(self) -> int:
        with self._lock:
            return self._total_retries

    @property
    def elapsed(self) -> float:
        """Seconds since start(), frozen once the session finished."""
        if self._started_at is None:
            return 0.0
        end = self._finished_at if self._finished_at is not None else time.monotonic()
        return end - self._started_at

    # -------------------------------
    # Lifecycle
    # -------------------------------

    def initialize(self) -> bool:
        """Resolve file length, plan chunks, resolve content type, prepare transport.

        Returns:
            True if the session is now READY; False if it was not
            UNINITIALIZED or was cancelled while initializing.

        Raises:
            InitializationError: If the file length cannot be read or the
                chunk plan cannot be built. The session is FAILED afterwards.
        """
        with self._lock:
            if not self._transition(SessionState.INITIALIZING):
                self._logger.debug("UPLOAD", f"initialize() ignored in {self._state.value}")
                return False

        name = self.source.name
        try:
            total = self.source.length()
            chunks = plan_chunks(total, self.chunk_size)
        except Exception as err:
            if isinstance(err, OSError):
                message = f"cannot read length of {name}: {err}"
            else:
                message = f"cannot prepare upload of {name}: {err}"
            error = InitializationError(message)
            with self._lock:
                self._transition(SessionState.FAILED)
                self._error = error
                self._finished_at = time.monotonic()
            self._done.set()
            raise error from err

        content_type = self._content_type or guess_content_type(name)
        if content_type is None:
            self._logger.debug(
                "FILE", f"No MIME type for {name}; using {self._default_content_type}"
            )

        with self._lock:
            if self._transport is None:
                self._transport = RequestsTransport()
            self._target = UploadTarget(self.uri, total, content_type)
            self._queue = deque(chunks)
            self._chunk_count = len(chunks)
            if not self._transition(SessionState.READY):
                return False

        self._logger.verbose(
            "UPLOAD",
            f"Prepared {name}: {total} bytes in {len(chunks)} chunk(s) of "
            f"up to {self.chunk_size} bytes ({content_type or self._default_content_type})",
        )
        return True

    def start(self) -> bool:
        """Begin uploading. Only valid from READY.

        If pause() was called before start(), the session goes straight to
        PAUSED and sends nothing until resume().

        Returns:
            True if the upload started (or completed at once for an empty
            file); False if the session was not READY.
        """
        with self._lock:
            if not self._transition(SessionState.UPLOADING):
                self._logger.debug("UPLOAD", f"start() ignored in {self._state.value}")
                return False
            self._started_at = time.monotonic()
            empty = not self._queue
            held = self._pause_pending and not empty
            self._pause_pending = False
            if held:
                self._transition(SessionState.PAUSED)
            elif not empty:
                self._launch()

        if empty:
            self._logger.verbose("UPLOAD", "Empty file; nothing to send")
            self._succeed()
        elif held:
            self._logger.verbose("UPLOAD", "Started paused; waiting for resume()")
        return True

    def pause(self) -> bool:
        """Stop sending until resume().

        From UPLOADING the in-flight request is aborted; its chunk stays at
        the head of the queue and is resent in full from its start offset on
        resume(). Before start() the pause is remembered and start() leaves
        the session PAUSED.
        """
        with self._lock:
            if self._state in _PRE_UPLOAD_STATES:
                if self._pause_pending:
                    return False
                self._pause_pending = True
                self._logger.verbose("UPLOAD", "Pause requested before start")
                return True
            if not self._transition(SessionState.PAUSED):
                return False
            self._abort_in_flight()
            index = self._head_index()
        self._logger.verbose("UPLOAD", f"Paused at chunk {index + 1}/{self._chunk_count}")
        return True

    def resume(self) -> bool:
        """Continue from the queue head, or drop a pause requested before start()."""
        with self._lock:
            if self._state in _PRE_UPLOAD_STATES:
                pending, self._pause_pending = self._pause_pending, False
                return pending
            if self._disposed or self._state is not SessionState.PAUSED:
                return False
            self._transition(SessionState.UPLOADING)
            self._launch()
            index = self._head_index()
        self._logger.verbose("UPLOAD", f"Resuming at chunk {index + 1}/{self._chunk_count}")
        return True

    def cancel(self) -> bool:
        """Abort everything and end in CANCELLED.

        on_error receives a CancelledByCaller so callers can tell a requested
        stop from a failure.
        """
        with self._lock:
            if not self._transition(SessionState.CANCELLED):
                return False
            self._abort_in_flight()
            error = CancelledByCaller()
            self._error = error
            self._finished_at = time.monotonic()
            details = self._details(status_code=None)
        self._logger.verbose("UPLOAD", "Cancelled by caller")
        self._report_error(error, details)
        return True

    def dispose(self) -> None:
        """Release the transport and connectivity subscriptions. Idempotent.

        A session that is still uploading is paused first; it cannot be
        resumed afterwards.
        """
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            if self._state is SessionState.UPLOADING:
                self._transition(SessionState.PAUSED)
            self._abort_in_flight()
            subscriptions, self._subscriptions = self._subscriptions, []
            transport = self._transport

        for subscription in subscriptions:
            subscription.cancel()
        if transport is not None:
            transport.close()
        self._done.set()
        self._logger.debug("UPLOAD", "Session disposed")

    def add_subscription(self, subscription: Subscription) -> None:
        """Tie an external subscription's lifetime to this session."""
        with self._lock:
            disposed = self._disposed
            if not disposed:
                self._subscriptions.append(subscription)
        if disposed:
            subscription.cancel()

    def wait(self, timeout: float | None = None) -> SessionState:
        """Block until the session finished (or was disposed).

        Args:
            timeout: Seconds to wait; None waits indefinitely.

        Returns:
            The state at return time (may be non-terminal on timeout).

        Raises:
            FatalUploadError, CancelledByCaller, InitializationError: If the
                session ended with an error and no on_error observer is
                registered.
        """
        finished = self._done.wait(timeout)
        with self._lock:
            state = self._state
            error = self._error
        if finished and error is not None and self.observers.on_error is None:
            raise error
        return state

    # -------------------------------
    # Internals (call with lock held)
    # -------------------------------

    def _transition(self, target: SessionState) -> bool:
        if target not in _TRANSITIONS.get(self._state, frozenset()):
            return False
        self._logger.debug("UPLOAD", f"State {self._state.value} -> {target.value}")
        self._state = target
        return True

    def _head_index(self) -> int:
        return self._chunk_count - len(self._queue)

    def _abort_in_flight(self) -> None:
        if self._cancel_token is not None:
            self._cancel_token.cancel()
            self._cancel_token = None

    def _launch(self) -> None:
        self._generation += 1
        token = CancelToken()
        self._cancel_token = token
        previous = self._worker
        worker = threading.Thread(
            target=self._run,
            args=(self._generation, token, previous),
            name=f"upchunk-send-{self._generation}",
            daemon=True,
        )
        self._worker = worker
        worker.start()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._state is SessionState.UPLOADING

    def _details(
        self, *, status_code: int | None, chunk: Chunk | None = None
    ) -> FailureDetails:
        if chunk is None and self._queue:
            chunk = self._queue[0]
        return FailureDetails(
            chunk_index=self._head_index() if chunk is not None else None,
            chunk_start=chunk.start if chunk is not None else None,
            chunk_end=chunk.end if chunk is not None else None,
            retry_count=chunk.retry_count if chunk is not None else 0,
            status_code=status_code,
            bytes_confirmed=self._bytes_confirmed,
        )

    def _headers_for(self, chunk: Chunk, total: int) -> dict[str, str]:
        assert self._target is not None
        return {
            "Content-Length": str(chunk.size),
            "Content-Type": self._target.content_type or self._default_content_type,
            "Content-Range": chunk.content_range(total),
        }

    # -------------------------------
    # Send loop (worker thread)
    # -------------------------------

    def _run(
        self,
        generation: int,
        token: CancelToken,
        previous: threading.Thread | None,
    ) -> None:
        if previous is not None and previous is not threading.current_thread():
            previous.join()
        try:
            self._send_loop(generation, token)
        except Exception as err:
            failed = self._fail(
                FatalUploadError(f"unexpected error in send loop: {err}"),
                cause=err,
                generation=generation,
            )
            if not failed:
                raise

    def _send_loop(self, generation: int, token: CancelToken) -> None:
        assert self._target is not None and self._transport is not None
        total = self._target.total_length

        while True:
            with self._lock:
                if not self._is_current(generation):
                    return
                if not self._queue:
                    # Last chunk was confirmed just before a pause.
                    break
                chunk = self._queue[0]
                index = self._head_index()
                baseline = self._bytes_confirmed

            self._logger.verbose(
                "UPLOAD",
                f"Sending chunk {index + 1}/{self._chunk_count} "
                f"({chunk.content_range(total)})",
            )

            def on_sent(sent: int) -> None:
                self._report_progress(
                    (baseline + min(sent, chunk.size)) * 100 / total, generation
                )

            outcome = self._transport.send(
                self.uri,
                self.source.open_range(chunk.start, chunk.end),
                self._headers_for(chunk, total),
                token,
                on_sent,
            )

            with self._lock:
                if not self._is_current(generation):
                    self._logger.debug(
                        "UPLOAD", f"Discarding outcome of aborted attempt: {outcome.describe()}"
                    )
                    return
                exhausted = self.retry_policy.exhausted(chunk)
                verdict = self.classifier.classify(outcome, retries_exhausted=exhausted)
                # Only a would-be retry counts as an escalated transient failure.
                escalated = (
                    exhausted and self.classifier.classify(outcome) is Outcome.RETRYABLE
                )

                if verdict is Outcome.SUCCESS:
                    self._queue.popleft()
                    self._bytes_confirmed += chunk.size
                    remaining = len(self._queue)
                elif verdict is Outcome.RETRYABLE:
                    delay = self.retry_policy.schedule(chunk)
                    self._total_retries += 1

            if verdict is Outcome.SUCCESS:
                self._logger.verbose(
                    "UPLOAD",
                    f"Chunk {index + 1}/{self._chunk_count} confirmed ({outcome.describe()})",
                )
                if remaining == 0:
                    self._succeed(generation)
                    return
                self._report_progress(self.bytes_confirmed * 100 / total, generation)
                continue

            if verdict is Outcome.CANCELLED:
                self._logger.debug("UPLOAD", "Attempt cancelled; stopping send loop")
                return

            if verdict is Outcome.RETRYABLE:
                self._logger.verbose(
                    "RETRY",
                    f"Chunk {index + 1}/{self._chunk_count} got {outcome.describe()}; "
                    f"retry {chunk.retry_count}/{self.retry_policy.max_retries} "
                    f"in {delay:.1f}s",
                )
                self.observers.retrying(False)
                if token.wait(delay):
                    return
                continue

            cause: BaseException | None = outcome.error
            if escalated:
                cause = TransientNetworkError(
                    f"last attempt: {outcome.describe()}", status_code=outcome.status_code
                )
                message = (
                    f"chunk {index + 1}/{self._chunk_count} ({chunk.content_range(total)}) "
                    f"failed after {chunk.retry_count} retries: {outcome.describe()}"
                )
            else:
                message = (
                    f"chunk {index + 1}/{self._chunk_count} ({chunk.content_range(total)}) "
                    f"failed: {outcome.describe()}"
                )
            self._fail(
                FatalUploadError(
                    message,
                    chunk_index=index,
                    chunk=chunk,
                    status_code=outcome.status_code,
                    retry_count=chunk.retry_count,
                ),
                cause=cause,
                generation=generation,
                outcome=outcome,
            )
            return

        self._succeed(generation)

    # -------------------------------
    # Notifications
    # -------------------------------

    def _report_progress(self, percent: float, generation: int) -> None:
        with self._progress_lock:
            with self._lock:
                if not self._is_current(generation):
                    return
                # 100 is reserved for the final confirmation.
                if percent >= 100 or percent <= self._last_progress:
                    return
                self._last_progress = percent
            self.observers.progress(percent)

    def _succeed(self, generation: int | None = None) -> None:
        with self._progress_lock:
            with self._lock:
                if generation is not None and generation != self._generation:
                    return
                if not self._transition(SessionState.SUCCEEDED):
                    return
                self._cancel_token = None
                self._last_progress = 100.0
                self._finished_at = time.monotonic()
            self._logger.verbose("UPLOAD", f"Upload complete: {self.uri}")
            self.observers.progress(100.0)
        self.observers.success()
        self._done.set()

    def _fail(
        self,
        error: FatalUploadError,
        *,
        cause: BaseException | None,
        generation: int,
        outcome: TransportOutcome | None = None,
    ) -> bool:
        error.__cause__ = cause
        with self._lock:
            if generation != self._generation:
                return False
            if not self._transition(SessionState.FAILED):
                return False
            self._cancel_token = None
            self._error = error
            self._finished_at = time.monotonic()
            details = self._details(
                status_code=outcome.status_code if outcome else None,
                chunk=error.chunk,
            )
        self._logger.verbose("UPLOAD", f"Upload failed: {error}")
        self._report_error(error, details)
        return True

    def _report_error(self, error: UpChunkError, details: FailureDetails) -> None:
        try:
            self.observers.error(error, details)
        finally:
            self._done.set()
