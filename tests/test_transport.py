"""
Tests for upchunk.io.transport module.

Tests the requests-backed chunk transport including:
- Request method, headers and body
- Progress callbacks while the body streams
- Transport errors reported as outcomes
- Cancellation before and during a request
- Redirects reported rather than followed
- End-to-end sessions against a mocked server
"""

from __future__ import annotations

from pathlib import Path

import pytest
import requests
import requests_mock

from upchunk import __version__
from upchunk.io.files import LocalFile
from upchunk.io.transport import (
    CancelToken,
    ChunkBody,
    RequestsTransport,
    TransferCancelled,
    make_session,
)
from upchunk.session import SessionState, UploadSession

URI = "https://uploads.example.com/session/abc"


def _headers(data: bytes, start: int = 0, total: int | None = None) -> dict[str, str]:
    total = len(data) if total is None else total
    return {
        "Content-Length": str(len(data)),
        "Content-Type": "application/octet-stream",
        "Content-Range": f"bytes {start}-{start + len(data) - 1}/{total}",
    }


def _blocks(data: bytes, size: int = 4):
    for offset in range(0, len(data), size):
        yield data[offset : offset + size]


def test_put_sends_range_headers() -> None:
    """Test that the chunk is PUT with its range headers."""
    data = b"0123456789"
    transport = RequestsTransport()

    with requests_mock.Mocker() as m:
        m.put(URI, status_code=308)
        outcome = transport.send(
            URI, _blocks(data), _headers(data, start=10, total=40), CancelToken()
        )

    assert outcome.status_code == 308
    assert outcome.error is None
    assert m.call_count == 1
    request = m.last_request
    assert request.method == "PUT"
    assert request.headers["Content-Range"] == "bytes 10-19/40"
    assert request.headers["Content-Length"] == "10"
    assert request.headers["Content-Type"] == "application/octet-stream"
    assert request.headers["User-Agent"] == f"upchunk/{__version__}"


def test_body_streams_with_progress() -> None:
    """Test that the body is the chunk's bytes and progress counts them."""
    data = b"abcdefghij"
    received = []
    progress = []

    def server(request, context):
        received.append(b"".join(request.body))
        context.status_code = 200
        return b""

    with requests_mock.Mocker() as m:
        m.put(URI, content=server)
        outcome = RequestsTransport().send(
            URI, _blocks(data, 4), _headers(data), CancelToken(), progress.append
        )

    assert outcome.status_code == 200
    assert received == [data]
    assert progress == [4, 8, 10]


def test_connection_error_is_an_outcome() -> None:
    """Test that network failures are returned, not raised."""
    data = b"abc"

    with requests_mock.Mocker() as m:
        m.put(URI, exc=requests.exceptions.ConnectionError("refused"))
        outcome = RequestsTransport().send(URI, _blocks(data), _headers(data), CancelToken())

    assert outcome.status_code is None
    assert isinstance(outcome.error, requests.exceptions.ConnectionError)
    assert not outcome.cancelled


def test_timeout_is_an_outcome() -> None:
    """Test that timeouts are returned as transport errors."""
    data = b"abc"

    with requests_mock.Mocker() as m:
        m.put(URI, exc=requests.exceptions.ReadTimeout("slow"))
        outcome = RequestsTransport().send(URI, _blocks(data), _headers(data), CancelToken())

    assert isinstance(outcome.error, requests.exceptions.Timeout)
    assert not outcome.cancelled


def test_cancelled_token_sends_nothing() -> None:
    """Test that an already-cancelled attempt never reaches the network."""
    data = b"abc"
    token = CancelToken()
    token.cancel()

    with requests_mock.Mocker() as m:
        m.put(URI, status_code=200)
        outcome = RequestsTransport().send(URI, _blocks(data), _headers(data), token)

    assert outcome.cancelled
    assert isinstance(outcome.error, TransferCancelled)
    assert not m.called


def test_cancel_while_streaming() -> None:
    """Test that cancelling mid-body aborts the request."""
    data = b"abcdefghijkl"
    token = CancelToken()

    def server(request, context):
        for _ in request.body:
            token.cancel()
        return b""

    with requests_mock.Mocker() as m:
        m.put(URI, content=server)
        outcome = RequestsTransport().send(URI, _blocks(data, 4), _headers(data), token)

    assert outcome.cancelled
    assert outcome.status_code is None


def test_redirect_is_not_followed() -> None:
    """Test that a 302 comes back as a status instead of being followed."""
    data = b"abc"

    with requests_mock.Mocker() as m:
        m.put(URI, status_code=302, headers={"Location": "https://elsewhere.example.com/"})
        m.put("https://elsewhere.example.com/", status_code=200)
        outcome = RequestsTransport().send(URI, _blocks(data), _headers(data), CancelToken())

    assert outcome.status_code == 302
    assert m.call_count == 1


def test_extra_headers_are_sent() -> None:
    """Test that configured headers accompany every request."""
    data = b"abc"
    transport = RequestsTransport(headers={"Authorization": "Bearer t0ken"})

    with requests_mock.Mocker() as m:
        m.put(URI, status_code=200)
        transport.send(URI, _blocks(data), _headers(data), CancelToken())

    assert m.last_request.headers["Authorization"] == "Bearer t0ken"


def test_close_is_idempotent() -> None:
    """Test that closing twice closes the HTTP session once."""

    class CountingSession(requests.Session):
        closes = 0

        def close(self):
            CountingSession.closes += 1
            super().close()

    transport = RequestsTransport(session=CountingSession())
    transport.close()
    transport.close()

    assert CountingSession.closes == 1


def test_make_session_disables_adapter_retries() -> None:
    """Test that the mounted adapters never retry on their own."""
    s = make_session({"X-Test": "1"})

    adapter = s.get_adapter("https://uploads.example.com/")
    assert adapter.max_retries.total == 0
    assert s.headers["X-Test"] == "1"
    assert s.headers["User-Agent"].startswith("upchunk/")


class TestChunkBody:
    """Tests for the streaming request body."""

    def test_length_is_declared(self):
        """Test that the body reports its length up front."""
        body = ChunkBody(_blocks(b"abcdef"), 6, CancelToken())

        assert len(body) == 6
        assert b"".join(body) == b"abcdef"

    def test_cancel_stops_iteration(self):
        """Test that a cancelled token raises between blocks."""
        token = CancelToken()
        body = iter(ChunkBody(_blocks(b"abcdefgh", 4), 8, token))

        assert next(body) == b"abcd"
        token.cancel()
        with pytest.raises(TransferCancelled):
            next(body)

    def test_token_wait_returns_when_cancelled(self):
        """Test that a backoff wait ends early once cancelled."""
        token = CancelToken()

        assert not token.wait(0)
        token.cancel()
        assert token.wait(30)
        assert token.cancelled


class TestSessionOverHTTP:
    """End-to-end sessions against a mocked server."""

    def test_resume_incomplete_then_ok(self, tmp_test_dir: Path):
        """Test a three-chunk upload answered 308, 308, 200."""
        path = tmp_test_dir / "clip.mp4"
        path.write_bytes(b"x" * 10)

        with requests_mock.Mocker() as m:
            m.put(
                URI,
                [{"status_code": 308}, {"status_code": 308}, {"status_code": 200}],
            )
            with UploadSession(
                URI, LocalFile(path), chunk_size=4, transport=RequestsTransport()
            ) as session:
                session.initialize()
                session.start()
                state = session.wait(5)

        assert state is SessionState.SUCCEEDED
        assert [r.headers["Content-Range"] for r in m.request_history] == [
            "bytes 0-3/10",
            "bytes 4-7/10",
            "bytes 8-9/10",
        ]
        assert all(r.headers["Content-Type"] == "video/mp4" for r in m.request_history)

    def test_server_error_then_ok(self, tmp_test_dir: Path):
        """Test that a 503 from the server is retried over HTTP."""
        path = tmp_test_dir / "data.bin"
        path.write_bytes(b"abc")

        with requests_mock.Mocker() as m:
            m.put(URI, [{"status_code": 503}, {"status_code": 201}])
            with UploadSession(
                URI,
                path,
                max_retries=2,
                transport=RequestsTransport(),
            ) as session:
                session.retry_policy.delay = 0.0
                session.initialize()
                session.start()
                state = session.wait(5)

        assert state is SessionState.SUCCEEDED
        assert m.call_count == 2
        assert session.total_retries == 1
