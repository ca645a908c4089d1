"""Unit tests for the Server-Sent Events reader."""

from __future__ import annotations

import gc
import socket
import threading
import time
from collections.abc import Iterator
from unittest.mock import Mock

import pytest

from notebook_cli.transport.exceptions import CancelledError, StreamError
from notebook_cli.transport.streaming import (
    SSE_READ_SIZE,
    SSEStream,
    abort_response,
    iter_sse_payloads,
    parse_sse_lines,
)


def streamed_response(lines: Iterator[bytes] | list[bytes]) -> Mock:
    """Mock a requests.Response opened with stream=True."""
    response = Mock()
    response.status_code = 200
    response.iter_lines.return_value = iter(lines)
    return response


class TestParseSSE:
    """Tests for SSE line parsing."""

    def test_mixed_document(self) -> None:
        """Test blank separators and foreign lines are skipped."""
        payloads = list(iter_sse_payloads("data: a\n\ndata: b\n\ninvalid\ndata: c"))

        assert payloads == [b"a", b"b", b"c"]

    def test_blank_data_lines_yield_nothing(self) -> None:
        """Test data lines without content are dropped."""
        assert list(iter_sse_payloads("data: \n\ndata:    \n\n")) == []

    def test_prefix_must_match_exactly(self) -> None:
        """Test lines without the 'data: ' prefix are never yielded."""
        lines = [b"data:x", b"event: message", b": comment", b" data: y", b"DATA: z"]

        assert list(parse_sse_lines(lines)) == []

    def test_crlf_and_whitespace_trimmed(self) -> None:
        """Test CRLF line endings and surrounding spaces are removed."""
        assert list(iter_sse_payloads(b"data:  hello  \r\ndata: {\"a\": 1}\r\n")) == [
            b"hello",
            b'{"a": 1}',
        ]

    def test_str_lines_are_encoded(self) -> None:
        """Test text lines are accepted and yielded as UTF-8 bytes."""
        assert list(parse_sse_lines(["data: héllo"])) == ["héllo".encode()]

    def test_parsing_is_lazy(self) -> None:
        """Test lines are consumed only as payloads are requested."""
        consumed: list[bytes] = []

        def source() -> Iterator[bytes]:
            for line in (b"data: 1", b"data: 2", b"data: 3"):
                consumed.append(line)
                yield line

        payloads = parse_sse_lines(source())

        assert next(payloads) == b"1"
        assert consumed == [b"data: 1"]


class TestSSEStream:
    """Tests for SSEStream iteration and lifecycle."""

    def test_yields_payloads_and_closes(self) -> None:
        """Test the stream yields payloads and releases the response at EOF."""
        response = streamed_response([b"data: a", b"", b"data: b"])

        stream = SSEStream(response)

        assert list(stream) == [b"a", b"b"]
        assert stream.closed
        response.close.assert_called_once()

    def test_context_manager_closes_early(self) -> None:
        """Test leaving the block before EOF closes the response."""
        response = streamed_response([b"data: a", b"data: b"])

        with SSEStream(response) as stream:
            assert next(stream) == b"a"

        assert stream.closed
        response.close.assert_called_once()

    def test_close_is_idempotent(self) -> None:
        """Test closing twice closes the response once."""
        response = streamed_response([])
        stream = SSEStream(response)

        stream.close()
        stream.close()

        response.close.assert_called_once()

    def test_read_error_raises_stream_error(self) -> None:
        """Test a read failure is distinct from a clean end of stream."""

        def broken() -> Iterator[bytes]:
            yield b"data: first"
            raise OSError("connection reset by peer")

        stream = SSEStream(streamed_response(broken()))

        assert next(stream) == b"first"
        with pytest.raises(StreamError) as exc_info:
            next(stream)
        assert isinstance(exc_info.value.cause, OSError)
        assert stream.closed

    def test_end_of_stream_is_stop_iteration(self) -> None:
        """Test a clean end raises StopIteration, not an error."""
        stream = SSEStream(streamed_response([b"data: only"]))

        assert next(stream) == b"only"
        with pytest.raises(StopIteration):
            next(stream)

    def test_cancel_before_read(self) -> None:
        """Test a set cancel event stops iteration before any read."""
        cancel = threading.Event()
        cancel.set()
        response = streamed_response([b"data: a"])

        stream = SSEStream(response, cancel=cancel)

        with pytest.raises(CancelledError):
            next(stream)
        response.iter_lines.assert_not_called()

    def test_cancel_between_events(self) -> None:
        """Test cancelling after a payload stops the next one."""
        cancel = threading.Event()
        stream = SSEStream(streamed_response([b"data: a", b"data: b"]), cancel=cancel)

        assert next(stream) == b"a"
        cancel.set()

        with pytest.raises(CancelledError):
            next(stream)

    def test_cancel_unblocks_pending_read(self) -> None:
        """Test the watcher closes the response so a blocked read ends."""
        unblocked = threading.Event()
        response = Mock()
        response.status_code = 200
        response.close.side_effect = unblocked.set

        def blocking_lines(chunk_size: int | None = None) -> Iterator[bytes]:
            yield b"data: first"
            # Simulates a socket read that only returns once the connection closes
            unblocked.wait(5)
            raise OSError("read on closed connection")

        response.iter_lines.side_effect = blocking_lines
        cancel = threading.Event()
        stream = SSEStream(response, cancel=cancel)

        assert next(stream) == b"first"
        threading.Timer(0.05, cancel.set).start()
        start = time.monotonic()

        with pytest.raises(CancelledError):
            next(stream)

        assert time.monotonic() - start < 1.0
        assert stream.closed

    def test_reads_in_small_chunks(self) -> None:
        """Test lines are requested with a read size that cannot wait for EOF."""
        response = streamed_response([b"data: a"])

        list(SSEStream(response))

        response.iter_lines.assert_called_once_with(chunk_size=SSE_READ_SIZE)

    def test_abandoned_stream_stops_watcher(self) -> None:
        """Test dropping an unread stream ends its cancel watcher thread."""
        cancel = threading.Event()
        stream = SSEStream(streamed_response([b"data: a"]), cancel=cancel)
        watcher = stream._watcher
        assert watcher is not None and watcher.is_alive()

        del stream
        gc.collect()
        watcher.join(timeout=1.0)

        assert not watcher.is_alive()
        assert not cancel.is_set()


class TestAbortResponse:
    """Tests for aborting a streamed response from another thread."""

    def test_shuts_down_socket_then_closes(self) -> None:
        """Test the socket is shut down before the response is closed."""
        calls: list[str] = []
        response = Mock()
        response.raw.connection.sock.shutdown.side_effect = lambda how: calls.append("shutdown")
        response.close.side_effect = lambda: calls.append("close")

        abort_response(response)

        response.raw.connection.sock.shutdown.assert_called_once_with(socket.SHUT_RDWR)
        assert calls == ["shutdown", "close"]

    def test_already_disconnected_socket(self) -> None:
        """Test a socket that is already gone still closes the response."""
        response = Mock()
        response.raw.connection.sock.shutdown.side_effect = OSError("not connected")

        abort_response(response)

        response.close.assert_called_once()

    def test_response_without_connection(self) -> None:
        """Test a fully read response is simply closed."""
        response = Mock()
        response.raw = None

        abort_response(response)

        response.close.assert_called_once()
