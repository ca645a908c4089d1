"""Server-Sent Events reader.

Turns a streamed HTTP body into the sequence of `data: ` payloads it
carries. Reading is pull-based: a line is only read from the socket when
the consumer asks for the next payload.
"""

from __future__ import annotations

import socket
import threading
import weakref
from typing import Iterable, Iterator

import requests
import structlog

from notebook_cli.transport.exceptions import CancelledError, StreamError

logger = structlog.get_logger()

DATA_PREFIX = b"data: "

# How often the cancel watcher re-checks whether the stream already ended
WATCH_INTERVAL = 0.02

# Bytes requested per read; a read returns as soon as this much has arrived,
# so a close-delimited body yields each line without waiting for EOF
SSE_READ_SIZE = 1


def abort_response(response: requests.Response) -> None:
    """Shut down the socket under a streamed response, then close it.

    Closing alone waits for a read blocked in another thread to return;
    shutting the socket down first makes that read end immediately.
    """
    connection = getattr(response.raw, "connection", None)
    sock = getattr(connection, "sock", None)
    if sock is not None:
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Already disconnected
            logger.debug("Socket already closed while aborting response")
    response.close()


def parse_sse_lines(lines: Iterable[bytes | str]) -> Iterator[bytes]:
    """Extract event payloads from SSE lines.

    A line must start with ``data: `` to carry a payload; its payload is
    yielded when non-empty after trimming. Any other line, including blank
    event separators, is skipped.

    Args:
        lines: Raw lines without their terminating newline

    Yields:
        Payload bytes in wire order

    Example:
        >>> list(parse_sse_lines([b"data: a", b"", b"invalid", b"data: b"]))
        [b'a', b'b']
    """
    for line in lines:
        if isinstance(line, str):
            line = line.encode("utf-8")
        line = line.rstrip(b"\r")
        if not line.startswith(DATA_PREFIX):
            continue
        payload = line[len(DATA_PREFIX):].strip()
        if payload:
            yield payload


def iter_sse_payloads(text: bytes | str) -> Iterator[bytes]:
    """Parse a complete SSE document held in memory."""
    if isinstance(text, str):
        text = text.encode("utf-8")
    return parse_sse_lines(text.split(b"\n"))


class SSEStream:
    """Single-pass iterator over the payloads of a streamed response.

    The stream owns the underlying response and closes it at end of stream,
    on error, on cancellation or when used as a context manager. Setting
    the cancel event closes the connection from a watcher thread, which
    unblocks a pending read; iteration then raises CancelledError.

    Args:
        response: requests response opened with stream=True
        cancel: Optional event that aborts the stream when set
        chunk_size: Bytes requested per read (default: SSE_READ_SIZE)

    Example:
        >>> with transport.stream("/chat/execute", {"message": "hi"}) as events:
        ...     for payload in events:
        ...         print(payload.decode())
    """

    def __init__(
        self,
        response: requests.Response,
        cancel: threading.Event | None = None,
        chunk_size: int = SSE_READ_SIZE,
    ) -> None:
        self._response = response
        self._cancel = cancel
        self._closed = threading.Event()
        self._events = self._read(chunk_size)
        self._watcher: threading.Thread | None = None
        if cancel is not None:
            self._watcher = threading.Thread(
                target=_watch_cancel,
                args=(weakref.ref(self), cancel, self._closed),
                name="sse-cancel-watcher",
                daemon=True,
            )
            self._watcher.start()

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def __iter__(self) -> SSEStream:
        return self

    def __next__(self) -> bytes:
        return next(self._events)

    def __enter__(self) -> SSEStream:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        if self._closed.is_set():
            return
        self._closed.set()
        self._response.close()

    def _cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.is_set()

    def _read(self, chunk_size: int) -> Iterator[bytes]:
        count = 0
        try:
            if self._cancelled():
                raise CancelledError("Stream cancelled")
            lines = self._response.iter_lines(chunk_size=chunk_size)
            for payload in parse_sse_lines(lines):
                if self._cancelled():
                    raise CancelledError("Stream cancelled")
                count += 1
                yield payload
            if self._cancelled():
                raise CancelledError("Stream cancelled")
        except CancelledError:
            raise
        except Exception as e:
            if self._cancelled():
                raise CancelledError("Stream cancelled", cause=e) from e
            logger.error("Error reading streaming response", error=str(e), events=count)
            raise StreamError(f"Stream error: {e}", cause=e) from e
        finally:
            logger.debug("Stream finished", events=count, cancelled=self._cancelled())
            self.close()

    def _abort(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        abort_response(self._response)


def _watch_cancel(
    stream_ref: weakref.ReferenceType[SSEStream],
    cancel: threading.Event,
    closed: threading.Event,
) -> None:
    """Abort the stream when cancel fires.

    Holds the stream weakly and stops once it is closed or garbage
    collected, so an abandoned stream does not keep the thread alive.
    """
    while not closed.is_set():
        if cancel.wait(WATCH_INTERVAL):
            stream = stream_ref()
            if stream is not None:
                logger.debug("Stream cancel requested, closing connection")
                stream._abort()
            return
        if stream_ref() is None:
            return
