"""Transport layer exceptions.

These exceptions are raised by the transport layer when a call could not be
completed. A server answering with a non-retryable error status is NOT an
exception at this layer: it is returned as a normal Response.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from notebook_cli.transport.classifier import ErrorKind
    from notebook_cli.transport.models import Response


class TransportError(Exception):
    """Base exception for transport layer errors.

    Args:
        message: Human-readable error description
        status_code: HTTP status code if applicable
        cause: Original exception that caused this error
        kind: Classified network error kind if applicable
        attempts: Number of attempts made before giving up

    Attributes:
        message: Error message
        status_code: HTTP status code (or None)
        cause: Original exception (or None)
        kind: ErrorKind (or None)
        attempts: Attempt count (or None)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: BaseException | None = None,
        kind: ErrorKind | None = None,
        attempts: int | None = None,
    ) -> None:
        """Initialize TransportError.

        Args:
            message: Human-readable error description
            status_code: HTTP status code if applicable
            cause: Original exception that caused this error
            kind: Classified network error kind if applicable
            attempts: Number of attempts made before giving up
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.cause = cause
        self.kind = kind
        self.attempts = attempts

    def __str__(self) -> str:
        """Return string representation of error.

        Returns:
            Formatted error message with status code and attempts if present
        """
        details = []
        if self.status_code:
            details.append(f"status: {self.status_code}")
        if self.attempts:
            details.append(f"attempts: {self.attempts}")
        if details:
            return f"{self.message} ({', '.join(details)})"
        return self.message


class NetworkError(TransportError):
    """Network-level error occurred.

    Raised when the wire exchange could not be completed: connection
    refused, DNS lookup failed, network unreachable, connection reset.
    The `kind` attribute holds the classified ErrorKind.
    """

    pass


class TimeoutError(NetworkError):
    """Request timed out.

    Raised when a single attempt exceeds its socket timeout or when the
    overall call deadline passes, including while waiting between retries.
    """

    pass


class RetryExhaustedError(TransportError):
    """Server kept answering with a retryable status until attempts ran out.

    The last response is attached so callers can still read its status and
    body for diagnostics.

    Attributes:
        response: Last Response received
    """

    def __init__(
        self,
        message: str,
        response: Response,
        attempts: int,
    ) -> None:
        super().__init__(
            message,
            status_code=response.status_code,
            attempts=attempts,
        )
        self.response = response


class HttpError(TransportError):
    """HTTP error response received where a body could not be handed back.

    Raised when a stream is opened and the server answers with a status
    code >= 400, so there is no event stream to return.

    Attributes:
        response: Fully read error Response
    """

    def __init__(self, message: str, response: Response) -> None:
        super().__init__(message, status_code=response.status_code)
        self.response = response


class CancelledError(TransportError):
    """The caller's cancel event fired before the call completed."""

    pass


class StreamError(TransportError):
    """Reading a streamed response body failed before end of stream."""

    pass
