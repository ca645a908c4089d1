"""Transport layer for Open Notebook CLI.

This package handles HTTP communication with no knowledge of the domain
resources. It is responsible for:
- HTTP operations (GET, POST, PUT, DELETE, multipart POST, SSE streams)
- Connection pooling
- Retry logic with exponential backoff
- Network error classification
- Graceful degradation advice
- Connectivity diagnostics
"""

from notebook_cli.transport.classifier import ErrorClassifier, ErrorKind, classify
from notebook_cli.transport.degradation import Advisory, FallbackMode, GracefulDegradation
from notebook_cli.transport.diagnostics import DiagnosticResult, NetworkDiagnostics, ProbeResult
from notebook_cli.transport.exceptions import (
    CancelledError,
    HttpError,
    NetworkError,
    RetryExhaustedError,
    StreamError,
    TimeoutError,
    TransportError,
)
from notebook_cli.transport.http import HttpTransport
from notebook_cli.transport.models import MultipartBody, Request, Response
from notebook_cli.transport.retry import (
    DEFAULT_RETRY_CONFIG,
    NO_RETRY_CONFIG,
    RetryConfig,
    backoff_delay,
)
from notebook_cli.transport.streaming import SSEStream, parse_sse_lines

__all__ = [
    "Advisory",
    "CancelledError",
    "DEFAULT_RETRY_CONFIG",
    "DiagnosticResult",
    "ErrorClassifier",
    "ErrorKind",
    "FallbackMode",
    "GracefulDegradation",
    "HttpError",
    "HttpTransport",
    "MultipartBody",
    "NO_RETRY_CONFIG",
    "NetworkDiagnostics",
    "NetworkError",
    "ProbeResult",
    "Request",
    "Response",
    "RetryConfig",
    "RetryExhaustedError",
    "SSEStream",
    "StreamError",
    "TimeoutError",
    "TransportError",
    "backoff_delay",
    "classify",
    "parse_sse_lines",
]
