"""HTTP transport layer implementation.

This module turns a logical request ("GET /notebooks") into a reliable
network operation: connection pooling, bearer auth, an overall call
deadline, failure classification and retry with exponential backoff. It has
NO knowledge of the domain resources or of JSON payload shapes.
"""

from __future__ import annotations

import copy
import threading
import time
from typing import Any, Mapping

import requests
import structlog
from requests.adapters import HTTPAdapter
from urllib3 import HTTPHeaderDict
from urllib3.util.retry import Retry

from notebook_cli import __version__
from notebook_cli.transport.classifier import ErrorClassifier, ErrorKind, default_classifier
from notebook_cli.transport.diagnostics import DiagnosticResult, NetworkDiagnostics
from notebook_cli.transport.exceptions import (
    CancelledError,
    HttpError,
    NetworkError,
    RetryExhaustedError,
    TimeoutError,
    TransportError,
)
from notebook_cli.transport.models import FileSource, MultipartBody, Request, Response
from notebook_cli.transport.retry import DEFAULT_RETRY_CONFIG, RetryConfig, backoff_delay
from notebook_cli.transport.streaming import SSEStream, abort_response

logger = structlog.get_logger()

USER_AGENT = f"open-notebook-cli/{__version__}"

# Read size for non-streamed bodies, checked against the deadline per chunk
BODY_CHUNK_SIZE = 16 * 1024


class HttpTransport:
    """HTTP transport for network communication.

    One instance is meant to live for the whole process and be shared by
    every caller, including concurrent threads. The connection pool is
    owned by a requests session; the bearer token and retry policy are
    replaced atomically by their setters and read once per call.

    Features:
        - Connection pooling for performance
        - Exponential backoff retry with jitter, driven by RetryConfig
        - Error classification (refused, timeout, DNS, unreachable, reset)
        - Overall per-call deadline spanning attempts and backoff sleeps
        - Cancellation through a caller-supplied threading.Event
        - Server-Sent Events streaming

    Args:
        base_url: Base URL for API server (e.g., "http://localhost:5055/api")
        timeout: Overall deadline for one call, in seconds (default: 30)
        retry_config: Retry policy (default: DEFAULT_RETRY_CONFIG)
        verify_ssl: Whether to verify SSL certificates (default: True)
        auth_token: Optional bearer credential
        pool_size: Maximum pooled connections per host (default: 10)
        classifier: Error classifier (default: module default rule set)

    Example:
        >>> transport = HttpTransport("http://localhost:5055/api")
        >>> response = transport.get("/notebooks")
        >>> response.status_code
        200
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30,
        retry_config: RetryConfig | None = None,
        verify_ssl: bool = True,
        auth_token: str | None = None,
        pool_size: int = 10,
        classifier: ErrorClassifier | None = None,
    ) -> None:
        """Initialize HTTP transport.

        Raises:
            ValueError: If base_url is empty or timeout is not positive
        """
        if not base_url:
            raise ValueError("base_url cannot be empty")
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self.verify_ssl = verify_ssl
        self.classifier = classifier or default_classifier
        self.session = self._create_session(pool_size)
        self._lock = threading.Lock()
        self._retry_config = retry_config or DEFAULT_RETRY_CONFIG
        self._auth_token = auth_token

        logger.debug(
            "HTTP transport initialized",
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=self._retry_config.max_retries,
            base_delay=self._retry_config.base_delay,
        )

    def _create_session(self, pool_size: int) -> requests.Session:
        """Create a pooled requests session.

        urllib3-level retries are disabled: retry decisions are made by
        `execute` so they can be classified, logged and cancelled.
        """
        session = requests.Session()

        adapter = HTTPAdapter(
            max_retries=Retry(total=0, read=False),
            pool_connections=pool_size,
            pool_maxsize=pool_size,
        )

        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    # ------------------------------------------------------------------
    # Shared mutable state
    # ------------------------------------------------------------------

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry_config

    def set_retry_config(self, config: RetryConfig) -> None:
        """Replace the retry policy for calls started from now on."""
        with self._lock:
            self._retry_config = config
        logger.info(
            "Retry configuration updated",
            max_retries=config.max_retries,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
        )

    @property
    def auth_token(self) -> str | None:
        return self._auth_token

    def set_auth(self, token: str | None) -> None:
        """Replace the bearer credential for calls started from now on.

        Args:
            token: Bearer token, or None/empty to stop sending Authorization
        """
        with self._lock:
            self._auth_token = token or None

    def with_timeout(self, timeout: float) -> HttpTransport:
        """Return a transport with a different deadline.

        The copy shares the connection pool, credential and retry policy
        current at the time of the call.
        """
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        clone = copy.copy(self)
        clone.timeout = float(timeout)
        clone._lock = threading.Lock()
        return clone

    # ------------------------------------------------------------------
    # Verb helpers
    # ------------------------------------------------------------------

    def get(
        self,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Response:
        """Send GET request. See `execute` for semantics."""
        return self.execute(Request("GET", path, headers=headers or {}), cancel=cancel, timeout=timeout)

    def post(
        self,
        path: str,
        body: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Response:
        """Send POST request. See `execute` for semantics."""
        return self.execute(
            Request("POST", path, body=body, headers=headers or {}),
            cancel=cancel,
            timeout=timeout,
        )

    def put(
        self,
        path: str,
        body: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Response:
        """Send PUT request. See `execute` for semantics."""
        return self.execute(
            Request("PUT", path, body=body, headers=headers or {}),
            cancel=cancel,
            timeout=timeout,
        )

    def delete(
        self,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Response:
        """Send DELETE request. See `execute` for semantics."""
        return self.execute(Request("DELETE", path, headers=headers or {}), cancel=cancel, timeout=timeout)

    def post_multipart(
        self,
        path: str,
        fields: Mapping[str, str] | None = None,
        files: Mapping[str, FileSource] | None = None,
        *,
        headers: Mapping[str, str] | None = None,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Response:
        """Send multipart POST request.

        The multipart body is re-encoded from its sources on every attempt,
        so file parts should be bytes, paths or stream factories.

        Example:
            >>> transport.post_multipart(
            ...     "/sources",
            ...     fields={"notebook_id": "nb-1", "type": "upload"},
            ...     files={"file": Path("paper.pdf")},
            ... )
        """
        multipart = MultipartBody(fields=fields or {}, files=files or {})
        request = Request("POST", path, headers=headers or {}, multipart=multipart)
        return self.execute(request, cancel=cancel, timeout=timeout)

    # ------------------------------------------------------------------
    # Core call
    # ------------------------------------------------------------------

    def execute(
        self,
        request: Request,
        *,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Response:
        """Execute one logical HTTP operation with retries.

        Any completed exchange whose status is outside the policy's
        retryable set is returned as a Response, including 4xx and 5xx.

        Args:
            request: Request to send
            cancel: Optional event; setting it aborts the call, including a
                pending backoff sleep
            timeout: Overall deadline in seconds (default: self.timeout)

        Returns:
            Response from the last attempt

        Raises:
            NetworkError: Wire exchange failed and was not (or no longer) retryable
            TimeoutError: Attempt timed out or the overall deadline passed
            RetryExhaustedError: Retryable status persisted; carries the last Response
            CancelledError: Cancel event was set
            TransportError: Request body could not be encoded
        """
        config = self._retry_config
        token = self._auth_token
        budget = self.timeout if timeout is None else float(timeout)
        deadline = time.monotonic() + budget
        waiter = cancel or threading.Event()

        attempt = 0
        while True:
            if waiter.is_set():
                raise CancelledError("Request cancelled", attempts=attempt)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError(
                    f"Request deadline of {budget}s exceeded",
                    kind=ErrorKind.TIMEOUT,
                    attempts=attempt,
                )

            try:
                response = self._send(request, token, deadline, attempt)
            except requests.exceptions.RequestException as e:
                if waiter.is_set():
                    raise CancelledError("Request cancelled", cause=e, attempts=attempt + 1) from e
                kind = self.classifier.classify(e)
                if attempt >= config.max_retries or not self.classifier.is_retryable(e, config):
                    raise self._network_error(e, kind, attempt + 1) from e
                reason: str = kind.value
                last: Response | None = None
            else:
                if not self.classifier.is_retryable_status(response.status_code, config):
                    return response
                if attempt >= config.max_retries:
                    raise RetryExhaustedError(
                        f"HTTP {response.status_code}: retryable status persisted "
                        f"after {attempt + 1} attempts",
                        response=response,
                        attempts=attempt + 1,
                    )
                reason = f"status {response.status_code}"
                last = response

            delay = backoff_delay(attempt, config)
            logger.debug(
                "Retrying network operation",
                method=request.method,
                path=request.path,
                attempt=attempt + 1,
                max_retries=config.max_retries,
                delay=delay,
                reason=reason,
            )
            self._backoff(waiter, delay, deadline, budget, attempt + 1, last)
            attempt += 1

    def _backoff(
        self,
        waiter: threading.Event,
        delay: float,
        deadline: float,
        budget: float,
        attempts: int,
        last: Response | None,
    ) -> None:
        """Sleep between attempts, honouring cancellation and the deadline."""
        remaining = deadline - time.monotonic()
        if waiter.wait(min(delay, max(0.0, remaining))):
            raise CancelledError("Request cancelled during retry backoff", attempts=attempts)
        if delay >= remaining:
            raise TimeoutError(
                f"Request deadline of {budget}s exceeded while retrying",
                status_code=last.status_code if last is not None else None,
                kind=ErrorKind.TIMEOUT,
                attempts=attempts,
            )

    def _send(
        self,
        request: Request,
        token: str | None,
        deadline: float,
        attempt: int,
    ) -> Response:
        """Perform a single attempt and read the whole body.

        The socket timeout only bounds each read, so the body is read in
        chunks against the call deadline. A watchdog aborts the connection
        when the deadline passes during a blocked read.

        Raises:
            TimeoutError: The deadline passed before the body was complete
            TransportError: Request body could not be encoded
        """
        try:
            data, content_type = request.encode_body()
        except (TypeError, ValueError, OSError) as e:
            raise TransportError(f"Failed to encode request body: {e}", cause=e) from e

        headers = self._build_headers(token, content_type, request.headers)
        url = self._build_url(request.path)

        http_response = self.session.request(
            request.method,
            url,
            data=data,
            headers=headers,
            timeout=max(0.0, deadline - time.monotonic()),
            verify=self.verify_ssl,
            stream=True,
        )

        expired = threading.Event()

        def expire() -> None:
            expired.set()
            abort_response(http_response)

        watchdog = threading.Timer(max(0.0, deadline - time.monotonic()), expire)
        watchdog.daemon = True
        watchdog.start()
        try:
            chunks = []
            for chunk in http_response.iter_content(chunk_size=BODY_CHUNK_SIZE):
                if expired.is_set() or time.monotonic() >= deadline:
                    break
                chunks.append(chunk)
        except Exception as e:
            if not expired.is_set():
                raise
            raise self._deadline_error(request, attempt) from e
        finally:
            watchdog.cancel()
            http_response.close()

        # An aborted body can end as a clean EOF
        if expired.is_set() or time.monotonic() >= deadline:
            raise self._deadline_error(request, attempt)

        response = Response(
            status_code=http_response.status_code,
            body=b"".join(chunks),
            headers=_collect_headers(http_response),
        )

        logger.debug(
            "HTTP request completed",
            method=request.method,
            path=request.path,
            status=response.status_code,
            body_size=len(response.body),
        )
        return response

    def _build_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    def _build_headers(
        self,
        token: str | None,
        content_type: str | None,
        extra: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        headers = {
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        }
        if content_type:
            headers["Content-Type"] = content_type
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if extra:
            headers.update(extra)
        return headers

    def _deadline_error(self, request: Request, attempt: int) -> TimeoutError:
        logger.debug(
            "Request deadline passed while reading response",
            method=request.method,
            path=request.path,
            attempt=attempt + 1,
        )
        return TimeoutError(
            "Request deadline exceeded while reading response",
            kind=ErrorKind.TIMEOUT,
            attempts=attempt + 1,
        )

    def _network_error(
        self,
        error: requests.exceptions.RequestException,
        kind: ErrorKind,
        attempts: int,
    ) -> NetworkError:
        if kind is ErrorKind.TIMEOUT:
            return TimeoutError(
                f"Request timed out: {error}",
                cause=error,
                kind=kind,
                attempts=attempts,
            )
        return NetworkError(
            f"Connection failed ({kind.value}): {error}",
            cause=error,
            kind=kind,
            attempts=attempts,
        )

    # ------------------------------------------------------------------
    # Streaming and diagnostics
    # ------------------------------------------------------------------

    def stream(
        self,
        path: str,
        body: Any = None,
        *,
        method: str = "POST",
        headers: Mapping[str, str] | None = None,
        cancel: threading.Event | None = None,
        read_timeout: float | None = None,
    ) -> SSEStream:
        """Open a Server-Sent Events stream.

        Streams are opened once and never retried. Only connecting is
        bounded by the transport timeout; reads wait for `read_timeout`
        (default: no limit) or until `cancel` is set.

        Raises:
            HttpError: Server answered with status >= 400
            NetworkError: Connection could not be established
            CancelledError: Cancel event already set
        """
        if cancel is not None and cancel.is_set():
            raise CancelledError("Stream cancelled")

        request = Request(method, path, body=body, headers=headers or {})
        try:
            data, content_type = request.encode_body()
        except (TypeError, ValueError) as e:
            raise TransportError(f"Failed to encode request body: {e}", cause=e) from e

        request_headers = self._build_headers(self._auth_token, content_type, request.headers)
        request_headers["Accept"] = "text/event-stream"

        try:
            http_response = self.session.request(
                request.method,
                self._build_url(request.path),
                data=data,
                headers=request_headers,
                timeout=(self.timeout, read_timeout),
                verify=self.verify_ssl,
                stream=True,
            )
        except requests.exceptions.RequestException as e:
            raise self._network_error(e, self.classifier.classify(e), 1) from e

        if http_response.status_code >= 400:
            try:
                error_response = Response(
                    status_code=http_response.status_code,
                    body=http_response.content,
                    headers=_collect_headers(http_response),
                )
            finally:
                http_response.close()
            logger.error("Streaming request returned error status", status=error_response.status_code)
            raise HttpError(f"HTTP {error_response.status_code}: {error_response.text}", error_response)

        return SSEStream(http_response, cancel=cancel)

    def diagnose_connectivity(self, diagnostics: NetworkDiagnostics | None = None) -> DiagnosticResult:
        """Run connectivity diagnostics against the configured base URL."""
        diagnostics = diagnostics or NetworkDiagnostics(verify_ssl=self.verify_ssl)
        return diagnostics.diagnose_connectivity(self.base_url)

    def close(self) -> None:
        """Close the HTTP session and release pooled connections."""
        self.session.close()

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


def _collect_headers(http_response: requests.Response) -> HTTPHeaderDict:
    """Copy response headers keeping repeated values apart."""
    raw_headers = getattr(http_response.raw, "headers", None)
    if isinstance(raw_headers, HTTPHeaderDict):
        return HTTPHeaderDict(raw_headers)
    return HTTPHeaderDict(dict(http_response.headers))
