"""Transport value objects.

Request and Response are immutable per-call values. Response bodies are
opaque bytes; decoding JSON is the caller's responsibility (`Response.json`
is offered as a convenience only).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import IO, Any, Callable, Mapping, Union

from urllib3 import HTTPHeaderDict
from urllib3.filepost import encode_multipart_formdata

HTTP_METHODS = frozenset({"GET", "POST", "PUT", "DELETE"})

# bytes are sent as-is, paths are re-opened and factories re-invoked per attempt
FileSource = Union[bytes, Path, Callable[[], IO[bytes]]]


@dataclass(frozen=True)
class MultipartBody:
    """Multipart form payload.

    File sources are read again on every `encode()` call so a retried
    attempt never sees a half-consumed stream.

    Attributes:
        fields: Plain form fields
        files: Form file parts keyed by field name

    Example:
        >>> body = MultipartBody(fields={"notebook_id": "nb-1"},
        ...                      files={"file": Path("paper.pdf")})
        >>> payload, content_type = body.encode()
    """

    fields: Mapping[str, str] = field(default_factory=dict)
    files: Mapping[str, FileSource] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "files", MappingProxyType(dict(self.files)))

    def encode(self) -> tuple[bytes, str]:
        """Encode the payload from scratch.

        Returns:
            Tuple of (body bytes, Content-Type header value)
        """
        parts: list[tuple[str, Any]] = list(self.fields.items())
        for name, source in self.files.items():
            filename, content = _read_file_source(source)
            parts.append((name, (filename, content, "application/octet-stream")))
        body, content_type = encode_multipart_formdata(parts)
        return body, content_type


def _read_file_source(source: FileSource) -> tuple[str, bytes]:
    if isinstance(source, bytes):
        return "upload", source
    if isinstance(source, Path):
        return source.name, source.read_bytes()
    stream = source()
    try:
        return "upload", stream.read()
    finally:
        stream.close()


@dataclass(frozen=True)
class Request:
    """One logical HTTP operation.

    Attributes:
        method: HTTP verb (GET, POST, PUT, DELETE)
        path: Path relative to the transport's base URL
        body: Optional body; bytes/str are sent verbatim, anything else is
            serialized as JSON
        headers: Extra per-request headers
        multipart: Optional multipart payload (mutually exclusive with body)
    """

    method: str
    path: str
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    multipart: MultipartBody | None = None

    def __post_init__(self) -> None:
        method = self.method.upper()
        if method not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {self.method}")
        if self.body is not None and self.multipart is not None:
            raise ValueError("Request cannot carry both body and multipart payload")
        object.__setattr__(self, "method", method)
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def encode_body(self) -> tuple[bytes | None, str | None]:
        """Encode the body for one attempt.

        Returns:
            Tuple of (body bytes or None, default Content-Type or None)

        Raises:
            TypeError: If the body is not JSON serializable
            ValueError: If the body cannot be serialized
        """
        if self.multipart is not None:
            return self.multipart.encode()
        if self.body is None:
            return None, None
        if isinstance(self.body, bytes):
            return self.body, "application/octet-stream"
        if isinstance(self.body, str):
            return self.body.encode("utf-8"), "text/plain; charset=utf-8"
        return json.dumps(self.body).encode("utf-8"), "application/json"


@dataclass(frozen=True)
class Response:
    """Completed HTTP exchange, whatever the status code.

    Attributes:
        status_code: HTTP status code
        body: Raw body bytes
        headers: Case-insensitive headers; repeated values via `getlist`
    """

    status_code: int
    body: bytes = b""
    headers: HTTPHeaderDict = field(default_factory=HTTPHeaderDict)

    @property
    def ok(self) -> bool:
        """True for 2xx and 3xx statuses."""
        return 200 <= self.status_code < 400

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON
        """
        return json.loads(self.body)

    def header(self, name: str, default: str | None = None) -> str | None:
        """Return the first value of a header."""
        values = self.headers.getlist(name)
        return values[0] if values else default
