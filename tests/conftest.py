"""Root-level pytest configuration for all tests."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest
import structlog

from notebook_cli.container import reset_container

ENV_VARS = (
    "OPEN_NOTEBOOK_API_URL",
    "OPEN_NOTEBOOK_TIMEOUT",
    "OPEN_NOTEBOOK_VERIFY_SSL",
    "OPEN_NOTEBOOK_RETRY_COUNT",
    "OPEN_NOTEBOOK_PASSWORD",
    "OPEN_NOTEBOOK_TOKEN",
    "OPEN_NOTEBOOK_OUTPUT",
    "OPEN_NOTEBOOK_VERBOSE",
)


@pytest.fixture(autouse=True)
def isolated_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[Path]:
    """Keep tests away from the user's config files and OPEN_NOTEBOOK_* variables."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)

    global_config = tmp_path / "home" / ".open-notebook" / "config.yaml"
    monkeypatch.setattr("notebook_cli.config.GLOBAL_CONFIG_PATH", global_config)
    monkeypatch.setattr("notebook_cli.commands.config.GLOBAL_CONFIG_PATH", global_config)

    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)

    reset_container()
    yield global_config
    reset_container()
    # CLI runs point structlog at the runner's (now closed) stderr
    structlog.reset_defaults()


@dataclass
class Reply:
    """One scripted server answer.

    A reply with `drop=True` closes the connection without answering.
    """

    status: int = 200
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)
    drop: bool = False


@dataclass
class RecordedRequest:
    method: str
    path: str
    headers: dict[str, str]
    body: bytes


class ScriptedServer(ThreadingHTTPServer):
    """Local HTTP server answering from a script of replies.

    Replies are consumed in order; the last one repeats once the script
    runs out.
    """

    daemon_threads = True

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), _ScriptedHandler)
        self.replies: list[Reply] = [Reply()]
        self.requests: list[RecordedRequest] = []
        self._lock = threading.Lock()

    @property
    def url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def script(self, *replies: Reply) -> None:
        with self._lock:
            self.replies = list(replies)
            self.requests.clear()

    def next_reply(self, request: RecordedRequest) -> Reply:
        with self._lock:
            self.requests.append(request)
            if len(self.replies) > 1:
                return self.replies.pop(0)
            return self.replies[0]


class _ScriptedHandler(BaseHTTPRequestHandler):
    server: ScriptedServer

    def _handle(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        reply = self.server.next_reply(
            RecordedRequest(self.command, self.path, dict(self.headers), body)
        )
        if reply.drop:
            self.close_connection = True
            return

        self.send_response(reply.status)
        for name, value in reply.headers.items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(reply.body)))
        self.end_headers()
        self.wfile.write(reply.body)

    do_GET = _handle
    do_POST = _handle
    do_PUT = _handle
    do_DELETE = _handle

    def log_message(self, format: str, *args: object) -> None:
        pass


@pytest.fixture
def http_server() -> Iterator[ScriptedServer]:
    """Start a scripted HTTP server on an ephemeral localhost port."""
    server = ScriptedServer()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)
