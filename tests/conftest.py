"""
pytest configuration and fixtures.
"""

import gzip
import socket
import threading
from pathlib import Path
from typing import Generator

import pytest

from basicstatic import HTTPServer, ServerConfig, StaticConfig
from basicstatic.http import HTTPRequest, parse_request


MAIN_JS = b"console.log('hello from main.js');\n" * 20
STYLES_CSS = b"body { color: #333; }\n"


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request for a static file."""
    return (
        b"GET /testfiles/main.js?v=123 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept-Encoding: gzip, deflate\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_conditional_request() -> bytes:
    """GET carrying an If-None-Match validator."""
    return (
        b"GET /testfiles/styles.css HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b'If-None-Match: "abc123"\r\n'
        b"Connection: close\r\n"
        b"\r\n"
    )


@pytest.fixture
def static_root(tmp_path: Path) -> Path:
    """
    Directory tree served by the tests:

        <root>/testfiles/main.js
        <root>/testfiles/main.js.gz      gzip of main.js
        <root>/testfiles/styles.css      no .gz sibling
        <root>/testfiles/change.js
        <root>/testfiles/subdir/
    """
    files = tmp_path / "testfiles"
    files.mkdir()
    (files / "main.js").write_bytes(MAIN_JS)
    (files / "main.js.gz").write_bytes(gzip.compress(MAIN_JS))
    (files / "styles.css").write_bytes(STYLES_CSS)
    (files / "change.js").write_bytes(b"var version = 1;\n")
    (files / "subdir").mkdir()
    return tmp_path


@pytest.fixture
def make_request():
    """Build an HTTPRequest for a path, with optional extra headers."""
    def _make(path: str, **headers: str) -> HTTPRequest:
        lines = [f"GET {path} HTTP/1.1", "Host: localhost"]
        for name, value in headers.items():
            lines.append(f"{name.replace('_', '-')}: {value}")
        raw = ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")
        return parse_request(raw, ("127.0.0.1", 50000))
    return _make


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestServer:
    """Runs an HTTPServer in a background thread."""

    __test__ = False

    def __init__(self, server: HTTPServer, port: int):
        self.server = server
        self.port = port
        self._thread: threading.Thread = None

    def start(self):
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"port": self.port},
            daemon=True,
        )
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)


def _start_server(root: Path, port: int, handler=None, **static_options) -> TestServer:
    server = HTTPServer(ServerConfig(
        host="127.0.0.1",
        port=port,
        min_workers=2,
        max_workers=4,
        keep_alive_timeout=1.0,
        log_level="WARNING",
        static=StaticConfig(root_dir=str(root), **static_options),
    ), handler=handler)
    test_srv = TestServer(server, port)
    test_srv.start()
    return test_srv


@pytest.fixture
def test_server(static_root: Path, free_port: int) -> Generator[TestServer, None, None]:
    """Server for static_root with default options."""
    srv = _start_server(static_root, free_port)
    yield srv
    srv.stop()


@pytest.fixture
def compress_server(static_root: Path, free_port: int) -> Generator[TestServer, None, None]:
    """Server for static_root with .gz variants enabled and a custom cache policy."""
    srv = _start_server(static_root, free_port, compress=True, cache="max-age=3600")
    yield srv
    srv.stop()


@pytest.fixture
def start_server(static_root: Path, free_port: int):
    """Factory: start a server for static_root with a custom handler or options."""
    started = []

    def _start(handler=None, **static_options) -> TestServer:
        srv = _start_server(static_root, free_port, handler=handler, **static_options)
        started.append(srv)
        return srv

    yield _start

    for srv in started:
        srv.stop()
