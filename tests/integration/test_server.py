"""
Integration tests: a real server on a local port, driven with http.client.
"""

import gzip
import http.client
import json
import os
import socket
import threading
from pathlib import Path

import pytest

from basicstatic import HTTPServer, ServerConfig, StaticConfig
from basicstatic.handlers import FriendlyError, StaticFileHandler
from basicstatic.http import HTTPResponse, HTTPStatus, ResponseBuilder


def get(server, path: str, headers: dict = None):
    conn = http.client.HTTPConnection("127.0.0.1", server.port, timeout=5)
    try:
        conn.request("GET", path, headers=headers or {})
        response = conn.getresponse()
        return response, response.read()
    finally:
        conn.close()


class TestStaticServing:
    """Default configuration: no compression, default cache policy."""

    def test_serves_file(self, test_server, static_root: Path):
        response, body = get(test_server, "/testfiles/main.js")

        assert response.status == 200
        assert response.getheader("Content-Type") == "text/javascript"
        assert body == (static_root / "testfiles" / "main.js").read_bytes()
        assert int(response.getheader("Content-Length")) == len(body)
        assert response.getheader("Server") == "basicstatic/1.0"
        assert response.getheader("Date")

    def test_query_string(self, test_server):
        response, _ = get(test_server, "/testfiles/main.js?v=123")
        assert response.status == 200

    def test_missing_file(self, test_server):
        response, body = get(test_server, "/testfiles/nope.js")

        assert response.status == 404
        assert json.loads(body) == {"error": "Not Found", "status": 404}

    def test_missing_directory(self, test_server):
        response, _ = get(test_server, "/nodir/main.js")
        assert response.status == 404

    def test_directory(self, test_server):
        response, body = get(test_server, "/testfiles")

        assert response.status == 400
        assert json.loads(body) == {"error": "Bad Request", "status": 400}

    def test_css_content_type(self, test_server):
        response, _ = get(test_server, "/testfiles/styles.css")
        assert response.getheader("Content-Type") == "text/css"

    def test_default_cache_control(self, test_server):
        response, _ = get(test_server, "/testfiles/main.js")
        assert response.getheader("Cache-Control") == "public, max-age=86400"

    def test_not_modified_round_trip(self, test_server):
        first, _ = get(test_server, "/testfiles/main.js")
        etag = first.getheader("ETag")

        second, body = get(test_server, "/testfiles/main.js", {"If-None-Match": etag})

        assert second.status == 304
        assert body == b""
        assert second.getheader("ETag") == etag

    def test_new_etag_after_change(self, test_server, static_root: Path):
        path = static_root / "testfiles" / "change.js"
        first, _ = get(test_server, "/testfiles/change.js")
        etag = first.getheader("ETag")

        st = path.stat()
        path.write_bytes(b"var version = 2;\n")
        os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + 1_000_000_000))

        second, body = get(test_server, "/testfiles/change.js", {"If-None-Match": etag})

        assert second.status == 200
        assert second.getheader("ETag") != etag
        assert body == b"var version = 2;\n"

    def test_traversal_rejected(self, test_server):
        with socket.create_connection(("127.0.0.1", test_server.port), timeout=5) as sock:
            sock.sendall(b"GET /../../../etc/passwd HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n")
            data = b""
            while True:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                data += chunk

        assert data.startswith(b"HTTP/1.1 400 Bad Request\r\n")

    def test_gz_not_used_when_disabled(self, test_server):
        response, _ = get(test_server, "/testfiles/main.js", {"Accept-Encoding": "gzip"})

        assert response.getheader("Content-Encoding") is None
        assert response.getheader("Vary") is None

    def test_keep_alive_reuses_connection(self, test_server, static_root: Path):
        conn = http.client.HTTPConnection("127.0.0.1", test_server.port, timeout=5)
        try:
            for name in ("main.js", "styles.css", "main.js"):
                conn.request("GET", f"/testfiles/{name}")
                response = conn.getresponse()
                assert response.read() == (static_root / "testfiles" / name).read_bytes()
                assert response.getheader("Connection") == "keep-alive"
        finally:
            conn.close()

    def test_malformed_request(self, test_server):
        with socket.create_connection(("127.0.0.1", test_server.port), timeout=5) as sock:
            sock.sendall(b"NONSENSE\r\n\r\n")
            data = sock.recv(4096)

        assert data.startswith(b"HTTP/1.1 400 ")


def read_head(sock) -> tuple:
    """Read up to the blank line ending a header block; return (head, bytes after it)."""
    data = b""
    while b"\r\n\r\n" not in data:
        chunk = sock.recv(4096)
        if not chunk:
            break
        data += chunk
    head, _, rest = data.partition(b"\r\n\r\n")
    return head, rest


def read_to_eof(sock) -> bytes:
    data = b""
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            return data
        data += chunk


class TestHeadRequests:
    """HEAD gets the GET headers and no body."""

    def test_head_then_get_on_same_connection(self, test_server, static_root: Path):
        styles = (static_root / "testfiles" / "styles.css").read_bytes()

        with socket.create_connection(("127.0.0.1", test_server.port), timeout=5) as sock:
            sock.sendall(b"HEAD /testfiles/styles.css HTTP/1.1\r\nHost: x\r\n\r\n")
            head, rest = read_head(sock)

            sock.sendall(b"GET /testfiles/styles.css HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n")
            following = rest + read_to_eof(sock)

        assert head.startswith(b"HTTP/1.1 200 OK\r\n")
        assert f"Content-Length: {len(styles)}".encode() in head
        assert following.startswith(b"HTTP/1.1 200 OK\r\n")
        assert following.endswith(b"\r\n\r\n" + styles)
        assert following.count(b"HTTP/1.1") == 1

    def test_head_error_has_no_body(self, test_server):
        with socket.create_connection(("127.0.0.1", test_server.port), timeout=5) as sock:
            sock.sendall(b"HEAD /testfiles/nope.js HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n")
            data = read_to_eof(sock)

        assert data.startswith(b"HTTP/1.1 404 Not Found\r\n")
        assert b"Content-Length: " in data
        assert data.endswith(b"\r\n\r\n")

    def test_head_closes_file(self, start_server, static_root: Path):
        handler = StaticFileHandler(StaticConfig(root_dir=str(static_root)))
        served = []

        def recording(request):
            response = handler(request)
            served.append(response)
            return response

        srv = start_server(handler=recording)
        with socket.create_connection(("127.0.0.1", srv.port), timeout=5) as sock:
            sock.sendall(b"HEAD /testfiles/main.js HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n")
            read_to_eof(sock)

        assert served[0].stream.closed


class TestCompressedServing:
    """compress=True with a custom cache policy."""

    def test_gzip_served(self, compress_server, static_root: Path):
        response, body = get(compress_server, "/testfiles/main.js", {"Accept-Encoding": "gzip"})

        assert response.status == 200
        assert response.getheader("Content-Encoding") == "gzip"
        assert response.getheader("Content-Type") == "text/javascript"
        assert response.getheader("Vary") == "Accept-Encoding"
        assert int(response.getheader("Content-Length")) == (static_root / "testfiles" / "main.js.gz").stat().st_size
        assert gzip.decompress(body) == (static_root / "testfiles" / "main.js").read_bytes()

    def test_fallback_without_gz_file(self, compress_server, static_root: Path):
        response, body = get(compress_server, "/testfiles/styles.css", {"Accept-Encoding": "gzip"})

        assert response.status == 200
        assert response.getheader("Content-Encoding") is None
        assert body == (static_root / "testfiles" / "styles.css").read_bytes()

    def test_custom_cache_control(self, compress_server):
        response, _ = get(compress_server, "/testfiles/styles.css")
        assert response.getheader("Cache-Control") == "max-age=3600"

    def test_304_for_gz_variant(self, compress_server):
        headers = {"Accept-Encoding": "gzip"}
        first, _ = get(compress_server, "/testfiles/main.js", headers)

        second, _ = get(compress_server, "/testfiles/main.js", {**headers, "If-None-Match": first.getheader("ETag")})

        assert second.status == 304
        assert second.getheader("Cache-Control") == "max-age=3600"


class TestBrokenStream:
    """A body that fails mid-way must not be followed by a second status line."""

    def test_connection_aborted(self, start_server):
        def failing_body():
            yield b"partial"
            raise FriendlyError(HTTPStatus.INTERNAL_SERVER_ERROR, "disk went away")

        def handler(request) -> HTTPResponse:
            return ResponseBuilder().stream(failing_body(), length=100).build()

        srv = start_server(handler=handler)
        with socket.create_connection(("127.0.0.1", srv.port), timeout=5) as sock:
            sock.sendall(b"GET /x HTTP/1.1\r\nHost: x\r\n\r\n")
            data = b""
            while True:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                data += chunk

        assert data.startswith(b"HTTP/1.1 200 OK\r\n")
        assert data.endswith(b"\r\n\r\npartial")
        assert data.count(b"HTTP/1.1") == 1

    def test_unframeable_stream_closed(self, start_server):
        released = threading.Event()

        class Chunks:
            def __iter__(self):
                yield b"never sent"

            def close(self):
                released.set()

        def handler(request) -> HTTPResponse:
            return HTTPResponse(stream=Chunks())

        srv = start_server(handler=handler)
        with socket.create_connection(("127.0.0.1", srv.port), timeout=5) as sock:
            sock.sendall(b"GET /x HTTP/1.1\r\nHost: x\r\n\r\n")
            data = read_to_eof(sock)

        assert data == b""
        assert released.wait(timeout=5)

    def test_handler_exception_is_500(self, start_server):
        def handler(request):
            raise RuntimeError("bug")

        srv = start_server(handler=handler)
        response, body = get(srv, "/anything")

        assert response.status == 500
        assert json.loads(body) == {"error": "Internal Server Error", "status": 500}


class TestServerConstruction:
    """HTTPServer defaults."""

    def test_default_handler_uses_static_config(self, static_root: Path):
        config = ServerConfig(static=StaticConfig(root_dir=str(static_root), compress=True))

        server = HTTPServer(config)

        assert isinstance(server.handler, StaticFileHandler)
        assert server.handler.config is config.static

    def test_invalid_root_fails_fast(self, tmp_path: Path):
        with pytest.raises(ValueError):
            HTTPServer(ServerConfig(static=StaticConfig(root_dir=str(tmp_path / "missing"))))
