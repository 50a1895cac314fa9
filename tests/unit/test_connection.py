"""
Unit tests for Connection, using a connected socket pair.
"""

import socket
import threading

import pytest

from basicstatic.core.connection import Connection, ConnectionState


@pytest.fixture
def pair():
    """(server_side, client_side) connected sockets."""
    server_side, client_side = socket.socketpair()
    yield server_side, client_side
    for sock in (server_side, client_side):
        try:
            sock.close()
        except OSError:
            pass


def make_connection(sock: socket.socket, **kwargs) -> Connection:
    return Connection(socket=sock, address=("127.0.0.1", 5555), timeout=2.0, **kwargs)


def read_all(sock: socket.socket) -> bytes:
    sock.settimeout(2.0)
    data = b""
    while True:
        chunk = sock.recv(65536)
        if not chunk:
            return data
        data += chunk


class FailingChunks:
    """Yields one chunk, then fails like a broken disk read."""

    def __init__(self):
        self.closed = False

    def __iter__(self):
        yield b"first"
        raise RuntimeError("read failed")

    def close(self):
        self.closed = True


class TestReadRequest:
    """Tests for Connection.read_request()."""

    def test_reads_split_request(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)

        def send_in_pieces():
            client_side.sendall(b"GET /main.js HT")
            client_side.sendall(b"TP/1.1\r\nHost: x\r\n\r\n")

        threading.Thread(target=send_in_pieces).start()

        assert conn.read_request() == b"GET /main.js HTTP/1.1\r\nHost: x\r\n\r\n"
        assert conn.requests_handled == 1

    def test_pipelined_requests_kept_apart(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)
        client_side.sendall(
            b"GET /a.js HTTP/1.1\r\n\r\n"
            b"GET /b.js HTTP/1.1\r\n\r\n"
        )

        assert conn.read_request() == b"GET /a.js HTTP/1.1\r\n\r\n"
        assert conn.read_request() == b"GET /b.js HTTP/1.1\r\n\r\n"

    def test_client_close_returns_none(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)
        client_side.close()

        assert conn.read_request() is None

    def test_too_large(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side, max_request_size=64)
        client_side.sendall(b"GET / HTTP/1.1\r\nX-Big: " + b"a" * 200)

        with pytest.raises(ValueError):
            conn.read_request()

    def test_first_request_timeout(self, pair):
        server_side, _ = pair
        conn = Connection(socket=server_side, address=("127.0.0.1", 1), timeout=0.1)

        with pytest.raises(TimeoutError):
            conn.read_request()


class TestSend:
    """Tests for send_response() and send_stream()."""

    def test_send_response(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)

        assert conn.send_response(b"HTTP/1.1 304 Not Modified\r\n\r\n") is True
        assert conn.state == ConnectionState.WRITING
        assert client_side.recv(1024) == b"HTTP/1.1 304 Not Modified\r\n\r\n"

    def test_send_stream(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)

        ok = conn.send_stream(b"HEAD\r\n\r\n", [b"abc", b"def"])
        conn.close()

        assert ok is True
        assert read_all(client_side) == b"HEAD\r\n\r\nabcdef"
        assert conn.bytes_sent == len(b"HEAD\r\n\r\nabcdef")

    def test_stream_failure_propagates_and_closes_chunks(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)
        chunks = FailingChunks()

        with pytest.raises(RuntimeError):
            conn.send_stream(b"HEAD\r\n\r\n", chunks)

        assert chunks.closed
        conn.abort()
        assert conn.is_closed
        assert read_all(client_side) == b"HEAD\r\n\r\nfirst"

    def test_send_to_closed_peer(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)
        client_side.close()

        big = [b"x" * 65536] * 64
        assert conn.send_stream(b"HEAD\r\n\r\n", big) is False


class TestClose:
    """Tests for close() and abort()."""

    def test_close_idempotent(self, pair):
        server_side, _ = pair
        conn = make_connection(server_side)

        conn.close()
        conn.close()

        assert conn.state == ConnectionState.CLOSED

    def test_context_manager_closes(self, pair):
        server_side, client_side = pair

        with make_connection(server_side) as conn:
            conn.send_response(b"bye")

        assert conn.is_closed
        assert read_all(client_side) == b"bye"

    def test_abort_after_close_is_noop(self, pair):
        server_side, _ = pair
        conn = make_connection(server_side)

        conn.close()
        conn.abort()

        assert conn.is_closed
