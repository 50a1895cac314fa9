"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket: buffered request reads, buffered and
streamed response writes, and the two ways a connection can end.

=============================================================================
READING: TCP IS A BYTE STREAM
=============================================================================

recv() returns whatever the kernel has, not whole requests:

    recv() → "GET /main.js HT"
    recv() → "TP/1.1\\r\\nHost: x\\r\\n\\r\\nGET /sty"    ← next request starts
    recv() → "les.css HTTP/1.1\\r\\n..."

read_request() accumulates into _buffer until it sees the blank line
(\\r\\n\\r\\n) and any Content-Length body, returns exactly one request,
and keeps the remainder for the next keep-alive round.

=============================================================================
WRITING: BUFFERED VS STREAMED
=============================================================================

    send_response(data)          one sendall() of a prepared byte string
                                 (errors, 304s)

    send_stream(head, chunks)    sendall(head), then sendall(chunk) for
                                 each chunk of an open file. Memory use
                                 stays at one chunk whatever the file size.

Once the head of a streamed response is on the wire the status is
committed. If the file fails mid-way there is no way to send a new status,
so the caller abort()s the connection and the client sees a short body
instead of a corrupted one.

=============================================================================
ENDING A CONNECTION
=============================================================================

    close()     graceful: shutdown(SHUT_WR), drain, close
    abort()     immediate: close without draining, for broken responses

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Iterable, Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Where a connection is in its lifecycle (for logs and debugging)."""
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier used as a log prefix.
        state: Current ConnectionState.
        requests_handled: Requests read so far on this connection.
        bytes_sent: Response bytes written so far (heads and bodies).
    """

    socket: socket.socket
    address: tuple
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0
    bytes_sent: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request.

        Waits up to `timeout` for the first request and `keep_alive_timeout`
        for later ones.

        Returns:
            Raw request bytes, or None if the client closed the connection
            or went idle between keep-alive requests.

        Raises:
            TimeoutError: First request did not arrive in time.
            ValueError: Request grew beyond max_request_size.
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
                self._check_size()

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break
                self._buffer += chunk
                self._check_size()

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.last_activity = time.time()
            return request_data

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            if not self.is_closed:
                self.socket.settimeout(self.timeout)

    def _recv(self) -> bytes:
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def _check_size(self) -> None:
        if len(self._buffer) > self.max_request_size:
            raise ValueError(f"Request too large: {len(self._buffer)} bytes")

    def _parse_content_length(self, headers: bytes) -> int:
        """
        Find Content-Length in raw header bytes.

        Needed before the request is parsed, to know where it ends. A bad
        value reads as 0 here; the parser reports it properly afterwards.
        """
        header_str = headers.decode("latin-1").lower()
        for line in header_str.split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(0, int(line.split(":", 1)[1].strip()))
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send a fully serialized response.

        Returns:
            True if every byte was sent, False if the connection is gone.
        """
        self.state = ConnectionState.WRITING
        try:
            self._sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def send_stream(self, head: bytes, chunks: Iterable[bytes]) -> bool:
        """
        Send a header block followed by a body produced chunk by chunk.

        Socket failures are reported as False. Exceptions raised by the
        chunk iterable itself (a file read error) propagate: the head is
        already sent, so the caller must abort() the connection.

        The iterable is closed in every case if it has a close() method.

        Returns:
            True if head and body were sent, False if the client went away.
        """
        self.state = ConnectionState.WRITING
        try:
            self._sendall(head)
            for chunk in chunks:
                self._sendall(chunk)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Stream send failed after {self.bytes_sent} bytes: {e}")
            return False
        finally:
            closer = getattr(chunks, "close", None)
            if closer is not None:
                closer()

    def _sendall(self, data: bytes) -> None:
        self.socket.sendall(data)
        self.bytes_sent += len(data)
        self.last_activity = time.time()

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close gracefully: send FIN, drain what the client still sends,
        release the descriptor.
        """
        if self.is_closed:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        self._release()
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def abort(self):
        """
        Drop the connection without the graceful sequence.

        Used when a response is broken after its head was sent; the client
        must not mistake what it received for a complete body.
        """
        if self.is_closed:
            return
        self._release()
        logger.debug(f"[{self.id}] Connection aborted after {self.bytes_sent} bytes")

    def _release(self):
        try:
            self.socket.close()
        except OSError:
            pass
        self.state = ConnectionState.CLOSED

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
