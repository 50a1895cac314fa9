"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP/1.1 responses. A response body is either a bytes object held
in memory (JSON errors, 304s) or a STREAM: an iterable of byte chunks that
the connection copies to the socket after the header block.

=============================================================================
BUFFERED VS STREAMED
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   BUFFERED (body=b"...")            STREAMED (stream=FileStream)    │
    │   ──────────────────────            ────────────────────────────    │
    │                                                                      │
    │   to_bytes()                        head_bytes()                     │
    │     status + headers + body           status + headers only         │
    │     sent with one sendall()         then for chunk in stream:       │
    │                                         sendall(chunk)               │
    │                                                                      │
    │   Content-Length = len(body)        Content-Length MUST be set by   │
    │   (auto-added)                      the handler (file size)         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A static file can be far bigger than the memory we want to spend on one
request, so file bodies are always streamed.

=============================================================================
BUILDER PATTERN
=============================================================================

    response = (ResponseBuilder()
        .status(HTTPStatus.OK)
        .header("ETag", etag)
        .cache_control("public, max-age=86400")
        .stream(file_stream, length=size)
        .build())

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union, Iterable
import json

from .status_codes import HTTPStatus


# Statuses that never carry a body, so no Content-Length is auto-added.
_BODYLESS_STATUSES = {HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED}


@dataclass
class HTTPResponse:
    """
    An HTTP response to be sent to the client.

    Use ResponseBuilder to construct one.

        Handler returns      head_bytes()/to_bytes()      Connection sends
        HTTPResponse  ─────►  serializes headers   ─────►  header block,
                                                           then body/stream
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    stream: Optional[Iterable[bytes]] = field(default=None, repr=False)
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """``HTTP/1.1 200 OK``"""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def is_streamed(self) -> bool:
        return self.stream is not None

    @property
    def content_length(self) -> int:
        """
        Number of body bytes this response declares.

        For streamed responses this is the Content-Length header set by the
        handler; the stream itself is never consumed to find out.
        """
        declared = self.headers.get("Content-Length")
        if declared is not None:
            return int(declared)
        return len(self.body)

    def head_bytes(self, server_name: str = "basicstatic/1.0") -> bytes:
        """
        Serialize the status line and headers, ending with the blank line.

        Adds Date and Server when missing. Adds Content-Length for buffered
        bodies; a streamed response must already carry one.
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers and self.status not in _BODYLESS_STATUSES:
            if self.is_streamed:
                raise ValueError("Streamed responses need an explicit Content-Length")
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        return "\r\n".join(lines).encode("utf-8") + b"\r\n"

    def to_bytes(self, server_name: str = "basicstatic/1.0") -> bytes:
        """
        Serialize a buffered response (header block + body) in one piece.

        Raises:
            ValueError: For streamed responses; send those with
                        Connection.send_stream().
        """
        if self.is_streamed:
            raise ValueError("Streamed responses cannot be serialized in one piece")
        return self.head_bytes(server_name) + self.body

    def close(self) -> None:
        """Release the stream if it holds a resource (open file)."""
        closer = getattr(self.stream, "close", None)
        if closer is not None:
            closer()


class ResponseBuilder:
    """
    Fluent builder for HTTP responses.

    Every method except build() returns self:

        ResponseBuilder().status(HTTPStatus.NOT_FOUND).json({...}).build()
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""
        self._stream: Optional[Iterable[bytes]] = None

    # =========================================================================
    # STATUS / HEADERS
    # =========================================================================

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def cache_control(self, value: str) -> "ResponseBuilder":
        """
        Set Cache-Control verbatim.

        Static files take their policy from configuration
        ("public, max-age=86400", "no-cache", ...), so the value is passed
        through unchanged.
        """
        return self.header("Cache-Control", value)

    # =========================================================================
    # BODY
    # =========================================================================

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        self._stream = None
        return self

    def json(self, data: Any) -> "ResponseBuilder":
        """
        Set a JSON body and Content-Type: application/json.

        ensure_ascii=False keeps non-ASCII file names readable in errors.
        """
        self.body(json.dumps(data, ensure_ascii=False))
        return self.content_type("application/json")

    def stream(self, chunks: Iterable[bytes], length: int) -> "ResponseBuilder":
        """
        Use an iterable of byte chunks as the body.

        Args:
            chunks: Iterable yielding bytes (e.g. a FileStream).
            length: Exact number of bytes the iterable will yield.
                    Sent as Content-Length so keep-alive framing works.
        """
        self._stream = chunks
        self._body = b""
        return self.header("Content-Length", str(length))

    # =========================================================================
    # BUILD
    # =========================================================================

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
            stream=self._stream,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231).

    Example: Wed, 01 Jan 2026 12:00:00 GMT

    HTTP dates are always GMT; pass an aware UTC datetime.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# ERROR RESPONSES
# =============================================================================
#
# Every error leaves the server as a small JSON object:
#
#     {"error": "Not Found", "status": 404}
#
# =============================================================================

def error_response(status: HTTPStatus, message: Optional[str] = None) -> HTTPResponse:
    """
    Build a JSON error response.

    Args:
        status: HTTP status to send.
        message: Human-readable message (defaults to the reason phrase).
    """
    status = HTTPStatus(status)
    return (ResponseBuilder()
        .status(status)
        .json({"error": message or status.phrase, "status": int(status)})
        .build())
