"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Turns a parsed request into a file response:

    GET /css/app.css HTTP/1.1
    Accept-Encoding: gzip
    If-None-Match: "9b2c..."
            │
            ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  resolve_path → check_compressed → stat_file → should_304           │
    │                                                   │         │        │
    │                                              fresh│         │stale   │
    │                                                   ▼         ▼        │
    │                                                  304    FileStream   │
    │                                                           → 200      │
    └─────────────────────────────────────────────────────────────────────┘
            │
            ▼
    HTTPResponse (buffered for 304/errors, streamed for 200)

The request method is not inspected: HEAD, POST and friends get the same
answer as GET. For HEAD the server sends the header block only and closes
the stream unread.

=============================================================================
RESPONSE HEADERS
=============================================================================

    200 OK
    Content-Type: text/css        ← from the requested name, never ".gz"
    Content-Length: 1432          ← size of the file actually sent
    ETag: "9b2c..."
    Last-Modified: ...
    Cache-Control: public, max-age=86400
    Content-Encoding: gzip        ← only when the .gz sibling was chosen
    Vary: Accept-Encoding         ← whenever compression is enabled

    304 Not Modified
    ETag: "9b2c..."
    Cache-Control: public, max-age=86400

=============================================================================
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ..config import StaticConfig
from ..http.mime_types import get_mime_type
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, format_http_date
from ..http.status_codes import HTTPStatus
from .errors import FriendlyError
from .etag import create_etag, should_304
from .files import ProbeResult, check_compressed, open_stream, resolve_path, stat_file


logger = logging.getLogger(__name__)


class StaticFileHandler:
    """
    Request handler serving files below a fixed root directory.

    Usage:
        handler = StaticFileHandler(StaticConfig(root_dir="./public", compress=True))
        response = handler(request)

    The configuration is captured once; the handler keeps no per-request
    state and is safe to call from every worker thread at once.
    """

    def __init__(self, config: Optional[StaticConfig] = None, chunk_size: Optional[int] = None):
        self.config = config or StaticConfig()
        self.config.validate()
        self.chunk_size = chunk_size
        logger.debug(
            f"Serving {self.config.root_dir} "
            f"(cache={self.config.cache!r}, compress={self.config.compress})"
        )

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        return self.handle(request)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Serve the file named by request.path.

        Every FriendlyError raised by a stage becomes its JSON error
        response here. Anything else propagates to the server, which
        answers 500.
        """
        try:
            return self._handle(request)
        except FriendlyError as e:
            return e.to_response()

    def _handle(self, request: HTTPRequest) -> HTTPResponse:
        base_path = resolve_path(self.config.root_dir, request.path)

        file_path, compressed = base_path, False
        if self.config.compress and request.accepts_encoding:
            file_path, compressed = check_compressed(base_path)

        probe = stat_file(file_path, compressed=compressed)

        if should_304(request.if_none_match, probe):
            return self._not_modified(probe)

        return self._serve_file(base_path, probe)

    def _not_modified(self, probe: ProbeResult) -> HTTPResponse:
        return (ResponseBuilder()
            .status(HTTPStatus.NOT_MODIFIED)
            .header("ETag", create_etag(probe.inode, probe.mtime_ns))
            .cache_control(self.config.cache)
            .build())

    def _serve_file(self, base_path: str, probe: ProbeResult) -> HTTPResponse:
        """
        Build the 200 response for a probed file.

        The file is opened here, before headers exist, so an open() failure
        can still be answered with a clean 500.

        Args:
            base_path: The requested (uncompressed) path; drives Content-Type.
            probe: Metadata of the file actually served (maybe the .gz).
        """
        stream = open_stream(probe, self.chunk_size)
        mtime = datetime.fromtimestamp(probe.mtime_ns / 1e9, tz=timezone.utc)

        builder = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type(get_mime_type(base_path))
            .header("ETag", create_etag(probe.inode, probe.mtime_ns))
            .header("Last-Modified", format_http_date(mtime))
            .cache_control(self.config.cache)
            .stream(stream, length=probe.size))

        if probe.compressed:
            builder.header("Content-Encoding", "gzip")
        if self.config.compress:
            builder.header("Vary", "Accept-Encoding")

        return builder.build()


def basic_static(
    root_dir: Optional[str] = None,
    cache: Optional[str] = None,
    compress: bool = False,
) -> StaticFileHandler:
    """
    Create a static file handler.

    Args:
        root_dir: Directory to serve; the working directory when omitted.
        cache: Cache-Control value; "public, max-age=86400" when omitted.
        compress: Serve "<file>.gz" siblings to clients sending Accept-Encoding.

    Example:
        server = HTTPServer(handler=basic_static("./public", compress=True))
    """
    options = {"cache": cache or "", "compress": compress}
    if root_dir is not None:
        options["root_dir"] = root_dir
    return StaticFileHandler(StaticConfig(**options))
