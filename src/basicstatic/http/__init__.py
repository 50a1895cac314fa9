"""
=============================================================================
HTTP PROTOCOL MODULE
=============================================================================

HTTP/1.1 message handling for the static file server:

    request.py       Raw bytes → HTTPRequest
    response.py      HTTPResponse / ResponseBuilder → bytes (or a stream)
    status_codes.py  HTTPStatus enum with reason phrases
    mime_types.py    File extension → Content-Type

    REQUEST:                          RESPONSE:
    ─────────                         ──────────
    GET /app.js HTTP/1.1\\r\\n          HTTP/1.1 200 OK\\r\\n
    If-None-Match: "abc"\\r\\n          ETag: "def"\\r\\n
    \\r\\n                              \\r\\n
                                      [file bytes]

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    error_response,
    format_http_date,
)
from .status_codes import HTTPStatus
from .mime_types import get_mime_type

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "error_response",
    "format_http_date",

    # Status codes
    "HTTPStatus",

    # MIME types
    "get_mime_type",
]
