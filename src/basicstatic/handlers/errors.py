"""
Errors raised while resolving and serving a static file.
"""

from typing import Optional

from ..http.response import HTTPResponse, error_response
from ..http.status_codes import HTTPStatus


class FriendlyError(Exception):
    """
    A failure that maps directly onto an HTTP error response.

    Each stage of the static pipeline raises this with the status the
    client should see:

        404 Not Found              path (or a parent segment) does not exist
        400 Bad Request            not a regular file, or outside the root
        500 Internal Server Error  stat()/open()/read() failed otherwise

    The message is safe to show to clients. The underlying OSError, when
    there is one, is chained as __cause__ and logged, never sent.
    """

    def __init__(self, status: HTTPStatus, message: Optional[str] = None):
        self.status = HTTPStatus(status)
        self.message = message or self.status.phrase
        super().__init__(self.message)

    def to_response(self) -> HTTPResponse:
        return error_response(self.status, self.message)
