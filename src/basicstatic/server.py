"""
=============================================================================
HTTP SERVER
=============================================================================

Puts the pieces together:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SocketServer.accept()                                             │
    │        │ Connection                                                  │
    │        ▼                                                             │
    │   ThreadPool.submit(_process_connection)     queue full → 503       │
    │        │                                                             │
    │        ▼  (worker thread, once per keep-alive request)              │
    │   read_request → RequestParser.parse         parse error → 4xx      │
    │        │                                                             │
    │        ▼                                                             │
    │   middleware → StaticFileHandler             exception  → 500       │
    │        │                                                             │
    │        ▼                                                             │
    │   buffered: send_response(to_bytes())                               │
    │   streamed: send_stream(head_bytes(), stream)                       │
    │   HEAD:     send_response(head_bytes())                             │
    │                                   stream failure → abort connection │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Usage:

    server = HTTPServer(ServerConfig(static=StaticConfig(root_dir="./public")))
    server.use(LoggingMiddleware())
    server.run()

=============================================================================
"""

import logging
from typing import Optional, Callable

from .config import ServerConfig
from .core import SocketServer, Connection, ConnectionState, ThreadPool
from .handlers import StaticFileHandler
from .http import HTTPRequest, RequestParser, HTTPParseError, HTTPResponse, HTTPStatus, error_response
from .middleware import MiddlewarePipeline, Middleware, LoggingMiddleware


logger = logging.getLogger(__name__)


Handler = Callable[[HTTPRequest], HTTPResponse]


class HTTPServer:
    """
    Threaded HTTP/1.1 server for a single request handler.

    Args:
        config: Server configuration (defaults serve the working directory).
        handler: Callable request → response. Defaults to a
                 StaticFileHandler built from config.static.
    """

    def __init__(self, config: Optional[ServerConfig] = None, handler: Optional[Handler] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._middleware = MiddlewarePipeline()
        self._handler: Handler = handler or StaticFileHandler(self.config.static)
        self._pipeline: Optional[Handler] = None
        self._running = False

    @property
    def handler(self) -> Handler:
        return self._handler

    @property
    def address(self):
        """Bound (host, port) once running, configured address before."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    def use(self, middleware: Middleware) -> "HTTPServer":
        """Add middleware; the first one added runs outermost."""
        self._middleware.add(middleware)
        return self

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Serve until shutdown() or SIGINT/SIGTERM. Blocks.

        Args:
            host: Override config.host.
            port: Override config.port (0 lets the OS pick).
        """
        if host:
            self.config.host = host
        if port is not None:
            self.config.port = port

        self._setup_logging()
        self._pipeline = self._middleware.wrap(self._handler)
        self._running = True
        self._thread_pool.start()

        static = self.config.static
        logger.info(
            f"Serving {static.root_dir} "
            f"(cache={static.cache!r}, compress={'on' if static.compress else 'off'}, "
            f"workers={self.config.min_workers}-{self.config.max_workers})"
        )

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._stop()

    def shutdown(self):
        """Stop accepting connections; run() returns shortly after."""
        self._running = False
        self._socket_server.shutdown()

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("basicstatic").setLevel(level)

    def _stop(self):
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(timeout=self.config.keep_alive_timeout + 1.0)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Runs in the accept loop: hand off, never block."""
        if not self._thread_pool.submit(self._process_connection, conn):
            logger.warning(f"[{conn.id}] Thread pool full ({self._thread_pool.worker_count} workers), rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    def _process_connection(self, conn: Connection):
        """Keep-alive loop for one connection, in a worker thread."""
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break
                except ValueError as e:
                    logger.warning(f"[{conn.id}] {e}")
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, "Request too large")
                    break
                except OSError as e:
                    logger.debug(f"[{conn.id}] Read failed: {e}")
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    logger.info(f"[{conn.id}] Bad request: {e}")
                    self._send_error(conn, e.status_code, str(e))
                    break

                conn.state = ConnectionState.PROCESSING
                response = self._dispatch(conn, request)

                keep_alive = request.is_keep_alive and self.config.keep_alive and self._running
                try:
                    self._set_connection_headers(response, keep_alive)
                    sent = self._send(conn, response, head_only=request.method == "HEAD")
                finally:
                    response.close()

                if not sent:
                    break
                if not keep_alive:
                    break

                conn.set_keep_alive()

    def _dispatch(self, conn: Connection, request: HTTPRequest) -> HTTPResponse:
        try:
            return self._pipeline(request)
        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error: {e}")
            return error_response(HTTPStatus.INTERNAL_SERVER_ERROR)

    def _set_connection_headers(self, response: HTTPResponse, keep_alive: bool):
        if keep_alive:
            response.headers.setdefault("Connection", "keep-alive")
            response.headers.setdefault("Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}")
        else:
            response.headers["Connection"] = "close"

    def _send(self, conn: Connection, response: HTTPResponse, head_only: bool = False) -> bool:
        """
        Write a response. False means the connection must not be reused.

        head_only (HEAD requests) sends the header block alone, with the
        Content-Length the body would have had.

        A streamed body that fails after its head went out cannot be
        reported to the client; the connection is aborted instead so the
        short body is not mistaken for a complete one.
        """
        try:
            head = response.head_bytes(self.config.server_name)
        except ValueError as e:
            logger.error(f"[{conn.id}] Cannot frame response: {e}")
            conn.abort()
            return False

        if head_only:
            return conn.send_response(head)
        if not response.is_streamed:
            return conn.send_response(head + response.body)

        try:
            return conn.send_stream(head, response.stream)
        except Exception as e:
            logger.error(f"[{conn.id}] Response body failed after headers were sent: {e}")
            conn.abort()
            return False

    def _send_error(self, conn: Connection, status: HTTPStatus, message: str):
        response = error_response(status, message)
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))


def create_app(config: Optional[ServerConfig] = None) -> HTTPServer:
    """HTTPServer with access logging, in the configured format."""
    server = HTTPServer(config)
    server.use(LoggingMiddleware(log_format=server.config.log_format))
    return server
