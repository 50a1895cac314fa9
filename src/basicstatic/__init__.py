"""
=============================================================================
BASICSTATIC - Static File Server
=============================================================================

Serves files from one directory with:

    - ETag validators and 304 Not Modified answers
    - a configurable Cache-Control header
    - precompressed "<file>.gz" variants for clients sending Accept-Encoding
    - streamed bodies (memory use independent of file size)
    - JSON error bodies: {"error": "Not Found", "status": 404}

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    basicstatic/
    ├── __main__.py          # CLI (python -m basicstatic)
    ├── server.py            # HTTPServer: accept → pool → handler → send
    ├── config.py            # StaticConfig, ServerConfig
    ├── core/                # socket server, connection, thread pool
    ├── http/                # request parsing, responses, status, MIME
    ├── middleware/          # pipeline, access logging
    └── handlers/            # StaticFileHandler and its filesystem stages

=============================================================================
QUICK START
=============================================================================

    from basicstatic import HTTPServer, ServerConfig, StaticConfig

    config = ServerConfig(port=8080, static=StaticConfig(root_dir="./public", compress=True))
    HTTPServer(config).run()

    # or only the handler, behind another transport:
    from basicstatic import basic_static
    handler = basic_static("./public", cache="no-cache")
    response = handler(request)

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig, StaticConfig
from .handlers import StaticFileHandler, FriendlyError, basic_static
from .server import HTTPServer, create_app

__all__ = [
    "HTTPServer",
    "create_app",
    "ServerConfig",
    "StaticConfig",
    "StaticFileHandler",
    "FriendlyError",
    "basic_static",
    "__version__",
]
