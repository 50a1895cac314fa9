"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the static file server.

Two dataclasses:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   StaticConfig  (frozen)          ServerConfig                      │
    │   ─────────────────────           ────────────                      │
    │   root_dir   where files live     host, port, backlog, timeouts     │
    │   cache      Cache-Control value  worker threads                    │
    │   compress   prefer .gz siblings  logging                           │
    │                                   static: StaticConfig              │
    │                                                                      │
    │   Read by the handler on every    Read by the transport at          │
    │   request, never mutated.         startup.                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

StaticConfig is frozen because every worker thread reads it concurrently;
nothing about a request may change it.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

   Priority (highest to lowest):

   1. Command-line arguments      python -m basicstatic --root ./public
   2. Environment variables       HTTP_ROOT_DIR=./public python -m basicstatic
   3. Defaults in this module

=============================================================================
"""

import os
from dataclasses import dataclass, field
from typing import Optional


DEFAULT_CACHE_CONTROL = "public, max-age=86400"
"""One day, cacheable by browsers and shared caches."""

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class StaticConfig:
    """
    Configuration captured by a StaticFileHandler at construction time.

    Usage:
        StaticConfig()                                    # cwd, 1 day, no gzip
        StaticConfig(root_dir="/srv/www", compress=True)
        StaticConfig(root_dir="/srv/www", cache="no-cache")
    """

    root_dir: str = field(default_factory=os.getcwd)
    """
    Directory that request paths are joined onto.
    Made absolute on construction. Defaults to the working directory at the
    moment the config is created (not re-read later).
    """

    cache: str = DEFAULT_CACHE_CONTROL
    """
    Cache-Control header value sent with every 200 and 304.
    An empty value falls back to DEFAULT_CACHE_CONTROL.
    """

    compress: bool = False
    """
    Serve "<file>.gz" with Content-Encoding: gzip when it exists and the
    client sends Accept-Encoding.
    """

    def __post_init__(self):
        # Frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "root_dir", os.path.abspath(self.root_dir))
        if not self.cache:
            object.__setattr__(self, "cache", DEFAULT_CACHE_CONTROL)

    def validate(self) -> None:
        """Fail fast when the root is not a directory."""
        if not os.path.isdir(self.root_dir):
            raise ValueError(f"Static root directory does not exist: {self.root_dir}")


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP transport hosting the static handler.

    Development:
        ServerConfig(port=8080, log_level="DEBUG",
                     static=StaticConfig(root_dir="./public"))

    Production:
        ServerConfig(host="0.0.0.0", port=80, max_workers=32,
                     static=StaticConfig(root_dir="/srv/www", compress=True))
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    port: int = 8080
    backlog: int = 128
    buffer_size: int = 8192

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds. Also bounds how long a slow client can stall a send."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024
    """Static requests carry no body; 1 MB leaves room for large headers."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"
    """Access log format: 'text' (Apache-style) or 'json'."""

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY / CONTENT
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "basicstatic/1.0"

    static: StaticConfig = field(default_factory=StaticConfig)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        HTTP_HOST          Server host (default: 127.0.0.1)
        HTTP_PORT          Server port (default: 8080)
        HTTP_WORKERS       Max worker threads (default: 16)
        HTTP_TIMEOUT       Socket timeout in seconds (default: 30)
        HTTP_LOG_LEVEL     Logging level (default: INFO)
        HTTP_ROOT_DIR      Directory to serve (default: working directory)
        HTTP_CACHE_CONTROL Cache-Control value (default: public, max-age=86400)
        HTTP_COMPRESS      Serve .gz siblings: 1/true/yes/on (default: off)
        """
        static = StaticConfig(
            root_dir=os.getenv("HTTP_ROOT_DIR") or os.getcwd(),
            cache=os.getenv("HTTP_CACHE_CONTROL", DEFAULT_CACHE_CONTROL),
            compress=os.getenv("HTTP_COMPRESS", "").strip().lower() in _TRUTHY,
        )
        max_workers = int(os.getenv("HTTP_WORKERS", "16"))
        return cls(
            host=os.getenv("HTTP_HOST", "127.0.0.1"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            min_workers=min(4, max_workers),
            max_workers=max_workers,
            timeout=float(os.getenv("HTTP_TIMEOUT", "30")),
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO"),
            static=static,
        )

    def validate(self) -> None:
        """
        Validate configuration values at startup, not at first request.
        """
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 1-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"Unknown log_format: {self.log_format}")

        self.static.validate()
