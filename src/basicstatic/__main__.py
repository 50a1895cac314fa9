"""
=============================================================================
COMMAND LINE INTERFACE
=============================================================================

    python -m basicstatic                          # serve the current directory
    python -m basicstatic --root ./public --compress
    python -m basicstatic -r /srv/www -c "no-cache" -H 0.0.0.0 -p 80

Environment variables (HTTP_ROOT_DIR, HTTP_PORT, ...) provide defaults;
command-line flags override them. See config.ServerConfig.from_env().

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import ServerConfig, StaticConfig
from .server import create_app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="basicstatic",
        description="Serve static files with ETag caching and precompressed gzip variants",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--root", "-r",
        default=None,
        help="Directory to serve (default: $HTTP_ROOT_DIR or the current directory)"
    )
    parser.add_argument(
        "--cache", "-c",
        default=None,
        help='Cache-Control header value (default: "public, max-age=86400")'
    )
    parser.add_argument(
        "--compress", "-z",
        action="store_true",
        default=None,
        help="Serve <file>.gz when present and the client sends Accept-Encoding"
    )
    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for containers)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 8080)"
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum worker threads (default: 16)"
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Access log format (default: text)"
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"basicstatic {__version__}"
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment defaults, overridden by whatever flags were given."""
    config = ServerConfig.from_env()

    config.static = StaticConfig(
        root_dir=args.root or config.static.root_dir,
        cache=args.cache if args.cache is not None else config.static.cache,
        compress=config.static.compress if args.compress is None else args.compress,
    )

    if args.host:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.workers is not None:
        config.max_workers = args.workers
        config.min_workers = min(config.min_workers, args.workers)
    if args.log_level:
        config.log_level = args.log_level
    config.log_format = args.log_format

    return config


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        server = create_app(config_from_args(args))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    try:
        server.run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
