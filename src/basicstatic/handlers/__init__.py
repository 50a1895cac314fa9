"""
Static file handler and the filesystem stages it is built from.
"""

from .errors import FriendlyError
from .etag import create_etag, should_304
from .files import ProbeResult, FileStream, resolve_path, stat_file, check_compressed
from .static import StaticFileHandler, basic_static

__all__ = [
    "StaticFileHandler",
    "basic_static",
    "FriendlyError",
    "ProbeResult",
    "FileStream",
    "resolve_path",
    "stat_file",
    "check_compressed",
    "create_etag",
    "should_304",
]
