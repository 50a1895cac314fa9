"""
=============================================================================
FILESYSTEM STAGES OF A STATIC REQUEST
=============================================================================

Each request runs these steps in order, in one worker thread:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   resolve_path()       "/css/app.css" → "/srv/www/css/app.css"      │
    │        │               escapes root / NUL byte      → 400           │
    │        ▼                                                             │
    │   check_compressed()   "/srv/www/css/app.css.gz" if it exists       │
    │        │               (only with compress + Accept-Encoding)       │
    │        ▼                                                             │
    │   stat_file()          missing → 404                                │
    │        │               directory, socket, ... → 400                 │
    │        │               any other OSError → 500                      │
    │        ▼                                                             │
    │   FileStream()         opened BEFORE headers are built              │
    │                        then read in fixed-size chunks               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Every failure is a FriendlyError with the status the client should see.

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

    GET /../../etc/passwd HTTP/1.1

    os.path.join("/srv/www", "../../etc/passwd")
    normpath  → "/etc/passwd"
    not under "/srv/www/"  → 400 Bad Request

The check is lexical. Symlinks inside the root are followed by the OS when
the file is opened; a link pointing outside the root is the operator's
choice, not the client's.

=============================================================================
"""

import logging
import os
import stat
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from ..http.status_codes import HTTPStatus
from .errors import FriendlyError


logger = logging.getLogger(__name__)


GZIP_SUFFIX = ".gz"
CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ProbeResult:
    """Metadata of the file that will be served, taken from one stat() call."""

    path: str
    size: int
    mtime_ns: int
    inode: int
    compressed: bool = False


# =============================================================================
# PATH RESOLUTION
# =============================================================================

def resolve_path(root_dir: str, url_path: str) -> str:
    """
    Map a decoded URL path onto the filesystem below root_dir.

    A trailing slash is kept so that "/main.js/" probes as "main.js/" and
    fails with ENOTDIR (404) instead of silently serving main.js.

    Args:
        root_dir: Absolute root directory.
        url_path: Request path, already URL-decoded, without query string.

    Returns:
        Absolute path inside root_dir.

    Raises:
        FriendlyError: 400 if the path contains NUL or leaves root_dir.
    """
    if "\x00" in url_path:
        logger.info(f"Rejected path with NUL byte: {url_path!r}")
        raise FriendlyError(HTTPStatus.BAD_REQUEST)

    root = os.path.normpath(root_dir)
    # lstrip: os.path.join discards root when the second part is absolute
    candidate = os.path.normpath(os.path.join(root, url_path.lstrip("/")))

    prefix = root if root.endswith(os.sep) else root + os.sep
    if candidate != root and not candidate.startswith(prefix):
        logger.warning(f"Path traversal attempt: {url_path!r}")
        raise FriendlyError(HTTPStatus.BAD_REQUEST)

    if url_path.endswith("/") and candidate != root:
        candidate += os.sep
    return candidate


# =============================================================================
# PROBING
# =============================================================================

def stat_file(path: str, compressed: bool = False) -> ProbeResult:
    """
    Check that path is an existing regular file and collect its metadata.

    Raises:
        FriendlyError: 404 when missing (ENOENT, ENOTDIR),
                       400 when not a regular file,
                       500 for any other stat() failure.
    """
    try:
        st = os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        logger.debug(f"Not found: {path}")
        raise FriendlyError(HTTPStatus.NOT_FOUND) from None
    except OSError as e:
        logger.error(f"stat() failed for {path}: {e}")
        raise FriendlyError(HTTPStatus.INTERNAL_SERVER_ERROR) from e

    if not stat.S_ISREG(st.st_mode):
        logger.debug(f"Not a regular file: {path}")
        raise FriendlyError(HTTPStatus.BAD_REQUEST)

    return ProbeResult(
        path=path,
        size=st.st_size,
        mtime_ns=st.st_mtime_ns,
        inode=st.st_ino,
        compressed=compressed,
    )


def check_compressed(base_path: str) -> Tuple[str, bool]:
    """
    Prefer a precompressed "<base_path>.gz" sibling when one exists.

    Never raises; anything other than a readable regular .gz file means
    the uncompressed path is used.

    Returns:
        (path_to_serve, compressed)
    """
    gz_path = base_path + GZIP_SUFFIX
    try:
        st = os.stat(gz_path)
    except (OSError, ValueError):
        return base_path, False

    if stat.S_ISREG(st.st_mode):
        return gz_path, True
    return base_path, False


# =============================================================================
# STREAMING
# =============================================================================

class FileStream:
    """
    Iterable over a file's bytes in fixed-size chunks.

    The file is opened in the constructor so an open() failure surfaces
    before any header is written. The file is closed when iteration ends,
    fails, or when close() is called by the connection.

        stream = FileStream(probe.path, probe.size)
        for chunk in stream:
            sock.sendall(chunk)

    A file that shrinks while being read raises FriendlyError(500) after
    the last available chunk; one that grows is cut at the expected length.
    Either way the Content-Length already sent stays honest or the
    connection is aborted.
    """

    def __init__(self, path: str, length: int, chunk_size: int = CHUNK_SIZE):
        self.path = path
        self.length = length
        self.chunk_size = chunk_size
        try:
            self._file = open(path, "rb")
        except OSError as e:
            logger.error(f"open() failed for {path}: {e}")
            raise FriendlyError(HTTPStatus.INTERNAL_SERVER_ERROR) from e

    def __iter__(self) -> Iterator[bytes]:
        remaining = self.length
        try:
            while remaining > 0:
                try:
                    chunk = self._file.read(min(self.chunk_size, remaining))
                except OSError as e:
                    logger.error(f"read() failed for {self.path}: {e}")
                    raise FriendlyError(HTTPStatus.INTERNAL_SERVER_ERROR) from e
                if not chunk:
                    raise FriendlyError(
                        HTTPStatus.INTERNAL_SERVER_ERROR,
                        f"File truncated while reading ({remaining} bytes short)",
                    )
                remaining -= len(chunk)
                yield chunk
        finally:
            self.close()

    @property
    def closed(self) -> bool:
        return self._file.closed

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()


def open_stream(probe: ProbeResult, chunk_size: Optional[int] = None) -> FileStream:
    """Open a FileStream sized to the probed file."""
    return FileStream(probe.path, probe.size, chunk_size or CHUNK_SIZE)
