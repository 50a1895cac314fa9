"""
=============================================================================
ENTITY TAGS AND CONDITIONAL REQUESTS
=============================================================================

    First request                      Second request
    ─────────────                      ──────────────
    GET /main.js                       GET /main.js
                                       If-None-Match: "5f1c..."
    200 OK                                     │
    ETag: "5f1c..."   ──── client caches ──────┘
                                       304 Not Modified   (tags equal)
                                       200 OK + new ETag  (file changed)

The tag is an md5 fingerprint of the file's inode and modification time in
nanoseconds. Content is never hashed: stat() already gives us everything
needed, and any write to the file moves its mtime.

Comparison is exact string equality. No weak validators (W/"..."), no
comma-separated lists, no "*".

=============================================================================
"""

import hashlib
from typing import Optional

from .files import ProbeResult


def create_etag(inode: int, mtime_ns: int) -> str:
    """
    Build the ETag for a file version.

    Stable across requests and restarts for the same (inode, mtime),
    different as soon as either changes.

    Args:
        inode: st_ino of the file actually served.
        mtime_ns: st_mtime_ns of the same file.

    Returns:
        Quoted hex digest, e.g. '"0cc175b9c0f1b6a831c399e269772661"'.
    """
    fingerprint = f"{inode}{mtime_ns}".encode("ascii")
    return f'"{hashlib.md5(fingerprint, usedforsecurity=False).hexdigest()}"'


def should_304(client_etag: Optional[str], probe: ProbeResult) -> bool:
    """
    Decide whether the client's cached copy is still fresh.

    Args:
        client_etag: If-None-Match value, None when the header is absent.
        probe: stat_file() result for the file that would be served.

    Returns:
        True (fresh, answer 304) only when the client's tag is identical
        to the one computed from the probe.
    """
    if not client_etag:
        return False
    return client_etag == create_etag(probe.inode, probe.mtime_ns)
