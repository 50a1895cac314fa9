"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

    SocketServer   accept loop on the listening socket
         │
         ▼
    ThreadPool     one worker per connection
         │
         ▼
    Connection     buffered reads, buffered/streamed writes

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ThreadPool",
]
