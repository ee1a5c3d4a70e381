"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The reference transport engine behind fileserver.server.HTTPServer.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SocketServer   listening socket, accept loop, signal handling      │
    │        │                                                             │
    │        │ hands off each accepted Connection                          │
    │        ▼                                                             │
    │  ThreadPool     bounded queue + worker threads                       │
    │        │                                                             │
    │        │ a worker runs the keep-alive loop                           │
    │        ▼                                                             │
    │  Connection     buffered head reads, bounded body reader, writer     │
    └─────────────────────────────────────────────────────────────────────┘

Nothing in fileserver.handlers or fileserver.filters imports this package;
they only see the exchange.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import BodyReader, Connection, ConnectionState
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "BodyReader",
    "ThreadPool",
]
