"""
=============================================================================
FILESERVER - Composable Handlers and a Static File Server
=============================================================================

A small algebra of request handlers and filters, and a static file server
built from it, running on a threaded HTTP/1.1 engine written on raw
sockets.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    fileserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m fileserver)
    ├── server.py            # HTTPServer, setup_logging, create_file_server
    ├── config.py            # ServerConfig, OutputLevel, ConfigurationError
    ├── core/                # Reference engine
    │   ├── socket_server.py # Listening socket and accept loop
    │   ├── connection.py    # Buffered client connection
    │   └── thread_pool.py   # Worker threads
    ├── http/                # Protocol layer
    │   ├── headers.py       # Header maps
    │   ├── request.py       # Request snapshot and head parser
    │   ├── exchange.py      # The exchange handlers work with
    │   ├── status_codes.py  # Status codes and reason phrases
    │   └── mime_types.py    # Content-Type resolution
    ├── handlers/            # Handler combinators, static files
    └── filters/             # Filter chain, access output filter

=============================================================================
QUICK START
=============================================================================

    from fileserver import ServerConfig, create_file_server

    server = create_file_server(ServerConfig(root="/srv/site", port=8000))
    server.run()

Composing by hand:

    from fileserver import HTTPServer, ServerConfig, OutputFilter, OutputLevel
    from fileserver.handlers import create_file_handler, methods, responding

    files = create_file_handler("/srv/site")
    teapot = responding(418, {"Content-Type": "text/plain"}, "short and stout\\n")
    handler = files.delegating(teapot, methods("BREW"))

    server = HTTPServer(ServerConfig(root="/srv/site"), handler=handler)
    server.add_filter(OutputFilter(OutputLevel.VERBOSE))
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ConfigurationError, OutputLevel, ServerConfig
from .filters import Chain, ChainError, Filter, OutputFilter, create_output_filter
from .handlers import FileServerHandler, Handler, create_file_handler
from .server import HTTPServer, create_file_server, setup_logging

__all__ = [
    "ConfigurationError",
    "OutputLevel",
    "ServerConfig",
    "Chain",
    "ChainError",
    "Filter",
    "OutputFilter",
    "create_output_filter",
    "FileServerHandler",
    "Handler",
    "create_file_handler",
    "HTTPServer",
    "create_file_server",
    "setup_logging",
    "__version__",
]
