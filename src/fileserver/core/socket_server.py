"""
=============================================================================
TCP SOCKET SERVER
=============================================================================

Socket lifecycle for the reference engine:

    socket() ──► bind() ──► listen() ──► accept() loop ──► close()

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   bind()           create the listening socket, bind, listen         │
    │   serve_forever()  accept loop; each client socket is wrapped in a   │
    │                    Connection and handed to the callback             │
    │   shutdown()       stop the loop (safe from any thread or signal)    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

accept() uses a 1 second timeout so the loop notices shutdown() promptly
without needing a self-pipe.

SIGINT and SIGTERM trigger shutdown() when the server runs in the main
thread; signal handlers cannot be installed from other threads, so a
server started by a test in a background thread skips them.

=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP server handing accepted connections to a callback.

    Usage:
        server = SocketServer(config)
        server.bind()
        server.serve_forever(handle_connection)   # blocks until shutdown()
    """

    ACCEPT_TIMEOUT = 1.0

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._ready = threading.Event()
        self._original_handlers: dict = {}

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); the real port once bound, even for port 0."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(self.ACCEPT_TIMEOUT)
        return sock

    def bind(self) -> Tuple[str, int]:
        """Create, bind and listen. Returns the bound address."""
        if self._socket is not None:
            return self.address
        sock = self._create_socket()
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            raise
        self._socket = sock
        return self.address

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def serve_forever(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown() is called. Binds first if
        bind() has not been called yet.
        """
        self.bind()
        self._running = True
        self._setup_signals()
        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")
        self._ready.set()
        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")
            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                local_address=client_socket.getsockname()[:2],
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_header_size=self.config.max_header_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """Stop accepting connections. Idempotent."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        self._ready.clear()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop runs. Returns False on timeout."""
        return self._ready.wait(timeout)
