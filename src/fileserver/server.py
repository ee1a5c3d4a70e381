"""
=============================================================================
FILE SERVER
=============================================================================

Ties the reference engine to the handler/filter layer.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SocketServer ──accept──► ThreadPool ──worker──► keep-alive loop    │
    │                                                        │             │
    │                                  for each request head ▼             │
    │                                                                      │
    │        Exchange(request, body reader, socket writer, context_path)   │
    │                                │                                     │
    │                                ▼                                     │
    │         Chain([OutputFilter, ...], FileServerHandler)(exchange)      │
    │                                │                                     │
    │                                ▼                                     │
    │             exchange.close() ── keep going or close the socket       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ERRORS
=============================================================================

    malformed head           HTTPParseError ─► 400/431/501/505, close
    queue full               503, close
    handler raised, nothing  500, close
      sent yet
    handler raised after     close (the client sees a truncated response)
      headers were sent
    client went away         OSError ─► close

=============================================================================
"""

import logging
import sys
import threading
from typing import List, Optional

from .config import OutputLevel, ServerConfig
from .core import Connection, SocketServer, ThreadPool
from .filters.base import Chain, Filter
from .filters.output import ACCESS_LOGGER_NAME, OutputFilter
from .handlers.base import HandlerFunc
from .handlers.static import create_file_handler
from .http.exchange import Exchange
from .http.request import HTTPParseError, Request, RequestParser
from .http.status_codes import HTTPStatus, reason_phrase


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for command-line use.

    Diagnostics go to stderr with timestamp, level and logger name. Access
    lines from the output filter go to stdout exactly as formatted.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    logging.getLogger("fileserver").setLevel(numeric)

    access = logging.getLogger(ACCESS_LOGGER_NAME)
    if not access.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        access.addHandler(handler)
    access.setLevel(logging.INFO)
    access.propagate = False


class HTTPServer:
    """
    Threaded HTTP/1.1 server running one handler behind a filter chain.

    Usage:
        server = HTTPServer(config, handler=create_file_handler("/srv/site"))
        server.add_filter(OutputFilter(OutputLevel.DEFAULT))
        server.run()                      # blocks until SIGINT/SIGTERM

    For tests, start() runs the accept loop in a background thread and
    returns once the socket is listening.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        handler: Optional[HandlerFunc] = None,
        filters: Optional[List[Filter]] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()
        if handler is None:
            handler = create_file_handler(self.config.root)
        self.handler = handler
        self._filters: List[Filter] = list(filters or [])
        self._chain: Optional[Chain] = None

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(max_header_size=self.config.max_header_size)
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def add_filter(self, f: Filter) -> "HTTPServer":
        """Append a filter; filters run in the order added, outermost first."""
        if self._running:
            raise RuntimeError("filters cannot be added while the server is running")
        self._filters.append(f)
        self._chain = None
        return self

    @property
    def filters(self) -> List[Filter]:
        return list(self._filters)

    @property
    def chain(self) -> Chain:
        if self._chain is None:
            self._chain = Chain(self._filters, self.handler)
        return self._chain

    @property
    def address(self):
        return self._socket_server.address

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def bind(self):
        """Create the listening socket now; returns the bound (host, port)."""
        return self._socket_server.bind()

    def run(self):
        """Serve in the calling thread until shut down. Binds if needed."""
        self._socket_server.bind()
        self._prepare()
        host, port = self.address
        logger.info(f"Serving {self.config.root} on http://{host}:{port}/")
        try:
            self._socket_server.serve_forever(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def start(self, timeout: float = 5.0) -> "HTTPServer":
        """Serve from a background thread; returns once listening."""
        self._socket_server.bind()
        self._prepare()
        self._thread = threading.Thread(
            target=self._serve_in_thread, name="fileserver-accept", daemon=True
        )
        self._thread.start()
        if not self._socket_server.wait_until_ready(timeout):
            raise RuntimeError("server did not start listening in time")
        return self

    def stop(self, timeout: float = 15.0):
        """Stop a server started with start()."""
        self._socket_server.shutdown()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def __enter__(self) -> "HTTPServer":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    def _prepare(self):
        self._chain = Chain(self._filters, self.handler)
        self._running = True
        self._thread_pool.start()

    def _serve_in_thread(self):
        try:
            self._socket_server.serve_forever(self._handle_connection)
        finally:
            self._shutdown()

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=self.config.keep_alive_timeout + 5.0)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        if not self._thread_pool.submit(self._process_connection, args=(conn,)):
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE)
            conn.close()

    def _process_connection(self, conn: Connection):
        """Keep-alive loop for one connection (runs on a worker)."""
        with conn:
            while self._running:
                try:
                    raw_head = conn.read_request_head()
                    if raw_head is None:
                        break
                    head = self._parser.parse(raw_head)
                except HTTPParseError as e:
                    logger.info(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                    self._send_error(conn, e.status_code)
                    break
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                    break
                except OSError as e:
                    logger.debug(f"[{conn.id}] Read failed: {e}")
                    break

                keep_alive = head.is_keep_alive and self._running
                exchange = Exchange(
                    request=Request(head.uri, head.method, head.headers),
                    request_body=conn.body_reader(head.content_length),
                    wire=conn.wfile,
                    context_path=self.config.context_path,
                    local_address=conn.local_address,
                    remote_address=conn.address,
                    protocol=head.version,
                    keep_alive=keep_alive,
                    server_name=self.config.server_name,
                )

                if not self._run_exchange(conn, exchange):
                    break
                conn.set_keep_alive()

    def _run_exchange(self, conn: Connection, exchange: Exchange) -> bool:
        """
        Run the chain for one exchange. Returns True when the connection
        can carry another request.
        """
        failed_before_headers = False
        try:
            self.chain(exchange)
        except Exception as e:
            if isinstance(e, ConnectionError):
                logger.debug(f"[{conn.id}] Client went away during {exchange.request_method}: {e}")
            else:
                logger.exception(
                    f"[{conn.id}] Handler error for {exchange.request_method} "
                    f"{exchange.request_uri}: {e}"
                )
            exchange.close_connection = True
            failed_before_headers = not exchange.headers_sent

        try:
            exchange.close()
        except OSError as e:
            logger.debug(f"[{conn.id}] Failed to finish exchange: {e}")
            return False

        if failed_before_headers:
            self._send_error(conn, HTTPStatus.INTERNAL_SERVER_ERROR)
            return False
        return not exchange.close_connection

    def _send_error(self, conn: Connection, status: int):
        """Minimal response for failures detected before an exchange exists."""
        status = int(status)
        body = f"{status} {reason_phrase(status)}\n".encode("ascii")
        head = (
            f"HTTP/1.1 {status} {reason_phrase(status)}\r\n"
            f"Content-Type: text/plain\r\n"
            f"Content-Length: {len(body)}\r\n"
            f"Connection: close\r\n"
            f"Server: {self.config.server_name}\r\n"
            f"\r\n"
        ).encode("iso-8859-1")
        conn.send_response(head + body)


def create_file_server(config: Optional[ServerConfig] = None) -> HTTPServer:
    """
    Build a ready-to-run file server from configuration.

    The output filter is installed unless the output level is "none".

    Raises:
        ConfigurationError: For an invalid root, level or server setting.
    """
    config = config or ServerConfig()
    server = HTTPServer(config, handler=create_file_handler(config.root))
    if config.output_level is not OutputLevel.NONE:
        server.add_filter(OutputFilter(config.output_level))
    return server
