"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with what the HTTP layer needs:

    read_request_head()   bytes of the next request head, or None at EOF
    body_reader(n)        stream over exactly the next n body bytes
    wfile                 buffered writer the response is serialized to

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

recv() returns whatever has arrived, not whole messages. A request head
may arrive in three pieces, and one recv() may carry the end of one
request plus the start of the next (pipelining). Received bytes are kept
in a buffer, and the body reader takes from that buffer before touching
the socket again:

    buffer:  GET /a HTTP/1.1\\r\\n...\\r\\n\\r\\n[body of /a][GET /b HTTP/1.1...
             └────── head ─────────────────┘ └─ body ──┘ └─ next request

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► READING ──► PROCESSING ──► KEEP_ALIVE ──► READING ...
     │         │             │
     └─────────┴─────────────┴──────► CLOSING ──► CLOSED

=============================================================================
"""

import io
import logging
import socket
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Optional, Tuple

from ..http.request import HTTPParseError


logger = logging.getLogger(__name__)

_HEAD_END = b"\r\n\r\n"


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


class BodyReader(io.RawIOBase):
    """
    Readable stream over exactly `length` request body bytes.

    Reading stops at the end of the body even when more bytes (the next
    request) are already buffered. close() drains whatever the handler did
    not read, so the connection is positioned at the next request head.
    """

    def __init__(self, connection: "Connection", length: int):
        super().__init__()
        self._connection = connection
        self.remaining = length

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self.closed:
            raise ValueError("read from closed request body")
        if self.remaining <= 0:
            return 0
        view = memoryview(b)[: min(len(b), self.remaining)]
        n = self._connection.read_into(view)
        if n == 0:
            raise ConnectionError(
                f"client closed the connection with {self.remaining} body bytes outstanding"
            )
        self.remaining -= n
        return n

    def close(self) -> None:
        if self.closed:
            return
        try:
            scratch = bytearray(64 * 1024)
            while self.remaining > 0:
                self.readinto(scratch)
        finally:
            super().close()


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port).
        local_address: Server side (ip, port) of this connection.
        id: Short identifier used in log lines.
        requests_handled: Number of request heads read so far.
    """

    socket: socket.socket
    address: Tuple[str, int]
    local_address: Tuple[str, int] = ("", 0)
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_header_size: int = 64 * 1024

    _buffer: bytearray = field(default_factory=bytearray, repr=False)
    _wfile: Optional[BinaryIO] = field(default=None, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)
        self._wfile = self.socket.makefile("wb")

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def wfile(self) -> BinaryIO:
        return self._wfile

    def read_request_head(self) -> Optional[bytes]:
        """
        Read the next request head (request line + headers).

        Returns:
            The head bytes without the terminating blank line, or None when
            the client closed the connection (or idled past the keep-alive
            timeout) before sending anything.

        Raises:
            HTTPParseError: 431 when the head exceeds max_header_size,
                            400 when the client hangs up mid-head.
            TimeoutError: When a first request stalls mid-head.
        """
        self.state = ConnectionState.READING
        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while True:
                end = self._buffer.find(_HEAD_END)
                if end != -1:
                    break
                if len(self._buffer) > self.max_header_size:
                    raise HTTPParseError(
                        f"Request head too large: more than {self.max_header_size} bytes",
                        status_code=431,
                    )
                chunk = self._recv()
                if not chunk:
                    if self._buffer.strip():
                        raise HTTPParseError("Connection closed mid request head")
                    return None
                self._buffer += chunk
                # first bytes of a request arrived; the full timeout applies again
                self.socket.settimeout(self.timeout)
        except socket.timeout:
            if self.requests_handled > 0 and not self._buffer.strip():
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request head read timeout")
        finally:
            self.socket.settimeout(self.timeout)

        head = bytes(self._buffer[:end])
        del self._buffer[: end + len(_HEAD_END)]
        self.requests_handled += 1
        self.state = ConnectionState.PROCESSING
        return head

    def read_into(self, view: memoryview) -> int:
        """Fill `view` from the buffer first, then from the socket."""
        if self._buffer:
            n = min(len(view), len(self._buffer))
            view[:n] = self._buffer[:n]
            del self._buffer[:n]
            return n
        try:
            return self.socket.recv_into(view)
        except (ConnectionResetError, BrokenPipeError):
            return 0

    def body_reader(self, length: int) -> BodyReader:
        return BodyReader(self, length)

    def _recv(self) -> bytes:
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def send_response(self, data: bytes) -> bool:
        """
        Write raw response bytes, used by the engine for its own error
        responses. Returns False when the client is gone.
        """
        try:
            self._wfile.write(data)
            self._wfile.flush()
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    def close(self):
        """
        Close the connection: flush, half-close, drain briefly, release.
        """
        if self.state == ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSING

        try:
            self._wfile.close()
        except OSError:
            pass  # client already gone

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
