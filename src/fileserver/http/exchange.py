"""
=============================================================================
EXCHANGE
=============================================================================

An exchange is one request/response pair as seen by handlers and filters.
It is the ONLY thing the handler layer talks to: it never touches sockets.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       EXCHANGE SURFACE                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   REQUEST SIDE                       RESPONSE SIDE                   │
    │   ────────────                       ─────────────                   │
    │   request (uri, method, headers)     response_headers (builder)      │
    │   context_path (mount point)         send_response_headers(s, n)     │
    │   request_body (byte stream)         response_body (byte sink)       │
    │   local_address / remote_address     response_code                   │
    │                                                                      │
    │                     close()  /  with exchange: ...                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
RESPONSE LENGTH CONVENTION
=============================================================================

send_response_headers(status, length):

    length > 0     exactly `length` body bytes follow (Content-Length)
    length == 0    body of unknown length follows (STREAMED); the
                   connection is closed after it to mark the end
    length == -1   no body at all (NO_BODY); Content-Length: 0 is sent
                   unless the handler already set Content-Length itself
                   (a HEAD response reporting the size of the resource)

For HEAD requests the head is sent as usual but any body bytes the handler
writes are counted and dropped, never put on the wire.

=============================================================================
"""

import io
import logging
from abc import ABC, abstractmethod
from email.utils import formatdate
from typing import BinaryIO, Optional, Tuple

from .headers import HeadersBuilder
from .request import Request
from .status_codes import allows_body, reason_phrase


logger = logging.getLogger(__name__)

NO_BODY = -1
STREAMED = 0

Address = Tuple[str, int]


class ResponseBody(io.RawIOBase):
    """
    Byte sink for a response body.

    Enforces the declared length (writing past it raises OSError) and drops
    the bytes instead of sending them when `discard` is set.
    """

    def __init__(self, wire: BinaryIO, limit: Optional[int], discard: bool = False):
        super().__init__()
        self._wire = wire
        self._limit = limit
        self._discard = discard
        self.bytes_written = 0

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        if self.closed:
            raise ValueError("write to closed response body")
        size = memoryview(data).nbytes
        if self._limit is not None and self.bytes_written + size > self._limit:
            raise OSError(
                f"response body exceeds declared length of {self._limit} bytes"
            )
        if size and not self._discard:
            self._wire.write(data)
        self.bytes_written += size
        return size

    @property
    def short(self) -> bool:
        """True when fewer bytes than declared were written."""
        return not self._discard and self._limit is not None and self.bytes_written < self._limit

    def close(self) -> None:
        if self.closed:
            return
        try:
            if not self._discard:
                self._wire.flush()
        finally:
            super().close()


class HttpExchange(ABC):
    """
    The surface handlers and filters program against.

    Exchange is the engine-backed implementation; DelegatingExchange
    substitutes the request side of another exchange.
    """

    @property
    @abstractmethod
    def request(self) -> Request:
        """Current request snapshot (URI, method, headers)."""

    @property
    @abstractmethod
    def context_path(self) -> str:
        """Mount point of the handler serving this exchange, e.g. "/"."""

    @property
    @abstractmethod
    def request_body(self) -> BinaryIO:
        ...

    @property
    @abstractmethod
    def response_headers(self) -> HeadersBuilder:
        ...

    @abstractmethod
    def send_response_headers(self, status: int, length: int) -> None:
        ...

    @property
    @abstractmethod
    def response_body(self) -> ResponseBody:
        ...

    @property
    @abstractmethod
    def response_code(self) -> int:
        """Status sent, or -1 while the response head is still pending."""

    @property
    @abstractmethod
    def local_address(self) -> Address:
        ...

    @property
    @abstractmethod
    def remote_address(self) -> Address:
        ...

    @property
    @abstractmethod
    def protocol(self) -> str:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    # Convenience accessors shared by every implementation

    @property
    def request_uri(self) -> str:
        return self.request.uri

    @property
    def request_method(self) -> str:
        return self.request.method

    @property
    def headers_sent(self) -> bool:
        return self.response_code != -1

    def with_request(self, request: Request) -> "HttpExchange":
        """View of this exchange whose request side is `request`."""
        return DelegatingExchange(self, request)

    def __enter__(self) -> "HttpExchange":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class Exchange(HttpExchange):
    """
    Engine-backed exchange.

    Args:
        request: The parsed request snapshot.
        request_body: Readable byte stream holding exactly the request body.
                      Closing it must release (drain) whatever is unread.
        wire: Writable byte stream the response is serialized to.
        context_path: Mount point of the handler.
        local_address / remote_address: (host, port) of the two endpoints.
        protocol: Request protocol version, echoed in the status line.
        keep_alive: Whether the engine may reuse the connection afterwards.
        server_name: Value of the Server response header.
    """

    def __init__(
        self,
        request: Request,
        request_body: BinaryIO,
        wire: BinaryIO,
        context_path: str = "/",
        local_address: Address = ("", 0),
        remote_address: Address = ("", 0),
        protocol: str = "HTTP/1.1",
        keep_alive: bool = True,
        server_name: str = "fileserver",
    ):
        self._request = request
        self._request_body = request_body
        self._wire = wire
        self._context_path = context_path
        self._local_address = local_address
        self._remote_address = remote_address
        self._protocol = protocol
        self._server_name = server_name
        self._response_headers = HeadersBuilder()
        self._response_code = -1
        self._response_body: Optional[ResponseBody] = None
        self._closed = False
        # Read by the engine once the exchange is closed
        self.close_connection = not keep_alive

    @property
    def request(self) -> Request:
        return self._request

    @property
    def context_path(self) -> str:
        return self._context_path

    @property
    def request_body(self) -> BinaryIO:
        return self._request_body

    @property
    def response_headers(self) -> HeadersBuilder:
        return self._response_headers

    @property
    def response_code(self) -> int:
        return self._response_code

    @property
    def local_address(self) -> Address:
        return self._local_address

    @property
    def remote_address(self) -> Address:
        return self._remote_address

    @property
    def protocol(self) -> str:
        return self._protocol

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def response_body(self) -> ResponseBody:
        if self._response_body is None:
            raise RuntimeError("send_response_headers() must be called before writing a body")
        return self._response_body

    def send_response_headers(self, status: int, length: int) -> None:
        """
        Serialize the status line and response headers to the wire.

        May be called once per exchange. See the module docstring for the
        meaning of `length`.
        """
        if self._closed:
            raise RuntimeError("exchange is closed")
        if self._response_code != -1:
            raise RuntimeError("response headers already sent")

        status = int(status)
        headers = self._response_headers
        discard = self._request.method == "HEAD" or not allows_body(status)

        if length > 0:
            headers.set("Content-Length", str(length))
            limit = length
        elif length == STREAMED and not discard:
            # no chunked encoding: end of body == end of connection
            headers.remove("Content-Length")
            self.close_connection = True
            limit = None
        else:
            if allows_body(status) and self._request.method != "HEAD":
                headers.setdefault("Content-Length", "0")
            limit = 0

        if self.close_connection:
            headers.set("Connection", "close")
        headers.setdefault("Date", formatdate(usegmt=True))
        headers.setdefault("Server", self._server_name)

        lines = [f"{self._protocol} {status} {reason_phrase(status)}"]
        for name, values in headers.items():
            lines.extend(f"{name}: {value}" for value in values)
        head = "\r\n".join(lines) + "\r\n\r\n"

        self._response_code = status
        self._response_body = ResponseBody(self._wire, limit, discard=discard)
        self._wire.write(head.encode("iso-8859-1"))
        if limit == 0:
            self._wire.flush()

    def close(self) -> None:
        """
        Finalize the exchange: flush and close the response body, then
        release the request body. Idempotent.

        Errors raised while flushing (client went away) propagate after the
        request body has been released.
        """
        if self._closed:
            return
        self._closed = True
        try:
            if self._response_body is None:
                # Nothing was sent; the engine cannot frame another
                # response on this connection.
                logger.warning(
                    f"Exchange closed without a response: {self._request.method} {self._request.uri}"
                )
                self.close_connection = True
            else:
                if self._response_body.short:
                    self.close_connection = True
                self._response_body.close()
        finally:
            self._request_body.close()


class DelegatingExchange(HttpExchange):
    """
    An exchange whose request side is replaced by a different snapshot.

    Everything response-facing goes straight to the wrapped exchange, so
    headers and body written here are written there.
    """

    def __init__(self, exchange: HttpExchange, request: Request):
        if isinstance(exchange, DelegatingExchange):
            exchange = exchange._exchange
        self._exchange = exchange
        self._request = request

    @property
    def request(self) -> Request:
        return self._request

    @property
    def context_path(self) -> str:
        return self._exchange.context_path

    @property
    def request_body(self) -> BinaryIO:
        return self._exchange.request_body

    @property
    def response_headers(self) -> HeadersBuilder:
        return self._exchange.response_headers

    def send_response_headers(self, status: int, length: int) -> None:
        self._exchange.send_response_headers(status, length)

    @property
    def response_body(self) -> ResponseBody:
        return self._exchange.response_body

    @property
    def response_code(self) -> int:
        return self._exchange.response_code

    @property
    def local_address(self) -> Address:
        return self._exchange.local_address

    @property
    def remote_address(self) -> Address:
        return self._exchange.remote_address

    @property
    def protocol(self) -> str:
        return self._exchange.protocol

    def close(self) -> None:
        self._exchange.close()
