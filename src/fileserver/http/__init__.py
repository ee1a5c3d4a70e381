"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Protocol-level building blocks shared by the engine and the handlers.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ HEADERS (headers.py)                                                │
    │   Headers (read-only) / HeadersBuilder (mutable), case-insensitive  │
    │   multi-maps that keep insertion order                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │ REQUEST (request.py)                                                │
    │   Request - immutable (uri, method, headers) snapshot               │
    │   RequestParser - request head bytes -> RequestHead                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │ EXCHANGE (exchange.py)                                              │
    │   The one object handlers and filters work with                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │ STATUS CODES (status_codes.py) / MIME TYPES (mime_types.py)         │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
HTTP MESSAGE FORMAT (RFC 9112)
=============================================================================

    REQUEST:                          RESPONSE:
    ─────────                         ──────────
    GET /path HTTP/1.1\r\n            HTTP/1.1 200 OK\r\n
    Header: Value\r\n                 Header: Value\r\n
    \r\n                              \r\n
    [body]                            [body]

=============================================================================
"""

from .headers import Headers, HeadersBuilder
from .request import HTTPParseError, Request, RequestHead, RequestParser, parse_request_head
from .exchange import (
    NO_BODY,
    STREAMED,
    DelegatingExchange,
    Exchange,
    HttpExchange,
    ResponseBody,
)
from .status_codes import HTTPStatus, allows_body, reason_phrase
from .mime_types import (
    MIME_TYPES,
    UNKNOWN_CONTENT_TYPE,
    ContentTypeResolver,
    content_type_for,
    table_resolver,
)

__all__ = [
    "Headers",
    "HeadersBuilder",
    "HTTPParseError",
    "Request",
    "RequestHead",
    "RequestParser",
    "parse_request_head",
    "NO_BODY",
    "STREAMED",
    "DelegatingExchange",
    "Exchange",
    "HttpExchange",
    "ResponseBody",
    "HTTPStatus",
    "allows_body",
    "reason_phrase",
    "MIME_TYPES",
    "UNKNOWN_CONTENT_TYPE",
    "ContentTypeResolver",
    "content_type_for",
    "table_resolver",
]
