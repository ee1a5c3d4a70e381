"""
=============================================================================
REQUEST SNAPSHOT AND REQUEST-HEAD PARSER
=============================================================================

Two things live here:

1. Request - an immutable snapshot of the request-facing state of an
   exchange (target URI, method, headers). Handlers that want to present a
   different request to the handler they wrap derive a new snapshot with
   one of the with_*() methods; the original is never touched.

2. RequestParser - turns the raw bytes of a request head (request line +
   header lines) into the pieces the engine needs to build an exchange.
   Implements the parts of RFC 9112 a static file server needs.

=============================================================================
REQUEST HEAD ANATOMY
=============================================================================

    GET /docs/index.html?lang=en HTTP/1.1\r\n      <- request line
    Host: localhost:8000\r\n                       <- header lines
    Accept: text/html\r\n
    \r\n                                           <- end of head

    ─┬─ ───────────┬────────────── ────┬───
     │             │                   │
   Method    Target (URI)            Version

The body, if any, is NOT part of the head. The engine exposes it to
handlers as a byte stream bounded by Content-Length.

=============================================================================
"""

import re
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple
from urllib.parse import unquote, urlsplit

from .headers import Headers


class HTTPParseError(Exception):
    """
    Raised when a request head cannot be parsed.

    Carries the HTTP status the engine should answer with:

        400 Bad Request                      - malformed syntax
        431 Request Header Fields Too Large  - head exceeds the size limit
        501 Not Implemented                  - Transfer-Encoding request bodies
        505 HTTP Version Not Supported       - unknown protocol version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class Request:
    """
    Immutable view of request state: target identifier, method, headers.

    =========================================================================
    DERIVING A MODIFIED COPY
    =========================================================================

        original = Request("/a", "GET", Headers({"Host": "x"}))

        original.with_uri("/b")              # same method and headers
        original.with_method("HEAD")         # same URI and headers
        original.with_header("X-Tag", "1")   # headers + one appended value
        original.with_headers(Headers())     # whole header map replaced

    Each call returns a NEW Request; `original` is unchanged.

    =========================================================================
    """

    uri: str
    method: str
    headers: Headers = field(default_factory=Headers)

    def __post_init__(self):
        if not isinstance(self.uri, str) or not self.uri:
            raise ValueError(f"Invalid request URI: {self.uri!r}")
        if not isinstance(self.method, str) or not self.method:
            raise ValueError(f"Invalid request method: {self.method!r}")
        if not isinstance(self.headers, Headers):
            raise TypeError("headers must be a read-only Headers instance")

    def _split(self) -> Tuple[str, str]:
        if self.uri.startswith("/"):
            # origin-form: "//x" is a path, not an authority
            path, _, query = self.uri.partition("?")
            return path, query
        parts = urlsplit(self.uri)
        return parts.path, parts.query

    @property
    def raw_path(self) -> str:
        """Path component exactly as sent (still percent-encoded)."""
        return self._split()[0] or "/"

    @property
    def path(self) -> str:
        """Decoded path component, without the query string."""
        return unquote(self.raw_path)

    @property
    def query(self) -> str:
        return self._split()[1]

    def with_uri(self, uri: str) -> "Request":
        return replace(self, uri=uri)

    def with_method(self, method: str) -> "Request":
        return replace(self, method=method)

    def with_header(self, name: str, value: str) -> "Request":
        """Return a copy with one header value appended."""
        return replace(self, headers=self.headers.to_builder().add(name, value).build())

    def with_headers(self, headers: Headers) -> "Request":
        return replace(self, headers=headers)


@dataclass(frozen=True)
class RequestHead:
    """Result of parsing a request head."""

    method: str
    uri: str
    version: str
    headers: Headers

    @property
    def content_length(self) -> int:
        """
        Body length announced by the client.

        Returns 0 when the header is missing. Conflicting or negative values
        are rejected by the parser, so by the time a RequestHead exists the
        value is trustworthy.
        """
        return RequestParser._check_content_length(self.headers) or 0

    @property
    def is_keep_alive(self) -> bool:
        """
        HTTP/1.1 keeps the connection open unless "Connection: close";
        HTTP/1.0 closes it unless "Connection: keep-alive".
        """
        connection = (self.headers.get("Connection") or "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"


class RequestParser:
    """
    Parses a request head into a RequestHead.

    ==========================================================================
    REGEX PATTERNS
    ==========================================================================

    REQUEST_LINE_PATTERN: ^(token) (target) (HTTP/d.d)$

        The method is any RFC 9110 token. Deciding which methods are
        supported is the handler's job (the file handler answers 405), so
        the parser must not reject DELETE, PUT, PROPFIND, ...

    HEADER_PATTERN: ^([^:\\s]+):[ \\t]*(.*?)[ \\t]*$

        No whitespace is allowed between the field name and the colon
        (RFC 9112 section 5.1); such lines are a smuggling vector.

    ==========================================================================
    """

    REQUEST_LINE_PATTERN = re.compile(r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+) (\S+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:\s]+):[ \t]*(.*?)[ \t]*$")

    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def __init__(self, max_header_size: int = 64 * 1024):
        self.max_header_size = max_header_size

    def parse(self, data: bytes) -> RequestHead:
        """
        Parse raw head bytes (with or without the trailing blank line).

        Raises:
            HTTPParseError: If the head is malformed or too large.
        """
        if len(data) > self.max_header_size:
            raise HTTPParseError(
                f"Request head too large: {len(data)} bytes",
                status_code=431,
            )

        # Header bytes are ISO-8859-1 on the wire; anything else is opaque.
        text = data.decode("iso-8859-1")
        lines = text.split("\r\n")
        # tolerate a few stray empty lines before the request line (RFC 9112 2.2)
        while lines and not lines[0]:
            lines.pop(0)
        if not lines:
            raise HTTPParseError("Empty request")

        method, uri, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])
        return RequestHead(method=method, uri=uri, version=version, headers=headers)

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, uri, version = match.groups()
        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        # Absolute-form targets (proxies) are reduced to origin-form.
        if not uri.startswith("/"):
            parts = urlsplit(uri)
            if not parts.scheme:
                raise HTTPParseError(f"Invalid request target: {uri!r}")
            uri = (parts.path or "/") + (f"?{parts.query}" if parts.query else "")

        return method, uri, version

    def _parse_headers(self, lines: list) -> Headers:
        pairs = []
        for line in lines:
            if not line:
                continue
            if line[0] in (" ", "\t"):
                # obsolete line folding is not accepted (RFC 9112 section 5.2)
                raise HTTPParseError("Obsolete header line folding")
            match = self.HEADER_PATTERN.match(line)
            if not match:
                raise HTTPParseError(f"Invalid header line: {line!r}")
            pairs.append(match.groups())

        try:
            headers = Headers(pairs)
        except ValueError as e:
            raise HTTPParseError(str(e))
        if "Transfer-Encoding" in headers:
            # request bodies are only ever framed by Content-Length here
            raise HTTPParseError("Transfer-Encoding is not supported", status_code=501)
        self._check_content_length(headers)
        return headers

    @staticmethod
    def _check_content_length(headers: Headers) -> Optional[int]:
        values = headers.get_all("Content-Length")
        if not values:
            return None
        # "5, 5" and repeated identical headers are equivalent; anything else
        # is the classic request smuggling setup.
        distinct = {v.strip() for value in values for v in value.split(",")}
        if len(distinct) != 1:
            raise HTTPParseError("Conflicting Content-Length values")
        value = distinct.pop()
        if not value.isdigit():
            raise HTTPParseError(f"Invalid Content-Length: {value!r}")
        return int(value)


def parse_request_head(data: bytes, max_header_size: int = 64 * 1024) -> RequestHead:
    """
    Convenience function to parse a request head in one call.

    Use RequestParser directly to reuse the same settings for many heads.
    """
    return RequestParser(max_header_size=max_header_size).parse(data)
