"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Serves a directory tree read-only over GET and HEAD.

=============================================================================
DECISION FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   method not GET/HEAD ──────────────────────────► 405, no body       │
    │          │                                                           │
    │   drain request body                                                 │
    │          │                                                           │
    │   map path onto root ── escapes root / missing ─► 404 + HTML page    │
    │          │                                                           │
    │   HEAD ─────────────────────────────────────────► 200, Content-Length│
    │          │                                          = size, no body  │
    │   directory?                                                         │
    │     ├── no trailing "/" ────────────────────────► 301 to path + "/"  │
    │     ├── index.html / index.htm present ─────────► 200 + index file   │
    │     └── otherwise ──────────────────────────────► 200 + listing      │
    │          │                                                           │
    │   regular file ─────────────────────────────────► 200 + file bytes   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

    GET /../../etc/passwd HTTP/1.1

The decoded request path is joined to the root and canonicalized
(".." collapsed, symlinks followed). Anything that does not end up at or
below the root is treated exactly like a missing file: 404, and a warning
in the log. A symlink inside the root that points outside it is refused
the same way.

Every name or path echoed into HTML goes through escape_html(), so a file
called "<script>.html" is shown, not run.

=============================================================================
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote

from ..config import ConfigurationError
from ..http.exchange import NO_BODY, HttpExchange
from ..http.mime_types import ContentTypeResolver, content_type_for, table_resolver
from ..http.status_codes import HTTPStatus
from .base import Handler, drain


logger = logging.getLogger(__name__)

INDEX_FILES = ("index.html", "index.htm")

_HTML_ESCAPES = str.maketrans({
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
})

_COPY_BUFFER = 64 * 1024


def escape_html(text: str) -> str:
    """
    Escape text for HTML element content and quoted attributes.

        >>> escape_html("<a href='x'>&</a>")
        '&lt;a href=&#x27;x&#x27;&gt;&amp;&lt;&#x2F;a&gt;'
    """
    return text.translate(_HTML_ESCAPES)


class FileServerHandler:
    """
    Handler serving files below one root directory.

    Args:
        root: Absolute path of an existing directory.
        resolver: Maps a file name to a media type (or None when unknown).

    Raises:
        ConfigurationError: If root is relative, missing or not a directory.
        TypeError: If no resolver is given.

    Usage:
        files = FileServerHandler("/srv/site", table_resolver())
        server = HTTPServer(config, handler=files)
    """

    def __init__(self, root: Union[str, os.PathLike], resolver: ContentTypeResolver):
        if root is None:
            raise TypeError("root directory is required")
        if resolver is None or not callable(resolver):
            raise TypeError("a content-type resolver is required")
        path = Path(root)
        if not path.is_absolute():
            raise ConfigurationError(f"Root directory must be an absolute path: {root}")
        if not path.is_dir():
            raise ConfigurationError(f"Root directory does not exist or is not a directory: {root}")
        self.root = path.resolve()
        self.resolver = resolver

    def __repr__(self) -> str:
        return f"FileServerHandler({str(self.root)!r})"

    def __call__(self, exchange: HttpExchange) -> None:
        self.handle(exchange)

    def handle(self, exchange: HttpExchange) -> None:
        with exchange:
            request = exchange.request
            if request.method not in ("GET", "HEAD"):
                # body deliberately left unread; the exchange close drains it
                exchange.send_response_headers(HTTPStatus.METHOD_NOT_ALLOWED, NO_BODY)
                return

            drain(exchange.request_body)

            path = self.map_to_path(exchange)
            if path is None or not path.exists():
                self._not_found(exchange)
            elif request.method == "HEAD":
                exchange.response_headers.set("Content-Length", str(path.stat().st_size))
                exchange.send_response_headers(HTTPStatus.OK, NO_BODY)
            elif path.is_dir():
                self._directory(exchange, path)
            else:
                self._serve_file(exchange, path, content_type_for(self.resolver, request.path))

    def map_to_path(self, exchange: HttpExchange) -> Optional[Path]:
        """
        Map the request path onto the filesystem.

        The decoded path is taken relative to the exchange's mount point and
        resolved against the root. Returns None when the result lies outside
        the root or cannot be represented as a path at all.
        """
        request_path = exchange.request.path
        mount = exchange.context_path.rstrip("/")
        if mount:
            if request_path != mount and not request_path.startswith(mount + "/"):
                return None
            request_path = request_path[len(mount):]
        relative = request_path.lstrip("/")

        try:
            candidate = (self.root / relative).resolve()
        except (OSError, ValueError, RuntimeError) as e:
            logger.debug(f"Unmappable request path {request_path!r}: {e}")
            return None

        if candidate != self.root and self.root not in candidate.parents:
            logger.warning(
                f"Path traversal attempt from {exchange.remote_address[0]}: "
                f"{exchange.request.raw_path}"
            )
            return None
        return candidate

    # =========================================================================
    # RESPONSES
    # =========================================================================

    def _not_found(self, exchange: HttpExchange) -> None:
        page = f"<h2>File not found</h2>{escape_html(exchange.request.path)}<p>"
        self._send_html(exchange, HTTPStatus.NOT_FOUND, page)

    def _directory(self, exchange: HttpExchange, path: Path) -> None:
        request = exchange.request
        if not request.path.endswith("/"):
            self._redirect(exchange)
            return

        for name in INDEX_FILES:
            index = path / name
            if index.is_file():
                self._serve_file(exchange, index, content_type_for(self.resolver, name))
                return

        self._send_html(exchange, HTTPStatus.OK, self.render_listing(path, request.path))

    def _redirect(self, exchange: HttpExchange) -> None:
        host = exchange.request.headers.get("Host")
        if not host:
            address, port = exchange.local_address[:2]
            host = f"{address}:{port}"
        location = f"http://{host}{exchange.request.raw_path}/"
        exchange.response_headers.set("Location", location)
        exchange.send_response_headers(HTTPStatus.MOVED_PERMANENTLY, NO_BODY)

    def _serve_file(self, exchange: HttpExchange, path: Path, content_type: str) -> None:
        with open(path, "rb") as f:
            size = os.fstat(f.fileno()).st_size
            exchange.response_headers.set("Content-Type", content_type)
            exchange.send_response_headers(HTTPStatus.OK, size or NO_BODY)
            if size:
                shutil.copyfileobj(f, exchange.response_body, _COPY_BUFFER)

    def _send_html(self, exchange: HttpExchange, status: int, html: str) -> None:
        body = html.encode("utf-8")
        exchange.response_headers.set("Content-Type", "text/html")
        exchange.send_response_headers(status, len(body))
        exchange.response_body.write(body)

    @staticmethod
    def render_listing(path: Path, request_path: str) -> str:
        """
        HTML directory listing.

        Entries are sorted by name. Each link target is the URI-encoded
        entry name (directories get a trailing "/"); the link text is that
        same target, HTML-escaped.
        """
        with os.scandir(path) as it:
            entries = sorted(
                ((entry.name, entry.is_dir()) for entry in it),
                key=lambda item: item[0],
            )

        lines = [
            "<!DOCTYPE html>",
            "<html>",
            "<head>",
            '<meta charset="utf-8">',
            "</head>",
            "<body>",
            f"<h2>Directory listing for {escape_html(request_path)}</h2>",
            "<ul>",
        ]
        for name, is_dir in entries:
            # names that are not valid UTF-8 carry surrogate escapes; quote the raw bytes
            href = quote(os.fsencode(name)) + ("/" if is_dir else "")
            lines.append(f'<li><a href="{href}">{escape_html(href)}</a></li>')
        lines.extend(["</ul><p><hr>", "</body>", "</html>", ""])
        return "\n".join(lines)


def create_file_handler(
    root: Union[str, os.PathLike],
    resolver: Optional[ContentTypeResolver] = None,
) -> Handler:
    """
    Build a file-serving Handler for `root`.

    Uses the built-in media type table unless a resolver is given.

    Example:
        files = create_file_handler("/srv/site")
        files = files.adding_request_header("X-Served-By", "files")
    """
    files = FileServerHandler(root, resolver or table_resolver())
    return Handler(files, f"file_server({str(files.root)!r})")
